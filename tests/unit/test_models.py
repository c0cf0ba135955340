import pytest

from bestip.models import (
    CandidateIP,
    FastSnapshot,
    FullSnapshot,
    ProbeResult,
    SourceResult,
    ip_sort_key,
)


def test_ip_sort_key():
    assert ip_sort_key("0.0.0.1") == 1
    assert ip_sort_key("1.0.0.0") == 1 << 24
    assert ip_sort_key("255.255.255.255") == 0xFFFFFFFF
    assert ip_sort_key("9.0.0.0") < ip_sort_key("10.0.0.0")


def test_candidate_from_dict_defaults_country():
    assert CandidateIP.from_dict({"ip": "1.1.1.1"}) == CandidateIP("1.1.1.1", "UNK")
    assert CandidateIP.from_dict({"ip": "1.1.1.1", "country": ""}).country == "UNK"


def test_candidate_is_frozen():
    candidate = CandidateIP("1.1.1.1", "US")
    with pytest.raises(AttributeError):
        candidate.country = "JP"


def test_source_result_to_dict_omits_unset_fields():
    assert SourceResult("a.example", "success", count=3).to_dict() == {
        "name": "a.example",
        "status": "success",
        "count": 3,
    }
    failed = SourceResult("b.example", "error", error="HTTP 404 Not Found")
    assert not failed.success
    assert failed.to_dict() == {
        "name": "b.example",
        "status": "error",
        "error": "HTTP 404 Not Found",
    }


def test_probe_result_reads_legacy_latency_key():
    legacy = ProbeResult.from_dict({"ip": "1.1.1.1", "latency": 88, "country": "US"})
    assert legacy.latency_ms == 88.0
    assert legacy.colo == "UNK"

    current = ProbeResult.from_dict({"ip": "1.1.1.1", "latencyMs": 12.5, "colo": "HKG"})
    assert current.to_dict() == {
        "ip": "1.1.1.1",
        "latencyMs": 12.5,
        "country": "UNK",
        "colo": "HKG",
    }


def test_snapshots_report_count():
    full = FullSnapshot([CandidateIP("1.1.1.1")], "ts")
    assert full.to_dict() == {
        "ips": [{"ip": "1.1.1.1", "country": "UNK"}],
        "lastUpdated": "ts",
        "count": 1,
        "sources": [],
    }
    assert FastSnapshot([], "ts").to_dict() == {"fastIPs": [], "lastTested": "ts", "count": 0}
