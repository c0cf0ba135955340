from bestip.output import (
    generate_fast_list,
    generate_formatted_list,
    generate_ip_list,
    generate_itdog_payload,
    generate_status,
)

FULL = {
    "ips": [{"ip": "1.1.1.1", "country": "US"}, {"ip": "1.0.0.1"}, {"country": "XX"}],
    "lastUpdated": "2024-05-01T00:00:00.000Z",
    "count": 2,
    "sources": [{"name": "a.example", "status": "success", "count": 2}],
}
FAST = {
    "fastIPs": [
        {"ip": "104.16.1.2", "latencyMs": 49.6, "country": "JP", "colo": "NRT"},
        {"ip": "104.16.1.3", "latency": 120, "country": "US", "colo": "SJC"},
    ],
    "lastTested": "2024-05-01T00:01:00.000Z",
    "count": 2,
}


def test_generate_ip_list():
    assert generate_ip_list(FULL) == "1.1.1.1\n1.0.0.1"
    assert generate_ip_list({"ips": [], "count": 0}) == ""


def test_generate_formatted_list():
    assert generate_formatted_list(FULL) == "1.1.1.1:443#US\n1.0.0.1:443#UNK"


def test_generate_fast_list_rounds_latency():
    assert generate_fast_list(FAST) == "104.16.1.2:443#JP_50ms\n104.16.1.3:443#US_120ms"


def test_generate_itdog_payload():
    assert generate_itdog_payload(FULL) == {"ips": ["1.1.1.1", "1.0.0.1"], "count": 2}


def test_generate_status():
    status = generate_status(FULL, FAST, 25)
    assert status == {
        "totalIPs": 2,
        "fastIPs": 2,
        "fastIPLimit": 25,
        "lastUpdated": "2024-05-01T00:00:00.000Z",
        "lastTested": "2024-05-01T00:01:00.000Z",
        "sources": FULL["sources"],
    }


def test_generate_status_on_empty_store():
    status = generate_status({"ips": [], "count": 0}, {"fastIPs": [], "count": 0}, 25)
    assert status["totalIPs"] == 0
    assert status["lastUpdated"] is None
    assert status["sources"] == []
