import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx
from aiohttp.test_utils import TestClient, TestServer

from bestip.constants import FAST_SNAPSHOT_KEY, FULL_SNAPSHOT_KEY
from bestip.pipeline import Orchestrator
from bestip.server import SCHEDULER, create_app
from bestip.storage import InMemoryKeyValueStore
from conftest import GEO_URL, SOURCE_A, SOURCE_B, SOURCE_C, FakeProber

FULL = {
    "ips": [{"ip": "1.0.0.1", "country": "US"}, {"ip": "104.16.1.2", "country": "JP"}],
    "lastUpdated": "2024-05-01T00:00:00.000Z",
    "count": 2,
    "sources": [{"name": "source-a.example", "status": "success", "count": 2}],
}
FAST = {
    "fastIPs": [{"ip": "104.16.1.2", "latencyMs": 31.4, "country": "JP", "colo": "NRT"}],
    "lastTested": "2024-05-01T00:01:00.000Z",
    "count": 1,
}


@pytest.fixture
def seeded_kv():
    return InMemoryKeyValueStore(
        {FULL_SNAPSHOT_KEY: json.dumps(FULL), FAST_SNAPSHOT_KEY: json.dumps(FAST)}
    )


@pytest.fixture
def orchestrator(settings, seeded_kv):
    return Orchestrator(settings, seeded_kv, prober=FakeProber({"104.16.1.9": 42.0}))


@pytest.mark.asyncio
async def test_status_endpoint(orchestrator):
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        resp = await client.get("/")
        assert resp.status == 200
        data = await resp.json()

    assert data["totalIPs"] == 2
    assert data["fastIPs"] == 1
    assert data["fastIPLimit"] == 25
    assert data["running"] is False
    assert data["stage"] == "idle"


@pytest.mark.asyncio
async def test_plain_text_lists(orchestrator):
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        ips = await client.get("/ips")
        ip_txt = await client.get("/ip.txt")
        formatted = await client.get("/ips-format")
        fast_txt = await client.get("/fast-ips.txt")

        assert ips.headers["Content-Type"].startswith("text/plain")
        assert ips.headers["Access-Control-Allow-Origin"] == "*"
        assert await ips.text() == "1.0.0.1\n104.16.1.2"
        assert await ip_txt.text() == "1.0.0.1\n104.16.1.2"
        assert await formatted.text() == "1.0.0.1:443#US\n104.16.1.2:443#JP"
        assert await fast_txt.text() == "104.16.1.2:443#JP_31ms"
        assert fast_txt.headers["Content-Disposition"] == 'inline; filename="fast_ips.txt"'


@pytest.mark.asyncio
async def test_json_endpoints(orchestrator):
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        raw = await (await client.get("/raw")).json()
        fast = await (await client.get("/fast-ips")).json()
        itdog = await (await client.get("/itdog-data")).json()

    assert raw == FULL
    assert fast == FAST
    assert itdog == {"ips": ["1.0.0.1", "104.16.1.2"], "count": 2}


@pytest.mark.asyncio
async def test_empty_store_serves_defaults(settings):
    orchestrator = Orchestrator(settings, InMemoryKeyValueStore(), prober=FakeProber())
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        raw = await (await client.get("/raw")).json()
        fast = await (await client.get("/fast-ips")).json()
        ips = await (await client.get("/ips")).text()

    assert raw == {"ips": [], "count": 0}
    assert fast == {"fastIPs": [], "count": 0}
    assert ips == ""


@pytest.mark.asyncio
async def test_speedtest(orchestrator):
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        ok = await (await client.get("/speedtest", params={"ip": "104.16.1.9", "country": "SG"})).json()
        failed = await (await client.get("/speedtest", params={"ip": "104.16.1.10"})).json()
        missing = await client.get("/speedtest")

        assert missing.status == 400
        assert await missing.json() == {"error": "IP required"}

    assert ok == {
        "success": True,
        "ip": "104.16.1.9",
        "latencyMs": 42.0,
        "country": "SG",
        "colo": "SJC",
    }
    assert failed == {"success": False, "ip": "104.16.1.10", "error": "Timeout after 3 seconds"}


@pytest.mark.asyncio
async def test_speedtest_rejects_malformed_ip(orchestrator):
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        for value in ("example.com", "300.1.1.1", "1.1.1"):
            resp = await client.get("/speedtest", params={"ip": value})
            assert resp.status == 400
            assert await resp.json() == {"error": "Invalid IP"}

    assert orchestrator.prober.calls == []


@pytest.mark.asyncio
@respx.mock
async def test_manual_update_runs_pipeline(settings):
    respx.get(SOURCE_A).mock(return_value=httpx.Response(200, text="1.1.1.1 1.0.0.1"))
    respx.get(SOURCE_B).mock(return_value=httpx.Response(404))
    respx.get(SOURCE_C).mock(return_value=httpx.Response(200, text="192.168.0.1"))
    respx.post(GEO_URL).mock(
        return_value=httpx.Response(
            200,
            json=[
                {"status": "success", "countryCode": "AU", "query": "1.0.0.1"},
                {"status": "success", "countryCode": "AU", "query": "1.1.1.1"},
            ],
        )
    )
    orchestrator = Orchestrator(
        settings, InMemoryKeyValueStore(), prober=FakeProber({"1.1.1.1": 20, "1.0.0.1": 10})
    )

    async with TestClient(TestServer(create_app(orchestrator))) as client:
        resp = await client.post("/update")
        data = await resp.json()
        ips = await (await client.get("/ips")).text()

    assert resp.status == 200
    assert data["success"] is True
    assert data["totalIPs"] == 2
    assert data["fastIPsCount"] == 2
    assert data["results"][1] == {
        "name": "source-b.example",
        "status": "error",
        "error": "HTTP 404 Not Found",
    }
    assert ips == "1.0.0.1\n1.1.1.1"


@pytest.mark.asyncio
async def test_update_failure_returns_500(orchestrator):
    orchestrator.perform_update = AsyncMock(
        return_value={"success": False, "step": "fetching", "error": "boom"}
    )
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        resp = await client.post("/update")
        assert resp.status == 500
        assert await resp.json() == {"success": False, "step": "fetching", "error": "boom"}


@pytest.mark.asyncio
async def test_update_requires_post(orchestrator):
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        resp = await client.get("/update")
        assert resp.status == 405
        assert await resp.json() == {"error": "Method not allowed"}


@pytest.mark.asyncio
async def test_update_conflict_while_running(orchestrator):
    await orchestrator._lock.acquire()
    try:
        async with TestClient(TestServer(create_app(orchestrator))) as client:
            resp = await client.post("/update")
            assert resp.status == 409
            assert (await resp.json())["success"] is False
    finally:
        orchestrator._lock.release()


@pytest.mark.asyncio
async def test_unknown_route_and_method(orchestrator):
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        missing = await client.get("/does-not-exist")
        assert missing.status == 404
        assert await missing.json() == {"error": "Endpoint not found"}
        assert missing.headers["Access-Control-Allow-Origin"] == "*"

        wrong = await client.post("/ips")
        assert wrong.status == 405
        assert await wrong.json() == {"error": "Method not allowed"}


@pytest.mark.asyncio
async def test_cors_preflight(orchestrator):
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        resp = await client.options("/fast-ips")
        assert resp.status == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert "POST" in resp.headers["Access-Control-Allow-Methods"]


@pytest.mark.asyncio
async def test_missing_store_is_plain_500(settings):
    orchestrator = Orchestrator(settings, None, prober=FakeProber())
    async with TestClient(TestServer(create_app(orchestrator))) as client:
        resp = await client.get("/ips")
        assert resp.status == 500
        assert await resp.text() == "Key-value store is not configured"


@pytest.mark.asyncio
async def test_scheduler_follows_app_lifecycle(orchestrator):
    scheduler = MagicMock()
    scheduler.stop = AsyncMock()
    app = create_app(orchestrator, scheduler)
    assert app[SCHEDULER] is scheduler

    async with TestClient(TestServer(app)):
        scheduler.start.assert_called_once()
        scheduler.stop.assert_not_awaited()

    scheduler.stop.assert_awaited_once()
