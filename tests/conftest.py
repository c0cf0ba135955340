import asyncio
import inspect
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from bestip.config import AppSettings  # noqa: E402
from bestip.models import ProbeResult  # noqa: E402
from bestip.results import Err, ErrorKind, Ok  # noqa: E402
from bestip.storage import InMemoryKeyValueStore  # noqa: E402

SOURCE_A = "https://source-a.example/list.txt"
SOURCE_B = "https://source-b.example/"
SOURCE_C = "https://source-c.example/ct/"
GEO_URL = "http://geo.example/batch"


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: coroutine test run on a fresh event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Run ``async def`` tests to completion on their own event loop."""
    func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(func):
        return None

    wanted = inspect.signature(func).parameters
    kwargs = {name: pyfuncitem.funcargs[name] for name in wanted if name in pyfuncitem.funcargs}

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        loop.run_until_complete(func(**kwargs))
        loop.run_until_complete(loop.shutdown_asyncgens())
    finally:
        asyncio.set_event_loop(None)
        loop.close()
    return True


class FakeProber:
    """Prober double answering from a table of ``ip -> latency`` (None fails)."""

    def __init__(self, latencies: Optional[Dict[str, Optional[float]]] = None, default=None):
        self.latencies = latencies or {}
        self.default = default
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, ip, known_country=None):
        self.calls.append(ip)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            latency = self.latencies.get(ip, self.default)
            if latency is None:
                return Err(ErrorKind.PROBE_FAILED, "Timeout after 3 seconds", ip)
            return Ok(ProbeResult(ip, float(latency), known_country or "UNK", "SJC"))
        finally:
            self.in_flight -= 1


@pytest.fixture(autouse=True)
def _restore_logging():
    """CLI commands reconfigure the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def settings():
    """Settings with three test sources and no pauses."""
    return AppSettings(
        SOURCE_URLS=(SOURCE_A, SOURCE_B, SOURCE_C),
        GEO_API_URL=GEO_URL,
        GEO_BACKEND="ip-api",
        GEO_BATCH_DELAY=0,
        PROBE_BATCH_DELAY=0,
        FAST_IP_COUNT=25,
        STORAGE_PATH="",
    )


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def fake_prober():
    return FakeProber(default=100.0)


@pytest.fixture
def mocker():
    """The subset of pytest-mock used here: ``patch`` plus the mock classes."""
    from unittest import mock

    class _Mocker:
        AsyncMock = mock.AsyncMock
        MagicMock = mock.MagicMock

        def __init__(self):
            self._patchers = []

        def patch(self, target, *args, **kwargs):
            patcher = mock.patch(target, *args, **kwargs)
            self._patchers.append(patcher)
            return patcher.start()

        def stopall(self):
            for patcher in reversed(self._patchers):
                patcher.stop()
            self._patchers.clear()

    helper = _Mocker()
    yield helper
    helper.stopall()
