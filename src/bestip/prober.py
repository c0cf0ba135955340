import logging
import time
from typing import Dict, Optional

import httpx

from .config import AppSettings
from .constants import TRACE_PATH
from .http_client import RESOLVE_OVERRIDE, get_client
from .models import ProbeResult
from .results import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)


def parse_trace(text: str) -> Dict[str, str]:
    """Parse a ``/cdn-cgi/trace`` body of ``key=value`` lines."""
    data: Dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.strip().partition("=")
        if key and sep:
            data[key] = value
    return data


class LatencyProber:
    """Measures one trace round trip routed to a chosen edge IP.

    The request always targets ``https://<trace_host>/cdn-cgi/trace``; the
    connection itself is dialled to the probed IP. A probe is attempted once
    and never raises: failures come back as ``Err(PROBE_FAILED)``.
    """

    def __init__(
        self,
        trace_host: str = "1.1.1.1",
        timeout: float = 3.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.trace_host = trace_host
        self.timeout = timeout
        self.client = client

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "LatencyProber":
        return cls(trace_host=settings.TRACE_HOST, timeout=settings.PROBE_TIMEOUT)

    @property
    def trace_url(self) -> str:
        return f"https://{self.trace_host}{TRACE_PATH}"

    async def probe(self, ip: str, known_country: Optional[str] = None) -> Result:
        if self.client is not None:
            return await self._probe(self.client, ip, known_country)
        async with get_client(timeout=self.timeout, resolve_override=True) as client:
            return await self._probe(client, ip, known_country)

    async def _probe(
        self, client: httpx.AsyncClient, ip: str, known_country: Optional[str]
    ) -> Result:
        start_time = time.perf_counter()
        try:
            response = await client.get(
                self.trace_url,
                timeout=self.timeout,
                extensions={RESOLVE_OVERRIDE: ip},
            )
            if not response.is_success:
                return Err(ErrorKind.PROBE_FAILED, f"HTTP {response.status_code}", ip)
            text = response.text
        except httpx.TimeoutException:
            return Err(ErrorKind.PROBE_FAILED, f"Timeout after {self.timeout:g} seconds", ip)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return Err(ErrorKind.PROBE_FAILED, f"HTTP error: {str(e) or type(e).__name__}", ip)
        latency_ms = round((time.perf_counter() - start_time) * 1000, 2)

        trace = parse_trace(text)
        country = trace.get("loc") or known_country
        # colo is mandatory; loc may fall back to the known country
        if not trace.get("colo") or not country:
            return Err(ErrorKind.PROBE_FAILED, "Response is not a trace", ip)

        result = ProbeResult(ip=ip, latency_ms=latency_ms, country=country, colo=trace["colo"])
        logger.debug("Probe %s: %.2fms via %s", ip, latency_ms, result.colo)
        return Ok(result)


def failure_to_dict(failure: Err) -> Dict[str, object]:
    return {"success": False, "ip": failure.subject, "error": failure.detail}
