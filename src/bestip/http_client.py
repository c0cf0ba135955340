"""Shared HTTP client utilities for bestip."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from .constants import USER_AGENT

RESOLVE_OVERRIDE = "resolve_override"

DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=5.0)
POOL_LIMITS = httpx.Limits(max_keepalive_connections=20, max_connections=50)


class ResolveOverrideTransport(httpx.AsyncHTTPTransport):
    """Connect to the IP given in the ``resolve_override`` request extension.

    The URL host is swapped for the target IP so the connection pool dials
    that address, while the ``Host`` header and the TLS server name keep the
    original virtual host.
    """

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        target_ip = request.extensions.get(RESOLVE_OVERRIDE)
        if target_ip:
            host = request.url.host
            request.url = request.url.copy_with(host=target_ip)
            request.headers["Host"] = host
            request.extensions["sni_hostname"] = host

        return await super().handle_async_request(request)


@asynccontextmanager
async def get_client(
    timeout: Optional[float] = None,
    resolve_override: bool = False,
    follow_redirects: bool = True,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield a configured AsyncClient with sane defaults.

    With ``resolve_override`` the client honours per-request target IPs, which
    the latency prober uses to reach one edge address under a fixed host name.
    """
    transport: httpx.AsyncHTTPTransport
    if resolve_override:
        transport = ResolveOverrideTransport()
    else:
        transport = httpx.AsyncHTTPTransport()

    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout) if timeout is not None else DEFAULT_TIMEOUT,
        limits=POOL_LIMITS,
        headers={"accept": "*/*", "user-agent": USER_AGENT},
        follow_redirects=follow_redirects,
        transport=transport,
    ) as client:
        yield client
