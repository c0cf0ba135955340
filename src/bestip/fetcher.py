"""
Source fetching

Each configured list is retrieved once, one after another, with its own
timeout. A failing source is recorded and never stops the others.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple
from urllib.parse import urlparse

import httpx

from .http_client import get_client
from .results import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

FetchOutcome = Tuple[str, Result]


class FetcherError(Exception):
    """Raised for a response that arrived but cannot be used"""


def source_name(url: str) -> str:
    """Hostname of a source URL, or the URL itself when it has none."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return url
    return host or url


async def fetch_source(client: httpx.AsyncClient, source: str, timeout: float = 5.0) -> Result:
    """
    Fetch the raw text of one source.

    Args:
        client: Async HTTP client
        source: URL to fetch
        timeout: Maximum time to wait for the whole response

    Returns:
        Ok with the body text, or Err(SOURCE_UNAVAILABLE) with a readable cause
    """
    parsed_url = urlparse(source)
    if parsed_url.scheme not in ("http", "https") or not parsed_url.netloc:
        logger.error("URL validation failed for %s", source)
        return Err(ErrorKind.SOURCE_UNAVAILABLE, f"Invalid URL format: {source}", source)

    try:
        response = await client.get(source, timeout=timeout)
        if not response.is_success:
            reason = response.reason_phrase or "error"
            raise FetcherError(f"HTTP {response.status_code} {reason}".strip())
        text = response.text
    except httpx.TimeoutException:
        detail = f"Timeout after {timeout:g} seconds"
        logger.warning("Timeout fetching %s", source)
    except FetcherError as e:
        detail = str(e)
        logger.warning("HTTP error fetching %s: %s", source, e)
    except httpx.HTTPError as e:
        detail = f"HTTP error: {e}" if str(e) else f"HTTP error: {type(e).__name__}"
        logger.warning("HTTP error fetching %s: %s", source, detail)
    else:
        logger.info("Fetched %d bytes from %s (Status: %d)", len(text), source, response.status_code)
        return Ok(text)

    return Err(ErrorKind.SOURCE_UNAVAILABLE, detail, source)


async def fetch_sources(
    sources: Sequence[str],
    timeout: float = 5.0,
    client: httpx.AsyncClient | None = None,
) -> List[FetchOutcome]:
    """
    Fetch every source sequentially.

    Args:
        sources: Ordered source URLs
        timeout: Timeout per source
        client: Optional httpx.AsyncClient to use for requests.

    Returns:
        ``(url, outcome)`` pairs in input order
    """
    results: List[FetchOutcome] = []

    async def _run(http_client: httpx.AsyncClient) -> None:
        for source in sources:
            results.append((source, await fetch_source(http_client, source, timeout)))

    if client:
        await _run(client)
    else:
        async with get_client() as new_client:
            await _run(new_client)

    successful = sum(1 for _, outcome in results if outcome.ok)
    logger.info("Fetch complete: %d/%d sources successful", successful, len(sources))
    return results
