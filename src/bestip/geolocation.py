"""Country lookup for collected IPs.

The default backend posts batches of up to 100 addresses to the ip-api.com
batch endpoint, pausing between batches to stay under its rate limit. Any
failure degrades the affected IPs to ``"UNK"``; nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import geoip2.database
import geoip2.errors
import httpx

from .config import AppSettings
from .constants import UNKNOWN_COUNTRY
from .http_client import get_client
from .models import CandidateIP
from .results import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)


def chunked(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    return [items[start : start + size] for start in range(0, len(items), size)]


class GeoResolver:
    async def resolve(self, ips: Sequence[str]) -> List[CandidateIP]:
        raise NotImplementedError


class IPApiResolver(GeoResolver):
    """Bulk lookups against the ip-api.com batch endpoint."""

    def __init__(
        self,
        url: str,
        batch_size: int = 100,
        batch_delay: float = 1.0,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.timeout = timeout
        self.client = client
        self.failures: List[Err] = []

    async def lookup_batch(self, client: httpx.AsyncClient, batch: Sequence[str]) -> Result:
        """Map each IP of one batch to a country code."""
        try:
            response = await client.post(self.url, json=list(batch), timeout=self.timeout)
            if not response.is_success:
                return Err(ErrorKind.GEO_LOOKUP_FAILED, f"HTTP {response.status_code}", list(batch))
            payload = response.json()
        except httpx.HTTPError as e:
            return Err(ErrorKind.GEO_LOOKUP_FAILED, f"HTTP error: {e}", list(batch))
        except ValueError as e:
            return Err(ErrorKind.GEO_LOOKUP_FAILED, f"Invalid JSON: {e}", list(batch))

        if not isinstance(payload, list):
            return Err(ErrorKind.GEO_LOOKUP_FAILED, "Unexpected response shape", list(batch))

        countries: Dict[str, str] = {}
        for item in payload:
            if not isinstance(item, dict):
                continue
            query, code = item.get("query"), item.get("countryCode")
            if not isinstance(query, str) or not query:
                continue
            if item.get("status") == "success" and isinstance(code, str) and code:
                countries[query] = code
            else:
                countries[query] = UNKNOWN_COUNTRY
        return Ok(countries)

    async def resolve(self, ips: Sequence[str]) -> List[CandidateIP]:
        resolved: List[CandidateIP] = []
        self.failures = []
        batches = chunked(list(ips), self.batch_size)

        async def _run(client: httpx.AsyncClient) -> None:
            for index, batch in enumerate(batches):
                outcome = await self.lookup_batch(client, batch)
                if outcome.ok:
                    countries = outcome.value
                    resolved.extend(
                        CandidateIP(ip, countries.get(ip, UNKNOWN_COUNTRY)) for ip in batch
                    )
                else:
                    logger.warning(
                        "Geolocation batch %d/%d failed (%s); marking %d IPs as %s",
                        index + 1,
                        len(batches),
                        outcome.detail,
                        len(batch),
                        UNKNOWN_COUNTRY,
                    )
                    self.failures.append(outcome)
                    resolved.extend(CandidateIP(ip, UNKNOWN_COUNTRY) for ip in batch)

                if index < len(batches) - 1 and self.batch_delay > 0:
                    await asyncio.sleep(self.batch_delay)

        if self.client:
            await _run(self.client)
        else:
            async with get_client() as client:
                await _run(client)

        logger.info(
            "Geolocated %d IPs in %d batches (%d failed)",
            len(resolved),
            len(batches),
            len(self.failures),
        )
        return resolved


class MaxMindResolver(GeoResolver):
    """Offline lookups from a local GeoLite2/DB-IP country database."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.reader: Any = None
        if self.db_path.exists():
            self.reader = geoip2.database.Reader(str(self.db_path))
        else:
            logger.warning("GeoIP database %s not found; countries will be %s", db_path, UNKNOWN_COUNTRY)

    def lookup(self, ip: str) -> str:
        if self.reader is None:
            return UNKNOWN_COUNTRY
        try:
            return self.reader.country(ip).country.iso_code or UNKNOWN_COUNTRY
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return UNKNOWN_COUNTRY

    async def resolve(self, ips: Sequence[str]) -> List[CandidateIP]:
        return [CandidateIP(ip, self.lookup(ip)) for ip in ips]

    def close(self) -> None:
        if self.reader is not None:
            self.reader.close()
            self.reader = None


def create_resolver(settings: AppSettings) -> GeoResolver:
    if settings.GEO_BACKEND == "maxmind":
        return MaxMindResolver(settings.GEOIP_DB_PATH)
    return IPApiResolver(
        settings.GEO_API_URL,
        batch_size=settings.GEO_BATCH_SIZE,
        batch_delay=settings.GEO_BATCH_DELAY,
        timeout=settings.GEO_TIMEOUT,
    )
