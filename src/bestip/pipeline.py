from __future__ import annotations

import asyncio
import logging
import random
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

import httpx

from .config import AppSettings
from .errors import PipelineStepError, StorageUnavailableError
from .extractor import IPCollector
from .fetcher import fetch_sources
from .geolocation import GeoResolver, create_resolver
from .models import CandidateIP, FastSnapshot, FullSnapshot, ProbeResult
from .performance import PerformanceTracker
from .prober import LatencyProber
from .results import Result
from .selector import FastSetSelector
from .storage import KeyValueStore, SnapshotStore, SQLiteKeyValueStore

logger = logging.getLogger(__name__)

PipelineResult = Dict[str, Any]


class PipelineStage(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    RESOLVING = "resolving"
    STORING_FULL = "storing_full"
    SAMPLING = "sampling"
    PROBING = "probing"
    STORING_FAST = "storing_fast"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Orchestrator:
    """
    Runs the collection and probing pipeline against one snapshot store.

    Stages run strictly in order; an ``asyncio.Lock`` keeps a second trigger
    from overlapping a run in progress. Failures of single sources, geo
    batches or probes are recorded as data. Anything else aborts the run with
    a ``PipelineStepError`` naming the stage, and snapshots already written by
    earlier stages stay in place.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        kv: Optional[KeyValueStore] = None,
        *,
        resolver: Optional[GeoResolver] = None,
        prober: Optional[LatencyProber] = None,
        selector: Optional[FastSetSelector] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self.snapshots = SnapshotStore(kv)
        self.resolver = resolver or create_resolver(self.settings)
        self.prober = prober or LatencyProber.from_settings(self.settings)
        self.selector = selector or FastSetSelector.from_settings(
            self.settings, self.prober, rng=rng
        )
        self.http_client = http_client
        self.current_stage = PipelineStage.IDLE
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "Orchestrator":
        kv = SQLiteKeyValueStore(settings.STORAGE_PATH) if settings.STORAGE_PATH else None
        return cls(settings, kv)

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def _stage(self, stage: PipelineStage) -> Iterator[None]:
        self.current_stage = stage
        logger.debug("Pipeline stage: %s", stage.value)
        try:
            yield
        except PipelineStepError:
            raise
        except Exception as exc:
            raise PipelineStepError(stage.value, str(exc) or type(exc).__name__, exc) from exc

    def _require_storage(self) -> None:
        if self.snapshots.kv is None:
            error = StorageUnavailableError("Key-value store is not configured")
            raise PipelineStepError("storage", str(error), error)

    async def _full_update(self, tracker: PerformanceTracker) -> Dict[str, Any]:
        self._require_storage()

        with self._stage(PipelineStage.FETCHING), tracker.phase("fetch"):
            outcomes = await fetch_sources(
                self.settings.SOURCE_URLS,
                timeout=self.settings.FETCH_TIMEOUT,
                client=self.http_client,
            )

        with self._stage(PipelineStage.EXTRACTING), tracker.phase("extract"):
            collector = IPCollector()
            collector.add_outcomes(outcomes)
            unique_ips = collector.sorted_ips()
        logger.info("PIPELINE: Collected %d unique IPs.", len(unique_ips))

        with self._stage(PipelineStage.RESOLVING), tracker.phase("geo"):
            candidates = await self.resolver.resolve(unique_ips)

        with self._stage(PipelineStage.STORING_FULL), tracker.phase("store"):
            snapshot = FullSnapshot(candidates, utc_timestamp(), collector.results)
            self.snapshots.save_full(snapshot)

        return {"candidates": candidates, "results": collector.results}

    async def _fast_update(
        self, candidates: Sequence[CandidateIP], tracker: PerformanceTracker
    ) -> List[ProbeResult]:
        self._require_storage()

        with self._stage(PipelineStage.SAMPLING):
            targets = self.selector.sample(candidates)
        logger.info("PIPELINE: Probing %d of %d candidates.", len(targets), len(candidates))

        with self._stage(PipelineStage.PROBING), tracker.phase("probe"):
            successes = await self.selector.probe_all(targets)
            fast_ips = self.selector.rank(successes)
        logger.info(
            "PIPELINE: %d probes succeeded, %d failed, keeping %d.",
            len(successes),
            len(self.selector.failures),
            len(fast_ips),
        )

        # stored even when empty so the fast set never outlives its candidates
        with self._stage(PipelineStage.STORING_FAST), tracker.phase("store"):
            self.snapshots.save_fast(FastSnapshot(fast_ips, utc_timestamp()))

        return fast_ips

    async def run_full_update(self) -> PipelineResult:
        """Fetch, extract, geolocate and store the full snapshot."""
        async with self._lock:
            tracker = PerformanceTracker()
            try:
                full = await self._full_update(tracker)
            finally:
                self.current_stage = PipelineStage.IDLE
            return {
                "durationMs": tracker.elapsed_ms(),
                "totalIPs": len(full["candidates"]),
                "results": [r.to_dict() for r in full["results"]],
            }

    async def run_fast_update(
        self, candidates: Optional[Sequence[CandidateIP]] = None
    ) -> PipelineResult:
        """Sample, probe, rank and store the fast snapshot.

        Without explicit candidates the stored full snapshot is used.
        """
        async with self._lock:
            tracker = PerformanceTracker()
            try:
                if candidates is None:
                    with self._stage(PipelineStage.SAMPLING):
                        candidates = self.snapshots.load_candidates()
                fast_ips = await self._fast_update(candidates, tracker)
            finally:
                self.current_stage = PipelineStage.IDLE
            return {"fastIPs": [r.to_dict() for r in fast_ips]}

    async def perform_update(self) -> PipelineResult:
        """Full update followed by the fast update; never raises."""
        async with self._lock:
            tracker = PerformanceTracker()
            try:
                full = await self._full_update(tracker)
                fast_ips = await self._fast_update(full["candidates"], tracker)
            except PipelineStepError as exc:
                logger.error("Update failed during %s: %s", exc.step, exc.message)
                return exc.to_dict()
            except Exception as exc:  # pragma: no cover - stages wrap their own errors
                logger.error("Update failed with exception: %s", exc, exc_info=True)
                return {"success": False, "step": self.current_stage.value, "error": str(exc)}
            finally:
                self.current_stage = PipelineStage.IDLE

            snapshot = tracker.snapshot(
                ips_collected=len(full["candidates"]), ips_fast=len(fast_ips)
            )
            logger.info(
                "Update completed in %dms: %d IPs, %d fast",
                snapshot.duration_ms,
                snapshot.ips_collected,
                snapshot.ips_fast,
            )
            return {
                "success": True,
                "durationMs": snapshot.duration_ms,
                "totalIPs": len(full["candidates"]),
                "fastIPsCount": len(fast_ips),
                "results": [r.to_dict() for r in full["results"]],
                "metrics": snapshot.to_dict(),
            }

    async def probe_one(self, ip: str, known_country: Optional[str] = None) -> Result:
        return await self.prober.probe(ip, known_country)

    def get_full_snapshot(self) -> Dict[str, Any]:
        return self.snapshots.load_full()

    def get_fast_snapshot(self) -> Dict[str, Any]:
        return self.snapshots.load_fast()

    def close(self) -> None:
        close = getattr(self.resolver, "close", None)
        if close is not None:
            close()
