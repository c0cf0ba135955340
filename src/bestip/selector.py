"""
Fast-set selection.

Probes a random sample of candidates in small concurrent batches, keeps the
successful probes and ranks them by latency:
- Sample up to ``sample_size`` candidates uniformly
- Probe ``batch_size`` at a time; every probe in a batch settles before the next
- Sort successes by latency (stable) and keep the best ``top_n``
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import List, Optional, Sequence

from .config import AppSettings
from .models import CandidateIP, ProbeResult
from .prober import LatencyProber
from .results import Err
from .sampling import sample_without_replacement

logger = logging.getLogger(__name__)


class FastSetSelector:
    def __init__(
        self,
        prober: LatencyProber,
        top_n: int = 25,
        sample_size: int = 100,
        batch_size: int = 5,
        batch_delay: float = 0.5,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.prober = prober
        self.top_n = top_n
        self.sample_size = sample_size
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.rng = rng or random.Random()
        self.failures: List[Err] = []

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        prober: LatencyProber,
        rng: Optional[random.Random] = None,
    ) -> "FastSetSelector":
        return cls(
            prober,
            top_n=settings.FAST_IP_COUNT,
            sample_size=settings.PROBE_SAMPLE_SIZE,
            batch_size=settings.PROBE_BATCH_SIZE,
            batch_delay=settings.PROBE_BATCH_DELAY,
            rng=rng,
        )

    def sample(self, candidates: Sequence[CandidateIP]) -> List[CandidateIP]:
        return sample_without_replacement(candidates, self.sample_size, self.rng)

    async def probe_all(self, targets: Sequence[CandidateIP]) -> List[ProbeResult]:
        """Probe targets batch by batch, returning successes in discovery order."""
        successes: List[ProbeResult] = []
        self.failures = []
        total_batches = (len(targets) + self.batch_size - 1) // self.batch_size

        for index, start in enumerate(range(0, len(targets), self.batch_size)):
            batch = targets[start : start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.prober.probe(item.ip, item.country) for item in batch),
                return_exceptions=True,
            )
            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error("Unhandled exception probing %s: %s", item.ip, outcome)
                    continue
                if outcome.ok:
                    successes.append(outcome.value)
                else:
                    self.failures.append(outcome)

            if index < total_batches - 1 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        return successes

    def rank(self, results: Sequence[ProbeResult]) -> List[ProbeResult]:
        return sorted(results, key=lambda r: r.latency_ms)[: self.top_n]
