from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from time import perf_counter
from typing import Any, DefaultDict, Dict, Iterator

PHASES = ("fetch", "extract", "geo", "store", "probe")


@dataclass
class PerformanceSnapshot:
    """Wall-clock seconds spent per phase of one update."""

    total_seconds: float
    fetch_seconds: float = 0.0
    extract_seconds: float = 0.0
    geo_seconds: float = 0.0
    store_seconds: float = 0.0
    probe_seconds: float = 0.0
    ips_collected: int = 0
    ips_fast: int = 0

    @property
    def duration_ms(self) -> int:
        return int(round(self.total_seconds * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "duration_ms": self.duration_ms}


class PerformanceTracker:
    """Accumulates time per named phase from construction onwards."""

    def __init__(self) -> None:
        self.started = perf_counter()
        self.durations: DefaultDict[str, float] = defaultdict(float)

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        """Add the time spent in the block to ``name``, even if it raises."""
        began = perf_counter()
        try:
            yield
        finally:
            self.durations[name] += perf_counter() - began

    def elapsed_ms(self) -> int:
        return int(round((perf_counter() - self.started) * 1000))

    def snapshot(self, *, ips_collected: int = 0, ips_fast: int = 0) -> PerformanceSnapshot:
        phases = {f"{name}_seconds": self.durations.get(name, 0.0) for name in PHASES}
        return PerformanceSnapshot(
            total_seconds=perf_counter() - self.started,
            ips_collected=ips_collected,
            ips_fast=ips_fast,
            **phases,
        )
