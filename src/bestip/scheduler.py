from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List

from .pipeline import Orchestrator

logger = logging.getLogger(__name__)


@dataclass
class UpdateJobResult:
    success: bool
    total_ips: int
    fast_ips: int
    error: str | None = None
    raw: Dict[str, Any] = field(default_factory=dict)


class UpdateScheduler:
    """Timer trigger that runs a full update every ``interval``."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        interval: timedelta = timedelta(hours=1),
        run_immediately: bool = True,
    ) -> None:
        self.orchestrator = orchestrator
        self.interval = interval
        self.run_immediately = run_immediately
        self.history: List[UpdateJobResult] = []
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    async def run_once(self) -> UpdateJobResult:
        logger.info("Running scheduled IP update...")
        result = await self.orchestrator.perform_update()
        job = UpdateJobResult(
            success=bool(result.get("success")),
            total_ips=int(result.get("totalIPs", 0)),
            fast_ips=int(result.get("fastIPsCount", 0)),
            error=result.get("error"),
            raw=result,
        )
        self.history.append(job)
        return job

    async def _wait(self) -> bool:
        """Sleep for one interval; True when stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval.total_seconds())
        except asyncio.TimeoutError:
            return False
        return True

    async def _loop(self) -> None:
        if not self.run_immediately and await self._wait():
            return
        while not self._stop_event.is_set():
            await self.run_once()
            if await self._wait():
                return

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        """Stop the loop and wait for the task, including a run in progress."""
        self._stop_event.set()
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
