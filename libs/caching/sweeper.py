"""Background task that periodically evicts expired cache entries."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class PeriodicSweeper:
    """Runs ``sweep`` every ``interval`` seconds until stopped."""

    def __init__(self, name: str, interval: float, sweep: Callable[[], int]):
        self.name = name
        self.interval = interval
        self._sweep = sweep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"sweeper:{self.name}")
        logger.debug("Cache sweeper started", cache=self.name, interval_s=self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Cache sweeper stopped", cache=self.name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                removed = self._sweep()
            except Exception as e:
                logger.error("Cache sweep failed", cache=self.name, error=str(e))
                continue
            if removed:
                logger.info("Expired cache entries evicted", cache=self.name, removed=removed)
