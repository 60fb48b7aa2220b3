"""
Sliding window rate limiter for outbound web search calls.

Unlike an inbound limiter this never rejects: callers are suspended until
both the per-window budget and the minimum spacing allow another request.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict

import structlog

logger = structlog.get_logger(__name__)


class SlidingWindowRateLimiter:
    """At most ``max_requests`` per rolling ``window_seconds``, spaced by ``min_interval``."""

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Maximum requests allowed in window
            window_seconds: Rolling window length in seconds
            min_interval: Minimum spacing between two requests in seconds
            clock: Monotonic time source
            sleep: Coroutine used to suspend callers
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._history: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _clean_old_requests(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._history and self._history[0] <= cutoff:
            self._history.popleft()

    def _required_wait(self, now: float) -> float:
        wait = 0.0
        if len(self._history) >= self.max_requests:
            wait = self._history[0] + self.window_seconds - now
        if self._history:
            wait = max(wait, self._history[-1] + self.min_interval - now)
        return wait

    async def acquire(self) -> None:
        """Wait until a request may be sent, then record it."""
        async with self._lock:
            while True:
                now = self._clock()
                self._clean_old_requests(now)
                wait = self._required_wait(now)
                if wait <= 0:
                    break
                logger.debug(
                    "Rate limit reached, waiting",
                    wait_s=round(wait, 3),
                    window_count=len(self._history),
                    max_requests=self.max_requests,
                )
                await self._sleep(wait)
            self._history.append(self._clock())

    def usage(self) -> Dict[str, float]:
        now = self._clock()
        self._clean_old_requests(now)
        return {"requests_in_window": len(self._history), "max_requests": self.max_requests}
