"""Sliding-window rate limiter: one-minute budget plus a one-second burst cap.

Timestamps are kept per source in arrival order and evicted once they fall
out of the minute window, so each history never holds more than
``requests_per_minute`` entries.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

from jobdorker.core.cancellation import CancellationToken, check_cancelled
from jobdorker.core.config import RateLimitConfig
from jobdorker.core.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

MINUTE_WINDOW_S = 60.0
BURST_WINDOW_S = 1.0
MIN_WAIT_S = 0.001


class RateLimiter:
    """Grants request slots per source id.

    Usage::

        limiter = RateLimiter(RateLimitConfig(requests_per_minute=30, burst_limit=5))
        await limiter.wait_for_slot("indeed")
        ...  # issue exactly one request
    """

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._requests_per_minute = config.requests_per_minute
        self._burst_limit = config.burst_limit
        self._clock = clock
        self._sleep = sleep
        self._history: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    async def wait_for_slot(
        self, source_id: str, cancel: CancellationToken | None = None,
    ) -> float:
        """Suspend until a request may be issued, then record it.

        Returns the total time spent waiting.
        """
        waited = 0.0
        while True:
            check_cancelled(cancel)
            async with self._lock:
                try:
                    self._try_acquire(source_id)
                    return waited
                except RateLimitExceeded as e:
                    delay = e.retry_after_s
            logger.debug("Rate limit for '%s': waiting %.2fs", source_id, delay)
            await self._sleep(delay)
            waited += delay

    def reset(self) -> None:
        """Forget every recorded request."""
        self._history.clear()

    def recorded(self, source_id: str) -> int:
        """Number of requests currently inside the minute window."""
        history = self._history.get(source_id)
        if not history:
            return 0
        self._evict(history, self._clock())
        return len(history)

    def _try_acquire(self, source_id: str) -> None:
        now = self._clock()
        history = self._history.setdefault(source_id, deque())
        self._evict(history, now)

        wait = 0.0
        if len(history) >= self._requests_per_minute:
            wait = max(MIN_WAIT_S, history[0] + MINUTE_WINDOW_S - now)

        in_burst = self._count_in_burst(history, now)
        if in_burst >= self._burst_limit:
            oldest_in_burst = history[len(history) - in_burst]
            wait = max(wait, MIN_WAIT_S, oldest_in_burst + BURST_WINDOW_S - now)

        if wait > 0:
            raise RateLimitExceeded(source_id, wait)
        history.append(now)

    @staticmethod
    def _evict(history: deque[float], now: float) -> None:
        while history and now - history[0] >= MINUTE_WINDOW_S:
            history.popleft()

    @staticmethod
    def _count_in_burst(history: deque[float], now: float) -> int:
        count = 0
        for ts in reversed(history):
            if now - ts >= BURST_WINDOW_S:
                break
            count += 1
        return count
