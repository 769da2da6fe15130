"""Request rate limiter shared by every caller of one external source.

Allows at most `capacity` requests in any `period`-second window. Waiters
queue on a lock, so requests leave in arrival order.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter over outbound requests."""

    def __init__(
        self,
        name: str,
        capacity: int,
        period: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            name: Source name, for logs
            capacity: Requests allowed per window
            period: Window length in seconds
            clock: Monotonic clock, injectable for tests
            sleep: Async sleep, injectable for tests
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")

        self.name = name
        self.capacity = capacity
        self.period = period
        self._clock = clock
        self._sleep = sleep
        self._sent: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _cleanup(self, now: float) -> None:
        cutoff = now - self.period
        while self._sent and self._sent[0] <= cutoff:
            self._sent.popleft()

    def get_delay_until_ready(self) -> float:
        """Seconds until another request may be sent (0 if ready now)."""
        now = self._clock()
        self._cleanup(now)
        if len(self._sent) < self.capacity:
            return 0.0
        return max(self._sent[0] + self.period - now, 0.0)

    async def acquire(self) -> float:
        """
        Wait for a slot and record the request.

        Returns:
            Delay that was applied, in seconds
        """
        async with self._lock:
            delay = self.get_delay_until_ready()
            if delay > 0:
                logger.debug("%s rate limit: waiting %.3fs", self.name, delay)
                await self._sleep(delay)
                self._cleanup(self._clock())
            self._sent.append(self._clock())
            return delay

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None
