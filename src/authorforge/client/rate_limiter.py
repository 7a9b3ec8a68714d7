"""Rate limiting for provider requests"""

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
import logging
import time

from .configuration import RateLimitConfig

log = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter for outbound requests.

    Timestamps of completed requests are kept for one window; when the window
    is full, the next request waits for the oldest one to age out.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or RateLimitConfig()
        self.request_timestamps: deque[float] = deque()
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def request_context(self) -> AsyncIterator[None]:
        """Context manager for rate-limited requests"""
        async with self._lock:
            await self._wait_if_needed()
        try:
            yield
        finally:
            self._record_request()

    def _prune(self, now: float) -> None:
        while (
            self.request_timestamps
            and now - self.request_timestamps[0] > self.config.window_seconds
        ):
            self.request_timestamps.popleft()

    async def _wait_if_needed(self) -> None:
        """Wait if approaching rate limit before making request"""
        now = self._clock()
        self._prune(now)

        # At the limit, wait for the oldest request to age out
        if len(self.request_timestamps) >= self.config.requests_per_minute:
            sleep_time = (
                self.config.window_seconds - (now - self.request_timestamps[0]) + 1
            )
            if sleep_time > 0:
                log.info("Rate limit reached. Waiting %.2f seconds...", sleep_time)
                await self._sleep(sleep_time)
                self._prune(self._clock())

    def _record_request(self) -> None:
        """Record timestamp of completed request"""
        self.request_timestamps.append(self._clock())

    @property
    def in_window(self) -> int:
        """Requests recorded within the current window."""
        self._prune(self._clock())
        return len(self.request_timestamps)
