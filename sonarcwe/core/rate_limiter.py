"""
Rate limiting for async API calls.

Timestamps are kept in a deque so expired entries are dropped from the
left in O(1). Waiting uses asyncio.sleep so the event loop keeps serving
other fetches while one caller is throttled.
"""

import asyncio
import time
from collections import deque

from ..constants import (
    NVD_RATE_LIMIT_CALLS,
    NVD_RATE_LIMIT_PERIOD,
    NVD_RATE_LIMIT_WITH_KEY_CALLS,
)


class RateLimiter:
    """Sliding-window rate limiter for coroutines sharing one event loop."""

    def __init__(self, calls: int, period: float):
        """Initialize rate limiter.

        Args:
            calls: Number of calls allowed in the period
            period: Time period in seconds
        """
        self.calls = calls
        self.period = period
        self._timestamps: deque[float] = deque()
        self._lock: asyncio.Lock | None = None

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so the lock binds to the loop that first uses it
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _prune(self, now: float) -> None:
        cutoff = now - self.period
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    async def acquire(self) -> None:
        """Wait until another call fits in the window, then record it."""
        async with self._get_lock():
            now = time.monotonic()
            self._prune(now)

            if len(self._timestamps) >= self.calls:
                wait_time = self.period - (now - self._timestamps[0]) + 0.1
                if wait_time > 0:
                    await asyncio.sleep(wait_time)
                    now = time.monotonic()
                    self._prune(now)

            self._timestamps.append(now)

    @property
    def timestamps(self) -> list[float]:
        return list(self._timestamps)


class APIRateLimiters:
    """Manage rate limiters for different APIs."""

    def __init__(self) -> None:
        self.limiters: dict[str, RateLimiter] = {}

    def get_limiter(self, api_name: str, calls: int, period: float) -> RateLimiter:
        if api_name not in self.limiters:
            self.limiters[api_name] = RateLimiter(calls, period)
        return self.limiters[api_name]


# Global rate limiters instance
rate_limiters = APIRateLimiters()


def get_nvd_rate_limiter(has_api_key: bool) -> RateLimiter:
    """Get the appropriate NVD rate limiter."""
    if has_api_key:
        return rate_limiters.get_limiter(
            "nvd_with_key", NVD_RATE_LIMIT_WITH_KEY_CALLS, NVD_RATE_LIMIT_PERIOD
        )
    return rate_limiters.get_limiter("nvd_no_key", NVD_RATE_LIMIT_CALLS, NVD_RATE_LIMIT_PERIOD)
