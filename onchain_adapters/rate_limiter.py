"""
Shared Rate Limiter for upstream providers.

============================================================
PURPOSE
============================================================
Token bucket shared by every worker that calls the same
provider. It is the only state workers share.

- Permit acquisition is serialized by an asyncio.Lock
- A 429 from the provider drains the bucket and blocks new
  permits for the Retry-After period
- Only upstream calls acquire permits; indicator computation
  never waits on it

============================================================
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.clock import ClockProtocol, SystemClock


logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Async token bucket.

    Args:
        requests_per_second: Sustained refill rate
        burst: Bucket capacity
        clock: Source of monotonic readings
        sleep: Awaitable sleep (injected for tests)
    """

    def __init__(
        self,
        requests_per_second: float = 3.0,
        burst: int = 3,
        clock: Optional[ClockProtocol] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        default_penalty_seconds: float = 5.0,
    ) -> None:
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self._rate = float(requests_per_second)
        self._capacity = float(burst)
        self._clock = clock or SystemClock()
        self._sleep = sleep
        self._default_penalty = default_penalty_seconds

        self._tokens = self._capacity
        self._last_refill = self._clock.monotonic()
        self._blocked_until = 0.0
        self._lock = asyncio.Lock()

        self._granted = 0
        self._total_wait = 0.0

    async def acquire(self) -> float:
        """
        Wait for one permit.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        async with self._lock:
            while True:
                now = self._clock.monotonic()
                self._refill(now)

                if now < self._blocked_until:
                    delay = self._blocked_until - now
                elif self._tokens >= 1.0:
                    self._tokens -= 1.0
                    self._granted += 1
                    self._total_wait += waited
                    return waited
                else:
                    delay = (1.0 - self._tokens) / self._rate

                await self._sleep(delay)
                waited += delay

    def record_rate_limited(self, retry_after_seconds: Optional[float] = None) -> None:
        """Drain the bucket after the provider answered 429."""
        penalty = retry_after_seconds if retry_after_seconds is not None else self._default_penalty
        now = self._clock.monotonic()
        self._tokens = 0.0
        self._last_refill = now
        self._blocked_until = max(self._blocked_until, now + penalty)
        logger.warning(f"[rate_limiter] Provider rate limit hit, pausing permits for {penalty:.1f}s")

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last_refill = now

    @property
    def available(self) -> float:
        self._refill(self._clock.monotonic())
        return self._tokens

    def get_stats(self) -> dict:
        return {
            "requests_per_second": self._rate,
            "burst": int(self._capacity),
            "granted": self._granted,
            "total_wait_seconds": round(self._total_wait, 3),
        }
