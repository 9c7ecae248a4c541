"""
Data Ingestion - Base Candle Collector.

============================================================
PURPOSE
============================================================
Abstract base class for OHLCV providers.

============================================================
DESIGN PRINCIPLES
============================================================
- No business logic - collection only
- Every response maps to Candles or to UpstreamMalformed
- Shared rate limiter and per-call timeout on each request
- Timestamps snapped to the start of their bucket

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, List, Optional, TypeVar

from core.clock import ensure_utc
from core.constants import Candle, Timeframe
from core.exceptions import UpstreamUnavailable
from onchain_adapters.rate_limiter import RateLimiter


T = TypeVar("T")


class BaseCandleCollector(ABC):
    """
    Abstract base class for candle collectors.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    - Fetch one raw OHLCV page for a time range
    - Parse it strictly into Candles
    - Respect the provider rate limit

    ============================================================
    """

    DEFAULT_TIMEOUT = 15.0

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._timeout = timeout
        self._rate_limiter = rate_limiter
        self._logger = logging.getLogger(f"collector.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier."""
        pass

    # =========================================================
    # ABSTRACT METHODS - Must be implemented by subclasses
    # =========================================================

    @abstractmethod
    async def fetch_raw(
        self,
        token_id: str,
        timeframe: Timeframe,
        start: datetime,
        end: datetime,
    ) -> Any:
        """
        Fetch one raw OHLCV response covering [start, end].

        Raises:
            UpstreamUnavailable: network, rate limit or HTTP errors
        """
        pass

    @abstractmethod
    def parse_candles(self, raw: Any, token_id: str, timeframe: Timeframe) -> List[Candle]:
        """
        Map a raw response to Candles.

        Raises:
            UpstreamMalformed: response shape not understood
        """
        pass

    # =========================================================
    # COLLECTION
    # =========================================================

    async def fetch_candles(
        self,
        token_id: str,
        timeframe: Timeframe,
        start: datetime,
        end: datetime,
    ) -> List[Candle]:
        """Candles with start <= timestamp <= end, ascending, one per bucket."""
        timeframe = Timeframe.parse(timeframe)
        start, end = ensure_utc(start), ensure_utc(end)

        raw = await self._call(self.fetch_raw(token_id, timeframe, start, end))
        candles = self.parse_candles(raw, token_id, timeframe)

        by_bucket = {}
        for candle in candles:
            if start <= candle.timestamp <= end:
                by_bucket.setdefault(candle.timestamp, candle)
        ordered = [by_bucket[ts] for ts in sorted(by_bucket)]

        self._logger.debug(
            f"[{self.name}] {token_id} {timeframe.value}: {len(ordered)} bars "
            f"in {start.isoformat()} .. {end.isoformat()}"
        )
        return ordered

    async def _call(self, coro: Awaitable[T]) -> T:
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(
                f"Timeout after {self._timeout:.1f}s",
                source=self.name,
                cause=e,
            ) from e

    async def close(self) -> None:
        """Release provider resources."""
        pass

    async def __aenter__(self) -> "BaseCandleCollector":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
