"""
In-memory candle collector.

Serves pre-loaded candles; used by tests and offline runs.
"""

from datetime import datetime
from typing import Any, Iterable, List

from core.constants import Candle, Timeframe
from data_ingestion.collectors.base import BaseCandleCollector


class InMemoryCandleCollector(BaseCandleCollector):
    """Collector backed by a list of candles."""

    def __init__(self, candles: Iterable[Candle] = (), **kwargs) -> None:
        super().__init__(**kwargs)
        self._candles: List[Candle] = list(candles)
        self._failures: List[BaseException] = []
        self.requests: List[tuple] = []

    @property
    def name(self) -> str:
        return "memory"

    def add_candles(self, candles: Iterable[Candle]) -> None:
        self._candles.extend(candles)

    def fail_next(self, *errors: BaseException) -> None:
        """Raise these errors, in order, on the next fetches."""
        self._failures.extend(errors)

    async def fetch_raw(
        self,
        token_id: str,
        timeframe: Timeframe,
        start: datetime,
        end: datetime,
    ) -> Any:
        self.requests.append((token_id, timeframe, start, end))
        if self._failures:
            raise self._failures.pop(0)
        return [
            c for c in self._candles
            if c.token_id == token_id and c.timeframe == timeframe and start <= c.timestamp <= end
        ]

    def parse_candles(self, raw: Any, token_id: str, timeframe: Timeframe) -> List[Candle]:
        return list(raw)
