"""
Data Ingestion - Candle Ingestion Service.

============================================================
RESPONSIBILITY
============================================================
Keeps the candle repository current for every tracked
(token, timeframe) series.

- Resumes from the latest stored bar with a small overlap
- Backfills a per-timeframe number of days for new series
- Splits long ranges into provider-sized chunks
- Appends bars idempotently (existing identities are no-ops)

============================================================
DESIGN PRINCIPLES
============================================================
- No business logic - coordination only
- One transaction per stored chunk
- Failure isolation between series
- Storage failures are fatal

============================================================
WORKFLOW
============================================================
1. Read the latest stored bar for the series
2. Compute the fetch window (overlap or backfill)
3. For each chunk:
   a. Fetch through the retry policy
   b. Append new bars in one transaction
4. Report counts per series

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import sessionmaker

from core.clock import ClockProtocol, SystemClock
from core.constants import Timeframe
from core.exceptions import ConfigurationError, DuplicateKey, UpstreamError
from data_ingestion.collectors.base import BaseCandleCollector
from data_ingestion.types import IngestionMetrics, IngestionResult, IngestionStatus
from onchain_adapters.retry import RetryPolicy
from storage.database import transaction_scope
from storage.repositories.candles import CandleRepository


logger = logging.getLogger(__name__)


# ============================================================
# CONFIGURATION
# ============================================================


DEFAULT_BACKFILL_DAYS = {
    Timeframe.M1: 2,
    Timeframe.M5: 7,
    Timeframe.M15: 14,
    Timeframe.H1: 30,
    Timeframe.H4: 120,
    Timeframe.D1: 365,
}


@dataclass
class IngestionServiceConfig:
    """Configuration for the candle ingestion service."""

    timeframes: Tuple[Timeframe, ...] = (Timeframe.M15, Timeframe.H1, Timeframe.H4)

    # Bars re-requested before the latest stored bar
    overlap_bars: int = 3

    # Bars per provider request
    chunk_bars: int = 1000

    backfill_days: Dict[Timeframe, int] = field(
        default_factory=lambda: dict(DEFAULT_BACKFILL_DAYS)
    )

    def __post_init__(self) -> None:
        self.timeframes = tuple(Timeframe.parse(tf) for tf in self.timeframes)
        self.backfill_days = {
            Timeframe.parse(tf): int(days) for tf, days in self.backfill_days.items()
        }
        if self.overlap_bars < 0:
            raise ConfigurationError(
                "overlap_bars must be >= 0",
                config_key="ingestion.overlap_bars",
                actual_value=self.overlap_bars,
            )
        if self.chunk_bars < 1:
            raise ConfigurationError(
                "chunk_bars must be >= 1",
                config_key="ingestion.chunk_bars",
                actual_value=self.chunk_bars,
            )
        for tf, days in self.backfill_days.items():
            if days < 1:
                raise ConfigurationError(
                    f"backfill_days for {tf.value} must be >= 1",
                    config_key="ingestion.backfill_days",
                    actual_value=days,
                )

    def backfill_for(self, timeframe: Timeframe) -> timedelta:
        return timedelta(days=self.backfill_days.get(timeframe, 7))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IngestionServiceConfig":
        known = {"timeframes", "overlap_bars", "chunk_bars", "backfill_days"}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown ingestion settings: {', '.join(sorted(unknown))}",
                config_key="ingestion",
            )
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeframes": [tf.value for tf in self.timeframes],
            "overlap_bars": self.overlap_bars,
            "chunk_bars": self.chunk_bars,
            "backfill_days": {tf.value: days for tf, days in self.backfill_days.items()},
        }


# ============================================================
# INGESTION SERVICE
# ============================================================


class CandleIngestionService:
    """
    Incremental OHLCV ingestion into the candle repository.

    Args:
        collector: OHLCV provider
        session_factory: SQLAlchemy sessionmaker for the candle store
        config: Window and chunking settings
        retry_policy: Applied to each provider request
        clock: Source of "now"
    """

    def __init__(
        self,
        collector: BaseCandleCollector,
        session_factory: sessionmaker,
        config: Optional[IngestionServiceConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._collector = collector
        self._session_factory = session_factory
        self.config = config or IngestionServiceConfig()
        self._retry = retry_policy or RetryPolicy()
        self._clock = clock or SystemClock()
        self.metrics = IngestionMetrics()

    # =========================================================
    # WINDOW PLANNING
    # =========================================================

    def compute_window(
        self,
        timeframe: Timeframe,
        latest: Optional[datetime],
        now: datetime,
    ) -> Tuple[datetime, datetime]:
        """Fetch window: overlap before the latest bar, else the backfill period."""
        if latest is not None:
            start = latest - timeframe.duration * self.config.overlap_bars
        else:
            start = now - self.config.backfill_for(timeframe)
        return start, now

    def chunk_window(
        self,
        timeframe: Timeframe,
        start: datetime,
        end: datetime,
    ) -> List[Tuple[datetime, datetime]]:
        step = timeframe.duration * self.config.chunk_bars
        chunks = []
        cursor = start
        while cursor < end:
            chunk_end = min(end, cursor + step)
            chunks.append((cursor, chunk_end))
            cursor = chunk_end
        return chunks

    # =========================================================
    # INGESTION
    # =========================================================

    async def ingest(self, token_id: str, timeframe: Timeframe) -> IngestionResult:
        """
        Bring one series up to date.

        Upstream failures are reported on the result; storage failures
        propagate.
        """
        timeframe = Timeframe.parse(timeframe)
        now = self._clock.now()
        result = IngestionResult(token_id=token_id, timeframe=timeframe, started_at=now)

        with transaction_scope(self._session_factory) as session:
            latest = CandleRepository(session).latest_timestamp(token_id, timeframe)

        start, end = self.compute_window(timeframe, latest, now)
        result.window_start, result.window_end = start, end

        if end - start <= timeframe.duration:
            result.status = IngestionStatus.UP_TO_DATE
            return self._finish(result)

        try:
            for chunk_start, chunk_end in self.chunk_window(timeframe, start, end):
                candles = await self._retry.run(
                    lambda: self._collector.fetch_candles(token_id, timeframe, chunk_start, chunk_end),
                    description=f"{self._collector.name} {token_id} {timeframe.value}",
                )
                result.chunks += 1
                result.records_fetched += len(candles)
                if not candles:
                    continue

                written = self._store(candles)
                result.records_stored += written
                result.records_skipped += len(candles) - written

        except UpstreamError as e:
            result.status = IngestionStatus.FAILED
            result.errors.append(str(e))
            logger.warning(f"[ingestion] {token_id} {timeframe.value} failed: {e}")
            return self._finish(result)

        if result.records_stored:
            logger.info(
                f"[ingestion] {token_id} {timeframe.value}: stored {result.records_stored} bars "
                f"({result.records_skipped} already present)"
            )
        return self._finish(result)

    async def ingest_many(
        self,
        token_ids: Sequence[str],
        timeframes: Optional[Sequence[Timeframe]] = None,
    ) -> List[IngestionResult]:
        """Ingest every (token, timeframe) pair, one after another."""
        timeframes = tuple(timeframes or self.config.timeframes)
        results = []
        for timeframe in timeframes:
            for token_id in token_ids:
                results.append(await self.ingest(token_id, timeframe))

        failed = sum(1 for r in results if not r.is_success)
        logger.info(
            f"[ingestion] Run complete: {len(results)} series, "
            f"{sum(r.records_stored for r in results)} bars stored, {failed} failed"
        )
        return results

    def _store(self, candles) -> int:
        try:
            with transaction_scope(self._session_factory) as session:
                return CandleRepository(session).append_many(candles)
        except DuplicateKey:
            # Concurrent writer stored the same bars first
            logger.debug("[ingestion] Chunk already stored by another writer")
            return 0

    def _finish(self, result: IngestionResult) -> IngestionResult:
        result.completed_at = self._clock.now()
        self.metrics.record(result)
        return result
