"""
Candle Repository.

============================================================
PURPOSE
============================================================
Owns normalized OHLCV bars per (token, timeframe).

- get_candles: ordered, ascending, tolerant of gaps
- append: fails with DuplicateKey on an existing identity
- append_many: idempotent batch write used by ingestion

Rows are never updated or deleted here.

============================================================
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.clock import ensure_utc
from core.constants import Candle, Timeframe
from storage.models.candles import CandleRecord
from storage.repositories.base import BaseRepository


class CandleRepository(BaseRepository[CandleRecord]):
    """Append-only access to stored candles."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, CandleRecord, "CandleRepository")

    # =========================================================
    # READS
    # =========================================================

    def get_candles(
        self,
        token_id: str,
        timeframe: Timeframe,
        start: datetime,
        end: datetime,
    ) -> List[Candle]:
        """
        Candles with start <= timestamp <= end, ascending.

        Missing bars are simply absent from the result.
        """
        timeframe = Timeframe.parse(timeframe)
        stmt = (
            select(CandleRecord)
            .where(
                CandleRecord.token_id == token_id,
                CandleRecord.timeframe == timeframe.value,
                CandleRecord.timestamp >= ensure_utc(start),
                CandleRecord.timestamp <= ensure_utc(end),
            )
            .order_by(CandleRecord.timestamp.asc())
        )
        return [record.to_candle() for record in self._execute_query(stmt)]

    def get_recent(
        self,
        token_id: str,
        timeframe: Timeframe,
        end: datetime,
        limit: int,
    ) -> List[Candle]:
        """The last `limit` candles at or before `end`, ascending."""
        timeframe = Timeframe.parse(timeframe)
        stmt = (
            select(CandleRecord)
            .where(
                CandleRecord.token_id == token_id,
                CandleRecord.timeframe == timeframe.value,
                CandleRecord.timestamp <= ensure_utc(end),
            )
            .order_by(CandleRecord.timestamp.desc())
            .limit(limit)
        )
        records = self._execute_query(stmt)
        return [record.to_candle() for record in reversed(records)]

    def latest_timestamp(self, token_id: str, timeframe: Timeframe) -> Optional[datetime]:
        timeframe = Timeframe.parse(timeframe)
        stmt = select(func.max(CandleRecord.timestamp)).where(
            CandleRecord.token_id == token_id,
            CandleRecord.timeframe == timeframe.value,
        )
        return self._scalar_datetime(stmt)

    def earliest_timestamp(self, token_id: str) -> Optional[datetime]:
        """Earliest known bar for the token across all timeframes."""
        stmt = select(func.min(CandleRecord.timestamp)).where(
            CandleRecord.token_id == token_id,
        )
        return self._scalar_datetime(stmt)

    def volume_between(
        self,
        token_ids: Sequence[str],
        timeframe: Timeframe,
        start: datetime,
        end: datetime,
    ) -> Dict[str, float]:
        """Summed volume per token of bars starting in [start, end)."""
        if not token_ids:
            return {}
        timeframe = Timeframe.parse(timeframe)
        stmt = (
            select(CandleRecord.token_id, func.sum(CandleRecord.volume))
            .where(
                CandleRecord.token_id.in_(list(token_ids)),
                CandleRecord.timeframe == timeframe.value,
                CandleRecord.timestamp >= ensure_utc(start),
                CandleRecord.timestamp < ensure_utc(end),
            )
            .group_by(CandleRecord.token_id)
        )
        try:
            rows = self._session.execute(stmt).all()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "volume_between")
        return {token_id: float(total or 0.0) for token_id, total in rows}

    # =========================================================
    # WRITES
    # =========================================================

    def append(self, candle: Candle) -> CandleRecord:
        """
        Append one candle.

        Raises:
            DuplicateKey: (token_id, timeframe, timestamp) already stored
        """
        return self._add(
            CandleRecord.from_candle(candle),
            key={
                "token_id": candle.token_id,
                "timeframe": candle.timeframe.value,
                "timestamp": candle.timestamp.isoformat(),
            },
        )

    def append_many(self, candles: Iterable[Candle]) -> int:
        """
        Append candles whose identity is not stored yet.

        Existing identities are skipped, so re-pulled overlap bars are a
        no-op. Returns the number of rows written.
        """
        by_series: Dict[tuple, Dict[datetime, Candle]] = {}
        for candle in candles:
            series = by_series.setdefault((candle.token_id, candle.timeframe.value), {})
            series.setdefault(candle.timestamp, candle)

        written = 0
        for (token_id, timeframe), series in by_series.items():
            stmt = select(CandleRecord.timestamp).where(
                CandleRecord.token_id == token_id,
                CandleRecord.timeframe == timeframe,
                CandleRecord.timestamp.in_(list(series)),
            )
            try:
                existing = {ensure_utc(ts) for ts in self._session.execute(stmt).scalars()}
            except SQLAlchemyError as e:
                self._handle_db_error(e, "append_many")

            fresh = [c for ts, c in sorted(series.items()) if ts not in existing]
            for candle in fresh:
                self._session.add(CandleRecord.from_candle(candle))
            written += len(fresh)

        try:
            self._session.flush()
        except SQLAlchemyError as e:
            self._session.rollback()
            self._handle_db_error(e, "append_many")

        self._logger.debug(f"append_many wrote {written} candles")
        return written

    # =========================================================
    # HELPERS
    # =========================================================

    def _scalar_datetime(self, stmt) -> Optional[datetime]:
        value = self._execute_scalar(stmt)
        if value is None:
            return None
        if isinstance(value, str):
            # Aggregates bypass the column type on SQLite
            value = datetime.fromisoformat(value)
        return ensure_utc(value)
