"""
Feature Store Repository.

============================================================
PURPOSE
============================================================
Append-only persistence of TokenFeatureSnapshot plus the
"latest" projection consumed by the query layer.

============================================================
CONTRACT
============================================================
- append(snapshot): the only write; DuplicateKey when the
  (token_id, timeframe, timestamp) identity exists
- latest(token_id, timeframe): max-timestamp row
- latest_all(timeframe): one latest row per token
- query(timeframe, filters): predicates over the latest rows

No update or delete operations.

============================================================
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from core.clock import ensure_utc
from core.constants import AnalysisSource, Timeframe
from scoring_engine.models import TokenFeatureSnapshot
from storage.models.features import TokenFeatureRecord
from storage.repositories.base import BaseRepository


_COPIED_FIELDS = tuple(
    name for name in TokenFeatureSnapshot.field_names()
    if name not in ("timeframe", "analysis_source")
)


def snapshot_to_record(snapshot: TokenFeatureSnapshot) -> TokenFeatureRecord:
    values = {name: getattr(snapshot, name) for name in _COPIED_FIELDS}
    return TokenFeatureRecord(
        timeframe=snapshot.timeframe.value,
        analysis_source=snapshot.analysis_source.value,
        **values,
    )


def record_to_snapshot(record: TokenFeatureRecord) -> TokenFeatureSnapshot:
    values = {name: getattr(record, name) for name in _COPIED_FIELDS}
    return TokenFeatureSnapshot(
        timeframe=Timeframe.parse(record.timeframe),
        analysis_source=AnalysisSource(record.analysis_source),
        **values,
    )


class FeatureStoreRepository(BaseRepository[TokenFeatureRecord]):
    """Append-only feature snapshot store."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, TokenFeatureRecord, "FeatureStore")

    # =========================================================
    # WRITE
    # =========================================================

    def append(self, snapshot: TokenFeatureSnapshot) -> TokenFeatureRecord:
        """
        Persist one snapshot.

        Raises:
            DuplicateKey: identity already stored (callers treat as no-op)
        """
        record = self._add(
            snapshot_to_record(snapshot),
            key={
                "token_id": snapshot.token_id,
                "timeframe": snapshot.timeframe.value,
                "timestamp": snapshot.timestamp.isoformat(),
            },
        )
        self._logger.info(
            f"Stored snapshot {snapshot.token_id} {snapshot.timeframe.value} "
            f"{snapshot.timestamp.isoformat()} source={snapshot.analysis_source.value} "
            f"confidence={snapshot.data_confidence:.2f}"
        )
        return record

    # =========================================================
    # LATEST PROJECTION
    # =========================================================

    def latest(self, token_id: str, timeframe: Timeframe) -> Optional[TokenFeatureSnapshot]:
        """Row with the maximum timestamp, most recent ingestion on ties."""
        timeframe = Timeframe.parse(timeframe)
        stmt = (
            select(TokenFeatureRecord)
            .where(
                TokenFeatureRecord.token_id == token_id,
                TokenFeatureRecord.timeframe == timeframe.value,
            )
            .order_by(
                TokenFeatureRecord.timestamp.desc(),
                TokenFeatureRecord.feature_id.desc(),
            )
            .limit(1)
        )
        records = self._execute_query(stmt)
        return record_to_snapshot(records[0]) if records else None

    def latest_all(self, timeframe: Timeframe) -> List[TokenFeatureSnapshot]:
        """One latest row per token, ordered by token_id."""
        return self.query(timeframe, filters=())

    def query(self, timeframe: Timeframe, filters: Sequence = ()) -> List[TokenFeatureSnapshot]:
        """
        Latest row per token matching every filter.

        Args:
            timeframe: Projection timeframe
            filters: data_products.filters.FeatureFilter instances
        """
        timeframe = Timeframe.parse(timeframe)
        ranked = (
            select(
                TokenFeatureRecord.feature_id.label("feature_id"),
                func.row_number().over(
                    partition_by=TokenFeatureRecord.token_id,
                    order_by=(
                        TokenFeatureRecord.timestamp.desc(),
                        TokenFeatureRecord.feature_id.desc(),
                    ),
                ).label("row_rank"),
            )
            .where(TokenFeatureRecord.timeframe == timeframe.value)
            .subquery()
        )
        latest_ids = select(ranked.c.feature_id).where(ranked.c.row_rank == 1)

        row = aliased(TokenFeatureRecord)
        stmt = select(row).where(row.feature_id.in_(latest_ids))
        for feature_filter in filters:
            stmt = stmt.where(feature_filter.to_clause(row))
        stmt = stmt.order_by(row.token_id.asc())

        return [record_to_snapshot(record) for record in self._execute_query(stmt)]

    # =========================================================
    # SCHEDULING SUPPORT
    # =========================================================

    def last_computed_at(self, timeframe: Timeframe) -> Dict[str, datetime]:
        """Latest snapshot timestamp per token, used as last-enrichment time."""
        timeframe = Timeframe.parse(timeframe)
        stmt = (
            select(TokenFeatureRecord.token_id, func.max(TokenFeatureRecord.timestamp))
            .where(TokenFeatureRecord.timeframe == timeframe.value)
            .group_by(TokenFeatureRecord.token_id)
        )
        try:
            rows = self._session.execute(stmt).all()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "last_computed_at")
        return {token_id: _as_utc(ts) for token_id, ts in rows if ts is not None}

    def count(self, token_id: Optional[str] = None) -> int:
        if token_id is None:
            return self._count()
        return self._count(TokenFeatureRecord.token_id == token_id)


def _as_utc(value) -> datetime:
    if isinstance(value, str):
        # Aggregates bypass the column type on SQLite
        value = datetime.fromisoformat(value)
    return ensure_utc(value)
