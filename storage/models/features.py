"""
Token Feature Snapshot ORM Model.

============================================================
PURPOSE
============================================================
Append-only store of fused per-token, per-timeframe feature
snapshots.

============================================================
DATA LIFECYCLE
============================================================
- Mutability: IMMUTABLE (never updated in place)
- Identity: (token_id, timeframe, timestamp), one row at most
- Latest projection: max timestamp per (token_id, timeframe),
  ties broken by feature_id (ingestion order)
- Retention: external housekeeping

============================================================
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Float, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, UTCDateTime


class TokenFeatureRecord(Base):
    """One stored feature snapshot."""

    __tablename__ = "token_features"
    __table_args__ = (
        UniqueConstraint("token_id", "timeframe", "timestamp", name="uq_token_features_identity"),
        Index("ix_token_features_tf_token_ts", "timeframe", "token_id", "timestamp"),
    )

    feature_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Ingestion order"
    )

    token_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timeframe: Mapped[str] = mapped_column(String(8), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Technical
    vwap: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    vwap_distance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    vwap_upper_band: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    vwap_lower_band: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    vwap_band_position: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    support_level: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    resistance_level: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    support_distance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    resistance_distance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    trend_alignment_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    volume_profile_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    vwap_breakout_bullish: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    vwap_breakout_bearish: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    near_support: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    near_resistance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    trend_alignment_strong: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Behavioral
    whale_buys_24h: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    new_holders_24h: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    volume_spike_ratio: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    token_age_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Fusion
    smart_money_index: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    smart_money_bullish: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    data_confidence: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="[0, 1]; 0 only for error_fallback"
    )
    analysis_source: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="real_only | real_primary | hybrid | mathematical_fallback | error_fallback"
    )

    ingested_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<TokenFeatureRecord({self.token_id} {self.timeframe} "
            f"{self.timestamp.isoformat()} {self.analysis_source})>"
        )
