"""
Candle ORM Model.

============================================================
PURPOSE
============================================================
Stores normalized OHLCV bars per (token, timeframe).

============================================================
DATA LIFECYCLE
============================================================
- Mutability: IMMUTABLE (append-only)
- Identity: (token_id, timeframe, timestamp)
- Late corrections arrive as new rows with a later ingested_at,
  never as overwrites

============================================================
"""

from datetime import datetime

from sqlalchemy import Float, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import Candle
from storage.models.base import Base, UTCDateTime


class CandleRecord(Base):
    """One stored OHLCV bar."""

    __tablename__ = "candles"
    __table_args__ = (
        UniqueConstraint("token_id", "timeframe", "timestamp", name="uq_candles_identity"),
        Index("ix_candles_token_tf_ts", "token_id", "timeframe", "timestamp"),
    )

    candle_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Ingestion order"
    )

    token_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Token mint / contract address"
    )

    timeframe: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        comment="Bar duration (1m, 5m, 15m, 1h, 4h, 1d)"
    )

    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        comment="Bar open time (UTC)"
    )

    open: Mapped[float] = mapped_column(Float, nullable=False)
    high: Mapped[float] = mapped_column(Float, nullable=False)
    low: Mapped[float] = mapped_column(Float, nullable=False)
    close: Mapped[float] = mapped_column(Float, nullable=False)

    volume: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Quote (USD) volume"
    )

    ingested_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        server_default=func.now(),
        comment="When the bar was written"
    )

    @classmethod
    def from_candle(cls, candle: Candle) -> "CandleRecord":
        return cls(
            token_id=candle.token_id,
            timeframe=candle.timeframe.value,
            timestamp=candle.timestamp,
            open=candle.open,
            high=candle.high,
            low=candle.low,
            close=candle.close,
            volume=candle.volume,
        )

    def to_candle(self) -> Candle:
        return Candle(
            token_id=self.token_id,
            timeframe=self.timeframe,
            timestamp=self.timestamp,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
        )

    def __repr__(self) -> str:
        return f"<CandleRecord({self.token_id} {self.timeframe} {self.timestamp.isoformat()})>"
