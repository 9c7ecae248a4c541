"""
Token Registry ORM Model.

============================================================
PURPOSE
============================================================
Known tradable tokens with verification flag and basic
metadata. Read by the priority selector for its quality score
and volume tiers.

============================================================
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, UTCDateTime


class TokenRecord(Base):
    """One registry entry."""

    __tablename__ = "tokens"

    token_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Token mint / contract address"
    )

    symbol: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    decimals: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    logo_uri: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    market_cap_usd: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    liquidity_usd: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    volume_24h_usd: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment="Registry-reported 24h volume, used when candles are missing"
    )

    verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Listed on a curated token list"
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<TokenRecord({self.token_id} {self.symbol})>"
