"""
Shared Test Fixtures.

============================================================
PURPOSE
============================================================
Fixtures used across the feature engine test suite.

- In-memory SQLite database with all tables created
- Deterministic clock
- Candle, transfer and token builders

============================================================
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import pytest

from core.clock import MockClock
from core.constants import Candle, Timeframe
from onchain_adapters.models import TransferClassification, TransferEvent
from prioritization.models import TokenMetadata
from storage.database import (
    create_all_tables,
    create_database_engine,
    create_session_factory,
    transaction_scope,
)
from storage.models.tokens import TokenRecord
from storage.repositories.candles import CandleRepository
from storage.repositories.tokens import TokenRegistryRepository


NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ============================================================
# BUILDERS
# ============================================================

def make_candles(
    token_id: str,
    timeframe: Timeframe,
    closes: Sequence[float],
    end: datetime = NOW,
    volume: float = 1_000.0,
    volumes: Optional[Sequence[float]] = None,
    spread: float = 0.0,
) -> List[Candle]:
    """
    Consecutive bars whose last bar starts at floor(end) - 1 bar.

    open == previous close, high/low = close +/- spread.
    """
    last_start = timeframe.floor(end) - timeframe.duration
    start = last_start - timeframe.duration * (len(closes) - 1)
    candles = []
    previous = closes[0]
    for i, close in enumerate(closes):
        candles.append(Candle(
            token_id=token_id,
            timeframe=timeframe,
            timestamp=start + timeframe.duration * i,
            open=previous,
            high=max(previous, close) + spread,
            low=min(previous, close) - spread,
            close=close,
            volume=volumes[i] if volumes is not None else volume,
        ))
        previous = close
    return candles


def make_transfer(
    signature: str,
    timestamp: datetime,
    amount_usd: Optional[float] = None,
    classification: TransferClassification = TransferClassification.BUY,
    token_id: str = "TOKEN",
    source: Optional[str] = "pool",
    destination: Optional[str] = None,
) -> TransferEvent:
    return TransferEvent(
        signature=signature,
        token_id=token_id,
        timestamp=timestamp,
        amount_token=100.0,
        amount_usd_estimate=amount_usd,
        source_wallet=source,
        destination_wallet=destination or f"wallet-{signature}",
        classification=classification,
    )


def make_token(token_id: str, **overrides) -> TokenMetadata:
    values = dict(
        symbol=token_id[:4].upper(),
        name=f"{token_id} token",
        decimals=9,
        logo_uri="https://example.invalid/logo.png",
        verified=True,
        liquidity_usd=250_000.0,
        market_cap_usd=5_000_000.0,
        volume_24h_usd=50_000.0,
    )
    values.update(overrides)
    return TokenMetadata(token_id=token_id, **values)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock() -> MockClock:
    return MockClock(NOW)


@pytest.fixture
def engine():
    engine = create_database_engine("sqlite:///:memory:")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store_candles(session_factory):
    """Persist candles and return the number written."""

    def store(candles: Sequence[Candle]) -> int:
        with transaction_scope(session_factory) as session:
            return CandleRepository(session).append_many(candles)

    return store


@pytest.fixture
def register_tokens(session_factory):
    """Persist TokenMetadata entries into the registry."""

    def register(tokens: Sequence[TokenMetadata]) -> None:
        with transaction_scope(session_factory) as session:
            repo = TokenRegistryRepository(session)
            for token in tokens:
                repo.upsert(TokenRecord(
                    token_id=token.token_id,
                    symbol=token.symbol,
                    name=token.name,
                    decimals=token.decimals,
                    logo_uri=token.logo_uri,
                    verified=token.verified,
                    liquidity_usd=token.liquidity_usd,
                    market_cap_usd=token.market_cap_usd,
                    volume_24h_usd=token.volume_24h_usd,
                    created_at=NOW - timedelta(days=30),
                ))

    return register
