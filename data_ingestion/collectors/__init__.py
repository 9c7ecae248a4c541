"""
Data Ingestion - Collectors Package.

OHLCV providers feeding the candle repository.

Collectors:
- birdeye: Birdeye public API
- memory: pre-loaded candles (tests, offline runs)
"""

from typing import Optional

from core.exceptions import ConfigurationError
from data_ingestion.collectors.base import BaseCandleCollector
from data_ingestion.collectors.birdeye import BIRDEYE_INTERVALS, BirdeyeCandleCollector
from data_ingestion.collectors.memory import InMemoryCandleCollector


COLLECTORS = {"birdeye", "memory"}


def create_candle_collector(
    provider: str,
    api_key: Optional[str] = None,
    **kwargs,
) -> BaseCandleCollector:
    """Build the collector named `provider`."""
    if provider == "birdeye":
        return BirdeyeCandleCollector(api_key=api_key, **kwargs)
    if provider == "memory":
        return InMemoryCandleCollector(**kwargs)
    raise ConfigurationError(
        f"Unknown candle provider: {provider}",
        config_key="candle_provider",
        actual_value=provider,
    )


__all__ = [
    "BIRDEYE_INTERVALS",
    "COLLECTORS",
    "BaseCandleCollector",
    "BirdeyeCandleCollector",
    "InMemoryCandleCollector",
    "create_candle_collector",
]
