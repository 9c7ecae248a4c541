"""
Data Ingestion Package.

This package keeps the candle repository current.
No business logic - only data acquisition.

Sub-packages:
- collectors: OHLCV providers

Main service:
- ingestion_service: Incremental, idempotent candle ingestion
"""

from data_ingestion.collectors import (
    BaseCandleCollector,
    BirdeyeCandleCollector,
    InMemoryCandleCollector,
    create_candle_collector,
)
from data_ingestion.ingestion_service import (
    DEFAULT_BACKFILL_DAYS,
    CandleIngestionService,
    IngestionServiceConfig,
)
from data_ingestion.types import IngestionMetrics, IngestionResult, IngestionStatus


__all__ = [
    # Service
    "CandleIngestionService",
    "IngestionServiceConfig",
    "DEFAULT_BACKFILL_DAYS",
    # Collectors
    "BaseCandleCollector",
    "BirdeyeCandleCollector",
    "InMemoryCandleCollector",
    "create_candle_collector",
    # Types
    "IngestionMetrics",
    "IngestionResult",
    "IngestionStatus",
]
