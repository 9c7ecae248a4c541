"""
Smart Money / Behavioral Metrics Module.

Derives behavioral signals from transfer-level activity:
whale buys, new holders, volume spikes and token age. When the
transfer feed cannot back a field it is estimated from price/volume
shape, and the snapshot's confidence and analysis source say so.

Usage:
    from smart_money import BehavioralMetricsCalculator, build_market_context

    calculator = BehavioralMetricsCalculator()
    market = build_market_context(hourly_candles, now, calculator.config)

    metrics = calculator.compute(token_id, transfer_batch, market, now)

    print(f"Whale buys: {metrics.whale_buys_24h}")
    print(f"Source: {metrics.analysis_source.value}")
    print(f"Confidence: {metrics.data_confidence:.2f}")
"""

from .calculator import BehavioralMetricsCalculator
from .confidence import classify_source, compute_confidence
from .config import BehavioralConfig, ConfidenceWeights
from .estimator import FallbackEstimator
from .market import build_market_context
from .models import BehavioralMetrics, MarketContext, Provenance


__all__ = [
    "BehavioralMetricsCalculator",
    "BehavioralConfig",
    "ConfidenceWeights",
    "BehavioralMetrics",
    "MarketContext",
    "Provenance",
    "FallbackEstimator",
    "build_market_context",
    "classify_source",
    "compute_confidence",
]
