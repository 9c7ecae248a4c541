"""
Core Module Package.

This package contains the infrastructure every other package
depends on.

Components:
- clock: Testable UTC clock
- constants: Timeframe, Candle and analysis source tags
- exceptions: Error taxonomy
"""

from .clock import ClockProtocol, MockClock, SystemClock, ensure_utc
from .constants import AnalysisSource, Candle, Timeframe
from .exceptions import (
    ConfigurationError,
    DuplicateKey,
    FeatureEngineError,
    InsufficientHistory,
    InternalComputationError,
    StorageError,
    UpstreamError,
    UpstreamMalformed,
    UpstreamUnavailable,
)

__all__ = [
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "ensure_utc",
    "AnalysisSource",
    "Candle",
    "Timeframe",
    "ConfigurationError",
    "DuplicateKey",
    "FeatureEngineError",
    "InsufficientHistory",
    "InternalComputationError",
    "StorageError",
    "UpstreamError",
    "UpstreamMalformed",
    "UpstreamUnavailable",
]
