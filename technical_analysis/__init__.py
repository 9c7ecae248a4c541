"""
Technical Analysis Package.

Pure indicator computation over candle history.

Components:
- vwap: Rolling VWAP with deviation bands
- levels: Pivot support/resistance
- trend: Multi-timeframe EMA alignment
- volume_profile: Volume concentration at the current price
- calculator: Folds all indicators into snapshot fields
"""

from .calculator import IndicatorCalculator
from .config import (
    IndicatorConfig,
    LevelsConfig,
    PriceSource,
    TrendConfig,
    VolumeProfileConfig,
    VWAPConfig,
)
from .levels import compute_support_resistance
from .models import (
    SupportResistance,
    TechnicalIndicators,
    TrendAlignment,
    VolumeProfile,
    VWAPBands,
)
from .trend import compute_trend_alignment, ema
from .volume_profile import compute_volume_profile
from .vwap import compute_vwap_bands

__all__ = [
    "IndicatorCalculator",
    "IndicatorConfig",
    "LevelsConfig",
    "PriceSource",
    "TrendConfig",
    "VolumeProfileConfig",
    "VWAPConfig",
    "SupportResistance",
    "TechnicalIndicators",
    "TrendAlignment",
    "VolumeProfile",
    "VWAPBands",
    "compute_support_resistance",
    "compute_trend_alignment",
    "compute_volume_profile",
    "compute_vwap_bands",
    "ema",
]
