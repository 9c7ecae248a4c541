"""
Technical Analysis Configuration - Indicator windows and thresholds.

All lookbacks are expressed in bars of the timeframe being analysed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from core.constants import Timeframe
from core.exceptions import ConfigurationError


class PriceSource(str, Enum):
    """Price used per bar in VWAP computation."""
    TYPICAL = "typical"  # (high + low + close) / 3
    CLOSE = "close"


@dataclass
class VWAPConfig:
    """Rolling VWAP and deviation bands."""
    window: int = 20
    price_source: PriceSource = PriceSource.TYPICAL
    band_multiplier: float = 2.0  # k

    def __post_init__(self) -> None:
        self.price_source = PriceSource(self.price_source)
        if self.window < 2:
            raise ConfigurationError("VWAP window must be >= 2", config_key="vwap.window",
                                     actual_value=self.window)
        if self.band_multiplier <= 0:
            raise ConfigurationError("band_multiplier must be positive",
                                     config_key="vwap.band_multiplier",
                                     actual_value=self.band_multiplier)

    def to_dict(self) -> dict[str, Any]:
        return {
            "window": self.window,
            "price_source": self.price_source.value,
            "band_multiplier": self.band_multiplier,
        }


@dataclass
class LevelsConfig:
    """Pivot-based support/resistance."""
    pivot_window: int = 3  # w bars on each side
    proximity_threshold: float = 0.02  # 2%

    def __post_init__(self) -> None:
        if self.pivot_window < 1:
            raise ConfigurationError("pivot_window must be >= 1", config_key="levels.pivot_window",
                                     actual_value=self.pivot_window)
        if not 0 <= self.proximity_threshold < 1:
            raise ConfigurationError("proximity_threshold must be in [0, 1)",
                                     config_key="levels.proximity_threshold",
                                     actual_value=self.proximity_threshold)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pivot_window": self.pivot_window,
            "proximity_threshold": self.proximity_threshold,
        }


@dataclass
class TrendConfig:
    """Multi-timeframe EMA alignment."""
    fast_period: int = 20
    slow_period: int = 50
    timeframes: tuple = (Timeframe.M15, Timeframe.H1, Timeframe.H4)
    strong_threshold: float = 0.75

    def __post_init__(self) -> None:
        self.timeframes = tuple(Timeframe.parse(tf) for tf in self.timeframes)
        if not 1 <= self.fast_period < self.slow_period:
            raise ConfigurationError("EMA periods must satisfy 1 <= fast < slow",
                                     config_key="trend.fast_period",
                                     actual_value=(self.fast_period, self.slow_period))
        if not self.timeframes:
            raise ConfigurationError("trend.timeframes must not be empty", config_key="trend.timeframes")
        if not 0 <= self.strong_threshold <= 1:
            raise ConfigurationError("strong_threshold must be in [0, 1]",
                                     config_key="trend.strong_threshold",
                                     actual_value=self.strong_threshold)

    @property
    def required_bars(self) -> int:
        return self.slow_period

    def to_dict(self) -> dict[str, Any]:
        return {
            "fast_period": self.fast_period,
            "slow_period": self.slow_period,
            "timeframes": [tf.value for tf in self.timeframes],
            "strong_threshold": self.strong_threshold,
        }


@dataclass
class VolumeProfileConfig:
    """Equal-width price bins over the lookback window."""
    lookback_bars: int = 50
    bins: int = 10

    def __post_init__(self) -> None:
        if self.lookback_bars < 2:
            raise ConfigurationError("lookback_bars must be >= 2",
                                     config_key="volume_profile.lookback_bars",
                                     actual_value=self.lookback_bars)
        if self.bins < 1:
            raise ConfigurationError("bins must be >= 1", config_key="volume_profile.bins",
                                     actual_value=self.bins)

    def to_dict(self) -> dict[str, Any]:
        return {"lookback_bars": self.lookback_bars, "bins": self.bins}


@dataclass
class IndicatorConfig:
    """Main configuration for the indicator calculator."""
    vwap: VWAPConfig = field(default_factory=VWAPConfig)
    levels: LevelsConfig = field(default_factory=LevelsConfig)
    trend: TrendConfig = field(default_factory=TrendConfig)
    volume_profile: VolumeProfileConfig = field(default_factory=VolumeProfileConfig)

    # Extra bars loaded beyond the longest lookback
    history_padding_bars: int = 10

    @property
    def lookback_bars(self) -> int:
        """Bars to load for the primary timeframe."""
        longest = max(
            self.vwap.window + 1,
            self.trend.required_bars,
            self.volume_profile.lookback_bars,
            2 * self.levels.pivot_window + 1,
        )
        return longest + self.history_padding_bars

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "IndicatorConfig":
        data = dict(data or {})
        sections = {
            "vwap": VWAPConfig,
            "levels": LevelsConfig,
            "trend": TrendConfig,
            "volume_profile": VolumeProfileConfig,
        }
        kwargs: dict[str, Any] = {}
        for name, section_class in sections.items():
            if name in data:
                kwargs[name] = section_class(**(data.pop(name) or {}))
        if "history_padding_bars" in data:
            kwargs["history_padding_bars"] = int(data.pop("history_padding_bars"))
        if data:
            raise ConfigurationError(
                f"Unknown indicator settings: {', '.join(sorted(data))}",
                config_key="indicators",
            )
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "vwap": self.vwap.to_dict(),
            "levels": self.levels.to_dict(),
            "trend": self.trend.to_dict(),
            "volume_profile": self.volume_profile.to_dict(),
            "history_padding_bars": self.history_padding_bars,
        }
