"""
Technical Analysis Models - Indicator results.

Each indicator returns its own result object; the calculator folds
them into TechnicalIndicators, whose fields map one-to-one onto the
technical half of a feature snapshot.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from core.constants import Timeframe


@dataclass(frozen=True)
class VWAPBands:
    vwap: float
    upper: float
    lower: float
    sigma: float
    distance: Optional[float]
    band_position: Optional[float]  # None when upper == lower
    breakout_bullish: bool = False
    breakout_bearish: bool = False


@dataclass(frozen=True)
class SupportResistance:
    support_level: Optional[float]
    resistance_level: Optional[float]
    support_distance: Optional[float]
    resistance_distance: Optional[float]
    near_support: bool = False
    near_resistance: bool = False


@dataclass(frozen=True)
class TrendAlignment:
    score: Optional[float]
    strong: bool
    primary_sign: int
    signs: dict = field(default_factory=dict)  # Timeframe -> -1/0/1
    excluded: tuple = ()

    @property
    def compared(self) -> int:
        return len(self.signs)


@dataclass(frozen=True)
class VolumeProfile:
    score: Optional[float]
    bin_index: int
    bin_volumes: tuple
    low: float
    high: float


@dataclass
class TechnicalIndicators:
    """Technical snapshot fields for one (token, timeframe)."""
    vwap: Optional[float] = None
    vwap_distance: Optional[float] = None
    vwap_upper_band: Optional[float] = None
    vwap_lower_band: Optional[float] = None
    vwap_band_position: Optional[float] = None
    support_level: Optional[float] = None
    resistance_level: Optional[float] = None
    support_distance: Optional[float] = None
    resistance_distance: Optional[float] = None
    trend_alignment_score: Optional[float] = None
    volume_profile_score: Optional[float] = None
    vwap_breakout_bullish: bool = False
    vwap_breakout_bearish: bool = False
    near_support: bool = False
    near_resistance: bool = False
    trend_alignment_strong: bool = False

    # Not persisted: which indicators came back empty
    timeframe: Optional[Timeframe] = field(default=None, repr=False)
    missing: list = field(default_factory=list, repr=False)

    def apply_vwap(self, bands: VWAPBands) -> None:
        self.vwap = bands.vwap
        self.vwap_distance = bands.distance
        self.vwap_upper_band = bands.upper
        self.vwap_lower_band = bands.lower
        self.vwap_band_position = bands.band_position
        self.vwap_breakout_bullish = bands.breakout_bullish
        self.vwap_breakout_bearish = bands.breakout_bearish

    def apply_levels(self, levels: SupportResistance) -> None:
        self.support_level = levels.support_level
        self.resistance_level = levels.resistance_level
        self.support_distance = levels.support_distance
        self.resistance_distance = levels.resistance_distance
        self.near_support = levels.near_support
        self.near_resistance = levels.near_resistance

    def apply_trend(self, trend: TrendAlignment) -> None:
        self.trend_alignment_score = trend.score
        self.trend_alignment_strong = trend.strong

    def apply_volume_profile(self, profile: VolumeProfile) -> None:
        self.volume_profile_score = profile.score

    def to_fields(self) -> dict[str, Any]:
        """Snapshot fields only."""
        data = asdict(self)
        data.pop("timeframe")
        data.pop("missing")
        return data
