"""
Scoring Engine - Snapshot Model.

============================================================
RESPONSIBILITY
============================================================
Defines TokenFeatureSnapshot, the one record the engine emits
per (token, timeframe, timestamp).

Fields are grouped into three disjoint halves:
- technical: written by the indicator calculator
- behavioral: written by the behavioral metrics calculator
- fusion: composite fields plus the confidence/source tags

============================================================
"""

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Dict, Optional

from core.clock import ensure_utc
from core.constants import AnalysisSource, Timeframe


TECHNICAL_FIELDS = (
    "vwap",
    "vwap_distance",
    "vwap_upper_band",
    "vwap_lower_band",
    "vwap_band_position",
    "support_level",
    "resistance_level",
    "support_distance",
    "resistance_distance",
    "trend_alignment_score",
    "volume_profile_score",
    "vwap_breakout_bullish",
    "vwap_breakout_bearish",
    "near_support",
    "near_resistance",
    "trend_alignment_strong",
)

BEHAVIORAL_FIELDS = (
    "whale_buys_24h",
    "new_holders_24h",
    "volume_spike_ratio",
    "token_age_hours",
)

FUSION_FIELDS = (
    "smart_money_index",
    "smart_money_bullish",
    "data_confidence",
    "analysis_source",
)

IDENTITY_FIELDS = ("token_id", "timeframe", "timestamp")


@dataclass(frozen=True)
class TokenFeatureSnapshot:
    """Fused per-token, per-timeframe feature snapshot."""
    token_id: str
    timeframe: Timeframe
    timestamp: datetime

    # Technical
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

    # Behavioral
    whale_buys_24h: Optional[int] = None
    new_holders_24h: Optional[int] = None
    volume_spike_ratio: Optional[float] = None
    token_age_hours: Optional[float] = None

    # Fusion
    smart_money_index: Optional[float] = None
    smart_money_bullish: bool = False
    data_confidence: float = 0.0
    analysis_source: AnalysisSource = AnalysisSource.ERROR_FALLBACK

    def __post_init__(self) -> None:
        object.__setattr__(self, "timeframe", Timeframe.parse(self.timeframe))
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        object.__setattr__(self, "analysis_source", AnalysisSource(self.analysis_source))
        if not 0.0 <= self.data_confidence <= 1.0:
            raise ValueError(f"data_confidence out of range: {self.data_confidence}")

    @property
    def key(self) -> tuple:
        return (self.token_id, self.timeframe.value, self.timestamp)

    @classmethod
    def field_names(cls) -> tuple:
        return tuple(f.name for f in fields(cls))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (JSON friendly)."""
        data = asdict(self)
        data["timeframe"] = self.timeframe.value
        data["timestamp"] = self.timestamp.isoformat()
        data["analysis_source"] = self.analysis_source.value
        return data
