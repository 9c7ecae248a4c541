"""
Behavioral Metrics Data Models - Inputs and results.

Every behavioral field carries a provenance tag saying where its value
came from. Confidence and analysis source are derived from these tags.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from core.constants import AnalysisSource


class Provenance(str, Enum):
    """Where a behavioral value came from."""
    TRANSFER = "transfer"          # Real transfer data
    MARKET = "market"              # Real candle / market data
    APPROXIMATED = "approximated"  # Real data over truncated history
    ESTIMATED = "estimated"        # Mathematical fallback
    UNAVAILABLE = "unavailable"    # No value


# Fields whose provenance feeds data_confidence
SCORED_FIELDS = (
    "whale_buys_24h",
    "new_holders_24h",
    "smart_money_index",
    "volume_spike_ratio",
    "token_age_hours",
)

# Fields the transfer feed can back; estimating one makes a snapshot hybrid
TRANSFER_BACKED_FIELDS = ("whale_buys_24h", "new_holders_24h", "smart_money_index")


@dataclass(frozen=True)
class MarketContext:
    """
    Candle and registry inputs to the behavioral calculator.

    `baseline_volumes` holds the volume of each trailing window, most
    recent first, excluding the current window. Only windows fully
    covered by stored bars are included.
    """
    current_volume: Optional[float] = None
    baseline_volumes: tuple = ()
    earliest_candle_at: Optional[datetime] = None
    price_usd: Optional[float] = None
    price_change_pct: Optional[float] = None
    market_cap_usd: Optional[float] = None
    up_volume_usd: float = 0.0
    down_volume_usd: float = 0.0

    @property
    def trailing_average_volume(self) -> Optional[float]:
        if not self.baseline_volumes:
            return None
        return sum(self.baseline_volumes) / len(self.baseline_volumes)


@dataclass
class BehavioralMetrics:
    """Behavioral half of a snapshot plus the tags fusion passes through."""
    token_id: str
    whale_buys_24h: Optional[int] = None
    new_holders_24h: Optional[int] = None
    volume_spike_ratio: Optional[float] = None
    token_age_hours: Optional[float] = None

    # Inputs to the smart money index (USD, activity window)
    large_buy_volume_usd: Optional[float] = None
    large_sell_volume_usd: Optional[float] = None

    provenance: dict = field(default_factory=dict)  # field name -> Provenance
    analysis_source: AnalysisSource = AnalysisSource.ERROR_FALLBACK
    data_confidence: float = 0.0

    transfer_count: int = 0
    history_complete: bool = False
    fallback_reason: Optional[str] = None

    def provenance_of(self, field_name: str) -> Provenance:
        return self.provenance.get(field_name, Provenance.UNAVAILABLE)

    def to_fields(self) -> dict[str, Any]:
        """Behavioral snapshot fields only."""
        return {
            "whale_buys_24h": self.whale_buys_24h,
            "new_holders_24h": self.new_holders_24h,
            "volume_spike_ratio": self.volume_spike_ratio,
            "token_age_hours": self.token_age_hours,
        }

    @classmethod
    def error(cls, token_id: str, reason: str) -> "BehavioralMetrics":
        """All fields null, zero confidence."""
        return cls(
            token_id=token_id,
            provenance={name: Provenance.UNAVAILABLE for name in SCORED_FIELDS},
            analysis_source=AnalysisSource.ERROR_FALLBACK,
            data_confidence=0.0,
            fallback_reason=reason,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_id": self.token_id,
            **self.to_fields(),
            "large_buy_volume_usd": self.large_buy_volume_usd,
            "large_sell_volume_usd": self.large_sell_volume_usd,
            "provenance": {k: v.value for k, v in self.provenance.items()},
            "analysis_source": self.analysis_source.value,
            "data_confidence": self.data_confidence,
            "transfer_count": self.transfer_count,
            "history_complete": self.history_complete,
            "fallback_reason": self.fallback_reason,
        }
