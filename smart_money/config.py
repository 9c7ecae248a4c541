"""
Behavioral Metrics Configuration - Thresholds and confidence weights.

All thresholds are configurable for tuning. Confidence weighting is
configuration, not code: see ConfidenceWeights.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from core.constants import Timeframe
from core.exceptions import ConfigurationError
from smart_money.models import Provenance


DEFAULT_PROVENANCE_CREDITS = {
    Provenance.TRANSFER: 1.0,      # real transfer data in the lookback window
    Provenance.MARKET: 1.0,        # real candle/market data
    Provenance.APPROXIMATED: 0.6,  # real data over truncated history
    Provenance.ESTIMATED: 0.2,     # mathematical fallback
    Provenance.UNAVAILABLE: 0.0,
}

DEFAULT_FIELD_WEIGHTS = {
    "whale_buys_24h": 1.0,
    "new_holders_24h": 1.0,
    "smart_money_index": 1.0,
    "volume_spike_ratio": 0.5,
    "token_age_hours": 0.5,
}


@dataclass
class ConfidenceWeights:
    """
    data_confidence = sum(weight_f * credit(provenance_f)) / sum(weight_f)

    Snapshots that are not error_fallback never drop below
    `min_confidence` so that zero confidence stays reserved for errors.
    """
    field_weights: dict = field(default_factory=lambda: dict(DEFAULT_FIELD_WEIGHTS))
    provenance_credits: dict = field(default_factory=lambda: dict(DEFAULT_PROVENANCE_CREDITS))
    min_confidence: float = 0.01

    def __post_init__(self) -> None:
        self.provenance_credits = {
            Provenance(key): float(value) for key, value in self.provenance_credits.items()
        }
        self.field_weights = {str(key): float(value) for key, value in self.field_weights.items()}

        missing = set(Provenance) - set(self.provenance_credits)
        if missing:
            raise ConfigurationError(
                f"Missing provenance credits: {', '.join(sorted(p.value for p in missing))}",
                config_key="confidence.provenance_credits",
            )
        for provenance, credit in self.provenance_credits.items():
            if not 0.0 <= credit <= 1.0:
                raise ConfigurationError(
                    f"Credit for {provenance.value} must be in [0, 1]",
                    config_key="confidence.provenance_credits",
                    actual_value=credit,
                )
        if any(weight < 0 for weight in self.field_weights.values()):
            raise ConfigurationError("Field weights must be >= 0", config_key="confidence.field_weights")
        if sum(self.field_weights.values()) <= 0:
            raise ConfigurationError("At least one field weight must be positive",
                                     config_key="confidence.field_weights")
        if not 0.0 < self.min_confidence <= 1.0:
            raise ConfigurationError("min_confidence must be in (0, 1]",
                                     config_key="confidence.min_confidence",
                                     actual_value=self.min_confidence)

    def to_dict(self) -> dict[str, Any]:
        return {
            "field_weights": dict(self.field_weights),
            "provenance_credits": {p.value: c for p, c in self.provenance_credits.items()},
            "min_confidence": self.min_confidence,
        }


@dataclass
class BehavioralConfig:
    """Configuration for the behavioral metrics calculator."""

    # Whale detection
    whale_threshold_usd: float = 10_000

    # Transfer history
    activity_window_hours: int = 24
    transfer_history_hours: int = 720  # 30 days, bounds "first appearance"

    # Volume spike: current window vs the average of N trailing windows
    volume_spike_window_hours: int = 24
    volume_spike_baseline_windows: int = 1
    volume_timeframe: Timeframe = Timeframe.H1

    # Fallback estimation
    fallback_max_whale_buys: int = 15
    fallback_whale_ratio_scale: float = 50.0
    fallback_holder_volume_scale_usd: float = 100_000
    fallback_holder_scale: int = 100

    confidence: ConfidenceWeights = field(default_factory=ConfidenceWeights)

    def __post_init__(self) -> None:
        self.volume_timeframe = Timeframe.parse(self.volume_timeframe)
        if isinstance(self.confidence, dict):
            self.confidence = ConfidenceWeights(**self.confidence)
        if self.whale_threshold_usd <= 0:
            raise ConfigurationError("whale_threshold_usd must be positive",
                                     config_key="behavioral.whale_threshold_usd",
                                     actual_value=self.whale_threshold_usd)
        if self.activity_window_hours <= 0 or self.volume_spike_window_hours <= 0:
            raise ConfigurationError("Window lengths must be positive",
                                     config_key="behavioral.volume_spike_window_hours")
        if self.volume_spike_baseline_windows < 1:
            raise ConfigurationError("volume_spike_baseline_windows must be >= 1",
                                     config_key="behavioral.volume_spike_baseline_windows",
                                     actual_value=self.volume_spike_baseline_windows)
        if self.volume_spike_window_hours * 3600 % self.volume_timeframe.seconds:
            raise ConfigurationError(
                "volume_spike_window_hours must be a whole number of volume_timeframe bars",
                config_key="behavioral.volume_spike_window_hours",
                actual_value=self.volume_spike_window_hours,
            )
        if self.transfer_history_hours < self.activity_window_hours:
            raise ConfigurationError(
                "transfer_history_hours must cover the activity window",
                config_key="behavioral.transfer_history_hours",
                actual_value=self.transfer_history_hours,
            )

    @property
    def volume_history_hours(self) -> int:
        """Hours of volume bars needed for the spike ratio."""
        return self.volume_spike_window_hours * (self.volume_spike_baseline_windows + 1)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "BehavioralConfig":
        data = dict(data or {})
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown behavioral settings: {', '.join(sorted(unknown))}",
                config_key="behavioral",
            )
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "whale_threshold_usd": self.whale_threshold_usd,
            "activity_window_hours": self.activity_window_hours,
            "transfer_history_hours": self.transfer_history_hours,
            "volume_spike_window_hours": self.volume_spike_window_hours,
            "volume_spike_baseline_windows": self.volume_spike_baseline_windows,
            "volume_timeframe": self.volume_timeframe.value,
            "fallback_max_whale_buys": self.fallback_max_whale_buys,
            "fallback_whale_ratio_scale": self.fallback_whale_ratio_scale,
            "fallback_holder_volume_scale_usd": self.fallback_holder_volume_scale_usd,
            "fallback_holder_scale": self.fallback_holder_scale,
            "confidence": self.confidence.to_dict(),
        }
