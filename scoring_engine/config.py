"""
Scoring Engine - Fusion Configuration.
"""

from dataclasses import dataclass
from typing import Any, Optional

from core.exceptions import ConfigurationError


@dataclass
class FusionConfig:
    """Thresholds for composite fields."""
    smart_money_bullish_threshold: float = 0.0

    def __post_init__(self) -> None:
        if not -1.0 <= self.smart_money_bullish_threshold < 1.0:
            raise ConfigurationError(
                "smart_money_bullish_threshold must be in [-1, 1)",
                config_key="fusion.smart_money_bullish_threshold",
                actual_value=self.smart_money_bullish_threshold,
            )

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "FusionConfig":
        data = dict(data or {})
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(
                f"Unknown fusion settings: {', '.join(sorted(unknown))}",
                config_key="fusion",
            )
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return {"smart_money_bullish_threshold": self.smart_money_bullish_threshold}
