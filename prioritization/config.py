"""
Prioritization Configuration - Budget, volume tiers and quality weights.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from core.exceptions import ConfigurationError


@dataclass
class TierConfig:
    """Volume cutoffs (USD, 24h) and refresh interval per tier."""
    high_volume_usd: float = 100_000
    medium_volume_usd: float = 10_000
    high_refresh_hours: float = 1.0
    medium_refresh_hours: float = 6.0
    low_refresh_hours: float = 24.0

    def __post_init__(self) -> None:
        if not 0 <= self.medium_volume_usd <= self.high_volume_usd:
            raise ConfigurationError(
                "Tier cutoffs must satisfy 0 <= medium <= high",
                config_key="priority.tiers.medium_volume_usd",
                actual_value=(self.medium_volume_usd, self.high_volume_usd),
            )
        if min(self.high_refresh_hours, self.medium_refresh_hours, self.low_refresh_hours) <= 0:
            raise ConfigurationError("Refresh intervals must be positive",
                                     config_key="priority.tiers")

    def to_dict(self) -> dict[str, Any]:
        return {
            "high_volume_usd": self.high_volume_usd,
            "medium_volume_usd": self.medium_volume_usd,
            "high_refresh_hours": self.high_refresh_hours,
            "medium_refresh_hours": self.medium_refresh_hours,
            "low_refresh_hours": self.low_refresh_hours,
        }


@dataclass
class QualityWeights:
    """
    quality = completeness * w_c + verified * w_v + liquidity_score * w_l

    liquidity_score = liquidity / (liquidity + half_saturation)
    """
    completeness: float = 0.4
    verification: float = 0.3
    liquidity: float = 0.3
    liquidity_half_saturation_usd: float = 50_000

    def __post_init__(self) -> None:
        weights = (self.completeness, self.verification, self.liquidity)
        if any(w <= 0 for w in weights):
            # Zero weight would break monotonicity in that factor
            raise ConfigurationError("Quality weights must be positive", config_key="priority.quality")
        if self.liquidity_half_saturation_usd <= 0:
            raise ConfigurationError("liquidity_half_saturation_usd must be positive",
                                     config_key="priority.quality.liquidity_half_saturation_usd")

    @property
    def total(self) -> float:
        return self.completeness + self.verification + self.liquidity

    def to_dict(self) -> dict[str, Any]:
        return {
            "completeness": self.completeness,
            "verification": self.verification,
            "liquidity": self.liquidity,
            "liquidity_half_saturation_usd": self.liquidity_half_saturation_usd,
        }


@dataclass
class PriorityConfig:
    """Main configuration for the priority selector."""
    budget: int = 50  # external calls per cycle (B)
    calls_per_token: int = 1
    tiers: TierConfig = field(default_factory=TierConfig)
    quality: QualityWeights = field(default_factory=QualityWeights)

    def __post_init__(self) -> None:
        if isinstance(self.tiers, dict):
            self.tiers = TierConfig(**self.tiers)
        if isinstance(self.quality, dict):
            self.quality = QualityWeights(**self.quality)
        if self.budget < 0:
            raise ConfigurationError("budget must be >= 0", config_key="priority.budget",
                                     actual_value=self.budget)
        if self.calls_per_token < 1:
            raise ConfigurationError("calls_per_token must be >= 1",
                                     config_key="priority.calls_per_token",
                                     actual_value=self.calls_per_token)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "PriorityConfig":
        data = dict(data or {})
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(
                f"Unknown priority settings: {', '.join(sorted(unknown))}",
                config_key="priority",
            )
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "budget": self.budget,
            "calls_per_token": self.calls_per_token,
            "tiers": self.tiers.to_dict(),
            "quality": self.quality.to_dict(),
        }


@dataclass
class UniverseConfig:
    """Eligibility rules for the token universe and cache refresh."""
    min_volume_24h_usd: float = 1_000
    min_liquidity_usd: float = 10_000
    suspicious_patterns: tuple = ("test", "fake", "scam", "rug", "honey")
    max_tokens: int = 500
    refresh_seconds: float = 900

    def __post_init__(self) -> None:
        self.suspicious_patterns = tuple(p.lower() for p in self.suspicious_patterns)
        if self.max_tokens < 1:
            raise ConfigurationError("max_tokens must be >= 1", config_key="universe.max_tokens",
                                     actual_value=self.max_tokens)
        if self.refresh_seconds < 0:
            raise ConfigurationError("refresh_seconds must be >= 0",
                                     config_key="universe.refresh_seconds")

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "UniverseConfig":
        data = dict(data or {})
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(
                f"Unknown universe settings: {', '.join(sorted(unknown))}",
                config_key="universe",
            )
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "min_volume_24h_usd": self.min_volume_24h_usd,
            "min_liquidity_usd": self.min_liquidity_usd,
            "suspicious_patterns": list(self.suspicious_patterns),
            "max_tokens": self.max_tokens,
            "refresh_seconds": self.refresh_seconds,
        }
