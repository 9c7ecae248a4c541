"""
Prioritization Models - Token metadata and per-cycle candidates.

Candidates are ephemeral: computed fresh each cycle and never
persisted.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class VolumeTier(str, Enum):
    """Staleness tier by 24h trading volume."""
    HIGH = "high"      # refreshed every 1h
    MEDIUM = "medium"  # every 6h
    LOW = "low"        # every 24h


@dataclass(frozen=True)
class TokenMetadata:
    """Registry view of one tradable token."""
    token_id: str
    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: Optional[int] = None
    logo_uri: Optional[str] = None
    verified: bool = False
    liquidity_usd: Optional[float] = None
    market_cap_usd: Optional[float] = None
    volume_24h_usd: Optional[float] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Any) -> "TokenMetadata":
        return cls(
            token_id=record.token_id,
            symbol=record.symbol,
            name=record.name,
            decimals=record.decimals,
            logo_uri=record.logo_uri,
            verified=bool(record.verified),
            liquidity_usd=record.liquidity_usd,
            market_cap_usd=record.market_cap_usd,
            volume_24h_usd=record.volume_24h_usd,
            created_at=record.created_at,
        )


@dataclass(frozen=True)
class PriorityCandidate:
    """One token competing for enrichment this cycle."""
    token_id: str
    staleness_hours: Optional[float]  # None: never enriched
    quality_score: float
    volume_tier: VolumeTier
    volume_usd: float = 0.0

    @property
    def never_enriched(self) -> bool:
        return self.staleness_hours is None

    @property
    def urgency(self) -> float:
        """Elapsed hours since last enrichment times quality."""
        return (self.staleness_hours or 0.0) * self.quality_score

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_id": self.token_id,
            "staleness_hours": self.staleness_hours,
            "quality_score": self.quality_score,
            "volume_tier": self.volume_tier.value,
            "volume_usd": self.volume_usd,
        }


@dataclass(frozen=True)
class SelectionResult:
    """Outcome of one selector run."""
    selected: tuple = ()  # PriorityCandidate, in processing order
    deferred: tuple = ()  # due but over budget
    fresh: tuple = ()     # interval not yet elapsed
    budget: int = 0
    calls_used: int = 0

    @property
    def token_ids(self) -> list[str]:
        return [c.token_id for c in self.selected]

    def to_dict(self) -> dict[str, Any]:
        return {
            "selected": self.token_ids,
            "deferred": [c.token_id for c in self.deferred],
            "fresh_count": len(self.fresh),
            "budget": self.budget,
            "calls_used": self.calls_used,
        }
