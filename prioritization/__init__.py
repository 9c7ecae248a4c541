"""
Prioritization Package.

Decides which tokens receive behavioral enrichment each cycle.

Components:
- quality: Token quality score
- selector: Budgeted, deterministic selection by tier and staleness
- universe: Eligibility filter and explicit universe cache
"""

from .config import PriorityConfig, QualityWeights, TierConfig, UniverseConfig
from .models import PriorityCandidate, SelectionResult, TokenMetadata, VolumeTier
from .quality import liquidity_score, metadata_completeness, quality_score
from .selector import PrioritySelector
from .universe import RefreshPolicy, TokenUniverseCache, UniverseFilter

__all__ = [
    "PriorityConfig",
    "QualityWeights",
    "TierConfig",
    "UniverseConfig",
    "PriorityCandidate",
    "SelectionResult",
    "TokenMetadata",
    "VolumeTier",
    "liquidity_score",
    "metadata_completeness",
    "quality_score",
    "PrioritySelector",
    "RefreshPolicy",
    "TokenUniverseCache",
    "UniverseFilter",
]
