"""
Token quality score.

Weighted, monotonically increasing in each factor:
- metadata completeness (symbol, name, decimals, logo)
- verification status
- liquidity, saturating as liquidity / (liquidity + half_saturation)

Result is in [0, 1].
"""

from prioritization.config import QualityWeights
from prioritization.models import TokenMetadata


METADATA_FIELDS = ("symbol", "name", "decimals", "logo_uri")


def metadata_completeness(token: TokenMetadata) -> float:
    present = sum(1 for name in METADATA_FIELDS if getattr(token, name) not in (None, ""))
    return present / len(METADATA_FIELDS)


def liquidity_score(liquidity_usd, half_saturation_usd: float) -> float:
    if not liquidity_usd or liquidity_usd <= 0:
        return 0.0
    return liquidity_usd / (liquidity_usd + half_saturation_usd)


def quality_score(token: TokenMetadata, weights: QualityWeights) -> float:
    score = (
        weights.completeness * metadata_completeness(token)
        + weights.verification * (1.0 if token.verified else 0.0)
        + weights.liquidity * liquidity_score(token.liquidity_usd, weights.liquidity_half_saturation_usd)
    )
    return min(1.0, max(0.0, score / weights.total))
