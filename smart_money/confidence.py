"""
Confidence and analysis-source tagging.

data_confidence
    Weighted mean of per-field provenance credits, clamped to [0, 1].
    Non-error snapshots are floored at `min_confidence`.

analysis_source
    real_only              every transfer-backed field from complete history
    real_primary           real transfers, some field approximated (truncated history)
    hybrid                 real transfers, some field estimated
    mathematical_fallback  feed unavailable, malformed or empty
    error_fallback         internal error or token age unknown
"""

from typing import Mapping

from core.constants import AnalysisSource
from smart_money.config import ConfidenceWeights
from smart_money.models import TRANSFER_BACKED_FIELDS, Provenance


def compute_confidence(
    provenance: Mapping[str, Provenance],
    weights: ConfidenceWeights,
    source: AnalysisSource,
) -> float:
    if source == AnalysisSource.ERROR_FALLBACK:
        return 0.0

    total_weight = 0.0
    credited = 0.0
    for field_name, weight in weights.field_weights.items():
        credit = weights.provenance_credits[provenance.get(field_name, Provenance.UNAVAILABLE)]
        total_weight += weight
        credited += weight * credit

    confidence = credited / total_weight if total_weight else 0.0
    return round(min(1.0, max(weights.min_confidence, confidence)), 4)


def classify_source(
    provenance: Mapping[str, Provenance],
    transfers_used: bool,
) -> AnalysisSource:
    if provenance.get("token_age_hours", Provenance.UNAVAILABLE) == Provenance.UNAVAILABLE:
        return AnalysisSource.ERROR_FALLBACK
    if not transfers_used:
        return AnalysisSource.MATHEMATICAL_FALLBACK

    tags = {provenance.get(name, Provenance.UNAVAILABLE) for name in TRANSFER_BACKED_FIELDS}
    if tags & {Provenance.ESTIMATED, Provenance.UNAVAILABLE}:
        return AnalysisSource.HYBRID
    if Provenance.APPROXIMATED in tags:
        return AnalysisSource.REAL_PRIMARY
    return AnalysisSource.REAL_ONLY
