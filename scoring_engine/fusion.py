"""
Scoring Engine - Feature Fusion.

============================================================
RESPONSIBILITY
============================================================
Merges indicator and behavioral outputs into one
TokenFeatureSnapshot.

- Technical and behavioral halves are disjoint; neither may
  overwrite the other
- Adds composite fields only (smart_money_index/bullish)
- Copies data_confidence/analysis_source through unchanged

============================================================
"""

import logging
from datetime import datetime
from typing import Optional

from core.constants import AnalysisSource, Timeframe
from core.exceptions import InternalComputationError
from scoring_engine.config import FusionConfig
from scoring_engine.models import BEHAVIORAL_FIELDS, TECHNICAL_FIELDS, TokenFeatureSnapshot
from scoring_engine.smart_money_index import is_bullish, smart_money_index
from smart_money.models import BehavioralMetrics
from technical_analysis.models import TechnicalIndicators


logger = logging.getLogger(__name__)


class FeatureFusion:
    """Builds snapshots from the two calculator outputs."""

    def __init__(self, config: Optional[FusionConfig] = None) -> None:
        self.config = config or FusionConfig()

    def fuse(
        self,
        token_id: str,
        timeframe: Timeframe,
        timestamp: datetime,
        technical: TechnicalIndicators,
        behavioral: BehavioralMetrics,
    ) -> TokenFeatureSnapshot:
        """
        Raises:
            InternalComputationError: the halves overlap or carry unknown fields
        """
        technical_fields = technical.to_fields()
        behavioral_fields = behavioral.to_fields()

        overlap = set(technical_fields) & set(behavioral_fields)
        if overlap:
            raise InternalComputationError(
                f"Technical and behavioral fields overlap: {', '.join(sorted(overlap))}",
                token_id=token_id,
                stage="fusion",
            )
        if set(technical_fields) != set(TECHNICAL_FIELDS) or set(behavioral_fields) != set(BEHAVIORAL_FIELDS):
            raise InternalComputationError(
                "Calculator output does not match snapshot layout",
                token_id=token_id,
                stage="fusion",
            )

        if behavioral.analysis_source == AnalysisSource.ERROR_FALLBACK:
            index = None
        else:
            index = smart_money_index(behavioral.large_buy_volume_usd, behavioral.large_sell_volume_usd)

        return TokenFeatureSnapshot(
            token_id=token_id,
            timeframe=timeframe,
            timestamp=timestamp,
            **technical_fields,
            **behavioral_fields,
            smart_money_index=index,
            smart_money_bullish=is_bullish(index, self.config.smart_money_bullish_threshold),
            data_confidence=behavioral.data_confidence,
            analysis_source=behavioral.analysis_source,
        )

    def error_snapshot(
        self,
        token_id: str,
        timeframe: Timeframe,
        timestamp: datetime,
        technical: Optional[TechnicalIndicators] = None,
    ) -> TokenFeatureSnapshot:
        """
        Minimal error_fallback snapshot: behavioral and composite fields
        null, zero confidence. Technical fields are kept when they were
        computed before the failure.
        """
        technical_fields = technical.to_fields() if technical is not None else {}
        return TokenFeatureSnapshot(
            token_id=token_id,
            timeframe=timeframe,
            timestamp=timestamp,
            **technical_fields,
            data_confidence=0.0,
            analysis_source=AnalysisSource.ERROR_FALLBACK,
        )
