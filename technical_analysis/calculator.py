"""
Indicator Calculator.

============================================================
RESPONSIBILITY
============================================================
Pure function of candle history -> technical snapshot fields.

- VWAP bands and breakout flags
- Pivot support/resistance and proximity flags
- Multi-timeframe EMA trend alignment
- Volume profile concentration

============================================================
FAILURE POLICY
============================================================
An indicator lacking history yields null fields for that
indicator only; the remaining indicators are still computed.
Arithmetic failures are reported as InternalComputationError.

============================================================
"""

import logging
from typing import Mapping, Optional, Sequence

from core.constants import Candle, Timeframe
from core.exceptions import InsufficientHistory, InternalComputationError
from technical_analysis.config import IndicatorConfig
from technical_analysis.levels import compute_support_resistance
from technical_analysis.models import TechnicalIndicators
from technical_analysis.trend import compute_trend_alignment
from technical_analysis.volume_profile import compute_volume_profile
from technical_analysis.vwap import compute_vwap_bands


logger = logging.getLogger(__name__)


class IndicatorCalculator:
    """Computes the technical half of a snapshot. No I/O."""

    def __init__(self, config: Optional[IndicatorConfig] = None) -> None:
        self.config = config or IndicatorConfig()

    def history_requirements(self, primary: Timeframe) -> dict[Timeframe, int]:
        """Bars to load per timeframe for one computation."""
        padding = self.config.history_padding_bars
        requirements = {
            tf: self.config.trend.required_bars + padding for tf in self.config.trend.timeframes
        }
        requirements[primary] = max(requirements.get(primary, 0), self.config.lookback_bars)
        return requirements

    def compute(
        self,
        candles_by_timeframe: Mapping[Timeframe, Sequence[Candle]],
        primary: Timeframe,
        token_id: Optional[str] = None,
    ) -> TechnicalIndicators:
        """
        Compute all indicators for the last bar of the primary timeframe.

        Raises:
            InternalComputationError: unguarded arithmetic failure
        """
        primary = Timeframe.parse(primary)
        candles = list(candles_by_timeframe.get(primary, ()))
        result = TechnicalIndicators(timeframe=primary)

        steps = (
            ("vwap", lambda: result.apply_vwap(compute_vwap_bands(candles, self.config.vwap))),
            ("support_resistance", lambda: result.apply_levels(
                compute_support_resistance(candles, self.config.levels))),
            ("trend_alignment", lambda: result.apply_trend(
                compute_trend_alignment(candles_by_timeframe, primary, self.config.trend))),
            ("volume_profile", lambda: result.apply_volume_profile(
                compute_volume_profile(candles, self.config.volume_profile))),
        )

        for indicator, step in steps:
            try:
                step()
            except InsufficientHistory as e:
                result.missing.append(indicator)
                logger.debug(f"[indicators] {token_id or '?'} {primary.value} {indicator}: {e}")
            except ArithmeticError as e:
                raise InternalComputationError(
                    f"Indicator {indicator} failed: {e}",
                    token_id=token_id,
                    stage=f"indicators.{indicator}",
                    cause=e,
                ) from e

        return result
