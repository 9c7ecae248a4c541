"""
Multi-timeframe trend alignment.

For each configured timeframe the sign of (fast EMA - slow EMA) at the
last bar is compared with the primary timeframe's sign.

score  = agreeing timeframes / compared timeframes
strong = score >= threshold

Timeframes without enough bars for the slow EMA are excluded from
both numerator and denominator.
"""

import logging
from typing import Mapping, Sequence

from core.constants import Candle, Timeframe
from core.exceptions import InsufficientHistory
from technical_analysis.config import TrendConfig
from technical_analysis.models import TrendAlignment


logger = logging.getLogger(__name__)


def ema(values: Sequence[float], period: int) -> list[float]:
    """
    Exponential moving average seeded with the SMA of the first `period` values.

    Returns one value per input from index period - 1 onwards.
    """
    if period < 1 or len(values) < period:
        return []
    alpha = 2.0 / (period + 1)
    current = sum(values[:period]) / period
    out = [current]
    for value in values[period:]:
        current = alpha * value + (1 - alpha) * current
        out.append(current)
    return out


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def ema_spread_sign(candles: Sequence[Candle], fast: int, slow: int) -> int:
    """
    Sign of fast EMA minus slow EMA at the last bar.

    Raises:
        InsufficientHistory: fewer than `slow` bars
    """
    if len(candles) < slow:
        raise InsufficientHistory(
            "Not enough bars for slow EMA",
            indicator="trend_alignment",
            required=slow,
            available=len(candles),
        )
    closes = [c.close for c in candles]
    return _sign(ema(closes, fast)[-1] - ema(closes, slow)[-1])


def compute_trend_alignment(
    candles_by_timeframe: Mapping[Timeframe, Sequence[Candle]],
    primary: Timeframe,
    config: TrendConfig,
) -> TrendAlignment:
    """
    Alignment of the configured timeframes with the primary timeframe.

    Raises:
        InsufficientHistory: primary timeframe lacks history
    """
    primary_sign = ema_spread_sign(
        candles_by_timeframe.get(primary, ()), config.fast_period, config.slow_period
    )

    signs: dict[Timeframe, int] = {}
    excluded: list[Timeframe] = []
    for timeframe in config.timeframes:
        try:
            signs[timeframe] = ema_spread_sign(
                candles_by_timeframe.get(timeframe, ()), config.fast_period, config.slow_period
            )
        except InsufficientHistory:
            excluded.append(timeframe)

    if excluded:
        logger.debug(
            f"[trend] Excluded timeframes with short history: "
            f"{', '.join(tf.value for tf in excluded)}"
        )

    if not signs:
        return TrendAlignment(
            score=None,
            strong=False,
            primary_sign=primary_sign,
            excluded=tuple(excluded),
        )

    agreeing = sum(1 for sign in signs.values() if sign == primary_sign)
    score = agreeing / len(signs)
    return TrendAlignment(
        score=score,
        strong=score >= config.strong_threshold,
        primary_sign=primary_sign,
        signs=signs,
        excluded=tuple(excluded),
    )
