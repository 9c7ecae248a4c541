"""
Pivot-based support and resistance.

Bar i is a pivot low when its low is the minimum low of bars
[i - w, i + w]; pivot highs are symmetric on highs. Only confirmed
pivots count, i.e. bars with w bars on both sides.

support    = most recent pivot low strictly below the current close
resistance = most recent pivot high strictly above the current close
"""

from typing import Optional, Sequence

from core.constants import Candle
from core.exceptions import InsufficientHistory
from technical_analysis.config import LevelsConfig
from technical_analysis.models import SupportResistance


def pivot_lows(candles: Sequence[Candle], window: int) -> list[int]:
    lows = [c.low for c in candles]
    return [
        i for i in range(window, len(candles) - window)
        if lows[i] == min(lows[i - window:i + window + 1])
    ]


def pivot_highs(candles: Sequence[Candle], window: int) -> list[int]:
    highs = [c.high for c in candles]
    return [
        i for i in range(window, len(candles) - window)
        if highs[i] == max(highs[i - window:i + window + 1])
    ]


def compute_support_resistance(
    candles: Sequence[Candle],
    config: LevelsConfig,
) -> SupportResistance:
    """
    Levels and proximity flags relative to the last close.

    Raises:
        InsufficientHistory: fewer than 2w + 1 bars
    """
    w = config.pivot_window
    required = 2 * w + 1
    if len(candles) < required:
        raise InsufficientHistory(
            "Not enough bars to confirm a pivot",
            indicator="support_resistance",
            required=required,
            available=len(candles),
        )

    close = candles[-1].close

    support: Optional[float] = None
    for i in reversed(pivot_lows(candles, w)):
        if candles[i].low < close:
            support = candles[i].low
            break

    resistance: Optional[float] = None
    for i in reversed(pivot_highs(candles, w)):
        if candles[i].high > close:
            resistance = candles[i].high
            break

    support_distance = (close - support) / close if support is not None and close else None
    resistance_distance = (resistance - close) / close if resistance is not None and close else None

    return SupportResistance(
        support_level=support,
        resistance_level=resistance,
        support_distance=support_distance,
        resistance_distance=resistance_distance,
        near_support=support_distance is not None and support_distance <= config.proximity_threshold,
        near_resistance=(
            resistance_distance is not None and resistance_distance <= config.proximity_threshold
        ),
    )
