"""
Volume profile concentration.

Closes of the lookback window are bucketed into equal-width bins
between the window's lowest and highest close. The score is the share
of window volume traded in the bin that holds the current close.
"""

from typing import Sequence

from core.constants import Candle
from core.exceptions import InsufficientHistory
from technical_analysis.config import VolumeProfileConfig
from technical_analysis.models import VolumeProfile


def _bin_index(price: float, low: float, width: float, bins: int) -> int:
    # The top edge belongs to the last bin
    return min(int((price - low) / width), bins - 1)


def compute_volume_profile(
    candles: Sequence[Candle],
    config: VolumeProfileConfig,
) -> VolumeProfile:
    """
    Raises:
        InsufficientHistory: fewer than `lookback_bars` bars
    """
    if len(candles) < config.lookback_bars:
        raise InsufficientHistory(
            "Not enough bars for volume profile",
            indicator="volume_profile",
            required=config.lookback_bars,
            available=len(candles),
        )

    window = candles[-config.lookback_bars:]
    closes = [c.close for c in window]
    low, high = min(closes), max(closes)
    total_volume = sum(c.volume for c in window)

    if high == low:
        # Every bar sits in one bin
        return VolumeProfile(
            score=1.0 if total_volume > 0 else None,
            bin_index=0,
            bin_volumes=(total_volume,),
            low=low,
            high=high,
        )

    width = (high - low) / config.bins
    bin_volumes = [0.0] * config.bins
    for candle in window:
        bin_volumes[_bin_index(candle.close, low, width, config.bins)] += candle.volume

    current_bin = _bin_index(window[-1].close, low, width, config.bins)
    score = bin_volumes[current_bin] / total_volume if total_volume > 0 else None

    return VolumeProfile(
        score=score,
        bin_index=current_bin,
        bin_volumes=tuple(bin_volumes),
        low=low,
        high=high,
    )
