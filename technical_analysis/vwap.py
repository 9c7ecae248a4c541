"""
VWAP bands over a rolling window.

vwap   = sum(price_i * volume_i) / sum(volume_i) over the last W bars
sigma  = population std-dev of (price_i - vwap) over the same bars
bands  = vwap +/- k * sigma

A breakout is a close crossing the band between the last two bars,
each bar measured against its own window.
"""

import statistics
from typing import Optional, Sequence

from core.constants import Candle
from core.exceptions import InsufficientHistory
from technical_analysis.config import PriceSource, VWAPConfig
from technical_analysis.models import VWAPBands


def bar_price(candle: Candle, source: PriceSource) -> float:
    if source == PriceSource.CLOSE:
        return candle.close
    return candle.typical_price


def rolling_vwap(
    candles: Sequence[Candle],
    end: int,
    window: int,
    source: PriceSource,
) -> tuple[float, float]:
    """
    VWAP and sigma for the `window` bars ending at index `end` (inclusive).

    Raises:
        InsufficientHistory: fewer than `window` bars or no volume traded
    """
    start = end - window + 1
    if start < 0:
        raise InsufficientHistory(
            "Not enough bars for VWAP window",
            indicator="vwap",
            required=window,
            available=end + 1,
        )

    bars = candles[start:end + 1]
    prices = [bar_price(c, source) for c in bars]
    total_volume = sum(c.volume for c in bars)
    if total_volume <= 0:
        raise InsufficientHistory("No volume traded in VWAP window", indicator="vwap")

    vwap = sum(p * c.volume for p, c in zip(prices, bars)) / total_volume
    sigma = statistics.pstdev([p - vwap for p in prices])
    return vwap, sigma


def compute_vwap_bands(candles: Sequence[Candle], config: VWAPConfig) -> VWAPBands:
    """VWAP, bands, band position and breakout flags for the last bar."""
    last = len(candles) - 1
    vwap, sigma = rolling_vwap(candles, last, config.window, config.price_source)

    k = config.band_multiplier
    upper = vwap + k * sigma
    lower = vwap - k * sigma
    close = candles[last].close

    band_position: Optional[float] = None
    if upper != lower:
        band_position = min(1.0, max(0.0, (close - lower) / (upper - lower)))

    breakout_bullish = False
    breakout_bearish = False
    if last >= config.window:
        try:
            prev_vwap, prev_sigma = rolling_vwap(candles, last - 1, config.window, config.price_source)
        except InsufficientHistory:
            pass  # previous window had no volume; no crossing to detect
        else:
            prev_close = candles[last - 1].close
            prev_upper = prev_vwap + k * prev_sigma
            prev_lower = prev_vwap - k * prev_sigma
            breakout_bullish = prev_close <= prev_upper and close > upper
            breakout_bearish = prev_close >= prev_lower and close < lower

    return VWAPBands(
        vwap=vwap,
        upper=upper,
        lower=lower,
        sigma=sigma,
        distance=(close - vwap) / vwap if vwap else None,
        band_position=band_position,
        breakout_bullish=breakout_bullish,
        breakout_bearish=breakout_bearish,
    )
