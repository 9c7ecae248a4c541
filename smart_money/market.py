"""
Market context from stored candles.

Windows are aligned to completed bars of the volume timeframe:

    end        = floor(now)
    current    = [end - W, end)
    baseline k = [end - (k + 1) * W, end - k * W),  k = 1..N

A baseline window counts only when the token's earliest known bar
is at or before the window start.
"""

from datetime import datetime, timedelta
from typing import Optional, Sequence

from core.clock import ensure_utc
from core.constants import Candle
from smart_money.config import BehavioralConfig
from smart_money.models import MarketContext


def _window_volume(candles: Sequence[Candle], start: datetime, end: datetime) -> float:
    return sum(c.volume for c in candles if start <= c.timestamp < end)


def build_market_context(
    candles: Sequence[Candle],
    now: datetime,
    config: BehavioralConfig,
    earliest_candle_at: Optional[datetime] = None,
    market_cap_usd: Optional[float] = None,
) -> MarketContext:
    """
    Args:
        candles: bars of `config.volume_timeframe`, ascending, covering
            `config.volume_history_hours` before now
        earliest_candle_at: earliest stored bar of any timeframe
    """
    end = config.volume_timeframe.floor(now)
    window = timedelta(hours=config.volume_spike_window_hours)
    earliest = ensure_utc(earliest_candle_at) if earliest_candle_at else None
    if earliest is None and candles:
        earliest = candles[0].timestamp

    current_volume: Optional[float] = None
    if candles:
        current_volume = _window_volume(candles, end - window, end)

    baseline = []
    for k in range(1, config.volume_spike_baseline_windows + 1):
        start = end - window * (k + 1)
        if earliest is None or earliest > start:
            break
        baseline.append(_window_volume(candles, start, start + window))

    activity_start = end - timedelta(hours=config.activity_window_hours)
    activity = [c for c in candles if activity_start <= c.timestamp < end]
    up_volume = sum(c.volume for c in activity if c.close > c.open)
    down_volume = sum(c.volume for c in activity if c.close < c.open)

    price_change_pct: Optional[float] = None
    if activity and activity[0].open > 0:
        price_change_pct = (activity[-1].close - activity[0].open) / activity[0].open * 100.0

    return MarketContext(
        current_volume=current_volume,
        baseline_volumes=tuple(baseline),
        earliest_candle_at=earliest,
        price_usd=candles[-1].close if candles else None,
        price_change_pct=price_change_pct,
        market_cap_usd=market_cap_usd,
        up_volume_usd=up_volume,
        down_volume_usd=down_volume,
    )
