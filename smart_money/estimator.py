"""
Mathematical fallback estimation.

Used when the transfer feed is unavailable, malformed or empty, and
for single fields the feed cannot back (e.g. no USD price). Estimates
come from price/volume shape only and are deterministic.

whale_buys    = min(max_whale, floor(volume_24h / market_cap * ratio_scale))
new_holders   = floor((min(1, volume_24h / volume_scale) + max(0, change_pct / 100)) * holder_scale)
volume_spike  = max(1, 1 + |change_pct| / 50)   (only without a candle baseline)
large flows   = up-bar / down-bar dollar volume
"""

import math
from typing import Optional

from smart_money.config import BehavioralConfig
from smart_money.models import MarketContext


class FallbackEstimator:
    """Price/volume heuristics for behavioral fields."""

    def __init__(self, config: BehavioralConfig) -> None:
        self.config = config

    def whale_buys(self, market: MarketContext) -> int:
        volume = market.current_volume or 0.0
        if not market.market_cap_usd or market.market_cap_usd <= 0:
            return 0
        ratio = volume / market.market_cap_usd
        return min(
            self.config.fallback_max_whale_buys,
            math.floor(ratio * self.config.fallback_whale_ratio_scale),
        )

    def new_holders(self, market: MarketContext) -> int:
        volume = market.current_volume or 0.0
        volume_score = min(1.0, volume / self.config.fallback_holder_volume_scale_usd)
        price_score = max(0.0, (market.price_change_pct or 0.0) / 100.0)
        return math.floor((volume_score + price_score) * self.config.fallback_holder_scale)

    def volume_spike(self, market: MarketContext) -> Optional[float]:
        if market.price_change_pct is None:
            return None
        return max(1.0, 1.0 + abs(market.price_change_pct) / 50.0)

    def large_flows(self, market: MarketContext) -> tuple[float, float]:
        return market.up_volume_usd, market.down_volume_usd
