"""
Scoring Engine - Smart Money Index.

============================================================
RESPONSIBILITY
============================================================
Net large-holder flow over the activity window, bounded to
[-1, 1].

    index = (B - S) / (B + S)

B and S are large-buy and large-sell USD volume. Both zero
with measured data means no large flow: index 0.0. No data at
all: index None.

Score interpretation:
- Positive: Net accumulation
- Negative: Net distribution
- Near zero: Neutral/unclear

============================================================
"""

from typing import Optional


def smart_money_index(
    large_buy_volume_usd: Optional[float],
    large_sell_volume_usd: Optional[float],
) -> Optional[float]:
    if large_buy_volume_usd is None or large_sell_volume_usd is None:
        return None

    buys = max(0.0, float(large_buy_volume_usd))
    sells = max(0.0, float(large_sell_volume_usd))
    total = buys + sells
    if total == 0:
        return 0.0
    return max(-1.0, min(1.0, (buys - sells) / total))


def is_bullish(index: Optional[float], threshold: float) -> bool:
    """Strictly above the threshold; no index is never bullish."""
    return index is not None and index > threshold
