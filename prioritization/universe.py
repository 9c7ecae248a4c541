"""
Token universe: eligibility filter and explicit cache.

The cache is an ordinary object holding the loaded universe, the
time it was built and its refresh policy. It is passed to whatever
needs it; there is no module-level state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from core.clock import ClockProtocol, SystemClock, ensure_utc
from prioritization.config import UniverseConfig
from prioritization.models import TokenMetadata


logger = logging.getLogger(__name__)


# ============================================================
# FILTER
# ============================================================

class UniverseFilter:
    """Drops illiquid, inactive and suspicious tokens."""

    def __init__(self, config: Optional[UniverseConfig] = None) -> None:
        self.config = config or UniverseConfig()

    def rejection_reason(self, token: TokenMetadata) -> Optional[str]:
        config = self.config
        if (token.volume_24h_usd or 0.0) < config.min_volume_24h_usd:
            return "volume"
        if (token.liquidity_usd or 0.0) < config.min_liquidity_usd:
            return "liquidity"
        label = f"{token.symbol or ''} {token.name or ''}".lower()
        for pattern in config.suspicious_patterns:
            if pattern in label:
                return f"suspicious:{pattern}"
        return None

    def apply(self, tokens: Sequence[TokenMetadata]) -> list[TokenMetadata]:
        """Eligible tokens, input order kept, capped at max_tokens."""
        accepted = []
        rejected: dict[str, int] = {}
        for token in tokens:
            reason = self.rejection_reason(token)
            if reason is None:
                accepted.append(token)
            else:
                rejected[reason] = rejected.get(reason, 0) + 1

        if rejected:
            logger.debug(f"[universe] Rejected: {rejected}")
        return accepted[:self.config.max_tokens]


# ============================================================
# CACHE
# ============================================================

@dataclass(frozen=True)
class RefreshPolicy:
    """Universe older than `max_age_seconds` is reloaded on next access."""
    max_age_seconds: float = 900

    def is_stale(self, created_at: Optional[datetime], now: datetime) -> bool:
        if created_at is None:
            return True
        return (ensure_utc(now) - created_at).total_seconds() >= self.max_age_seconds


class TokenUniverseCache:
    """
    Loaded, filtered token universe.

    Args:
        loader: returns registry tokens (called on refresh only)
        policy: when the cached universe expires
        universe_filter: eligibility rules applied on refresh
    """

    def __init__(
        self,
        loader: Callable[[], Sequence[TokenMetadata]],
        policy: Optional[RefreshPolicy] = None,
        universe_filter: Optional[UniverseFilter] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._loader = loader
        self.policy = policy or RefreshPolicy()
        self._filter = universe_filter or UniverseFilter()
        self._clock = clock or SystemClock()
        self._tokens: tuple = ()
        self._created_at: Optional[datetime] = None
        self.refresh_count = 0

    @property
    def created_at(self) -> Optional[datetime]:
        return self._created_at

    @property
    def tokens(self) -> tuple:
        return self._tokens

    def get(self) -> tuple:
        """Cached universe, reloaded first when the policy says it is stale."""
        if self.policy.is_stale(self._created_at, self._clock.now()):
            self.refresh()
        return self._tokens

    def refresh(self) -> tuple:
        loaded = list(self._loader())
        self._tokens = tuple(self._filter.apply(loaded))
        self._created_at = self._clock.now()
        self.refresh_count += 1
        logger.info(
            f"[universe] Refreshed: {len(self._tokens)} eligible of {len(loaded)} registered"
        )
        return self._tokens

    def invalidate(self) -> None:
        self._created_at = None
