"""
Priority Selector.

============================================================
RESPONSIBILITY
============================================================
Chooses, under a per-cycle call budget B, which tokens get the
expensive behavioral enrichment this cycle.

Order:
1. Tokens never enriched (quality desc)
2. Tokens whose tier interval has elapsed, by
   staleness_hours * quality desc

Ties are broken by token_id. Each selected token costs
`calls_per_token` against B. Same inputs -> same selection.

============================================================
"""

import logging
from datetime import datetime
from typing import Mapping, Optional, Sequence

from core.clock import ensure_utc
from core.exceptions import InternalComputationError
from prioritization.config import PriorityConfig
from prioritization.models import PriorityCandidate, SelectionResult, TokenMetadata, VolumeTier
from prioritization.quality import quality_score


logger = logging.getLogger(__name__)


class PrioritySelector:
    """Deterministic budgeted selection."""

    def __init__(self, config: Optional[PriorityConfig] = None) -> None:
        self.config = config or PriorityConfig()

    # ─────────────────────────────────────────────────────────────
    # Candidates
    # ─────────────────────────────────────────────────────────────

    def tier_for(self, volume_usd: float) -> VolumeTier:
        tiers = self.config.tiers
        if volume_usd >= tiers.high_volume_usd:
            return VolumeTier.HIGH
        if volume_usd >= tiers.medium_volume_usd:
            return VolumeTier.MEDIUM
        return VolumeTier.LOW

    def refresh_hours(self, tier: VolumeTier) -> float:
        tiers = self.config.tiers
        return {
            VolumeTier.HIGH: tiers.high_refresh_hours,
            VolumeTier.MEDIUM: tiers.medium_refresh_hours,
            VolumeTier.LOW: tiers.low_refresh_hours,
        }[tier]

    def build_candidates(
        self,
        tokens: Sequence[TokenMetadata],
        volumes: Mapping[str, float],
        last_enriched: Mapping[str, datetime],
        now: datetime,
    ) -> list[PriorityCandidate]:
        """
        Args:
            volumes: measured 24h candle volume per token; the registry's
                reported volume is used for tokens without candles
            last_enriched: last snapshot time per token
        """
        now = ensure_utc(now)
        candidates = []
        for token in tokens:
            volume = volumes.get(token.token_id)
            if volume is None:
                volume = token.volume_24h_usd or 0.0

            last = last_enriched.get(token.token_id)
            staleness = None
            if last is not None:
                staleness = max(0.0, (now - ensure_utc(last)).total_seconds() / 3600.0)

            candidates.append(PriorityCandidate(
                token_id=token.token_id,
                staleness_hours=staleness,
                quality_score=quality_score(token, self.config.quality),
                volume_tier=self.tier_for(volume),
                volume_usd=volume,
            ))
        return candidates

    # ─────────────────────────────────────────────────────────────
    # Selection
    # ─────────────────────────────────────────────────────────────

    def select(self, candidates: Sequence[PriorityCandidate]) -> SelectionResult:
        """
        Raises:
            InternalComputationError: selection failed; fatal to the cycle
        """
        try:
            return self._select(candidates)
        except (ArithmeticError, TypeError, ValueError, KeyError) as e:
            raise InternalComputationError(
                f"Priority selection failed: {e}",
                stage="priority_selector",
                cause=e,
            ) from e

    def _select(self, candidates: Sequence[PriorityCandidate]) -> SelectionResult:
        # One candidate per token; first occurrence wins
        unique: dict[str, PriorityCandidate] = {}
        for candidate in candidates:
            unique.setdefault(candidate.token_id, candidate)

        never = sorted(
            (c for c in unique.values() if c.never_enriched),
            key=lambda c: (-c.quality_score, c.token_id),
        )
        due = []
        fresh = []
        for candidate in unique.values():
            if candidate.never_enriched:
                continue
            if candidate.staleness_hours >= self.refresh_hours(candidate.volume_tier):
                due.append(candidate)
            else:
                fresh.append(candidate)
        due.sort(key=lambda c: (-c.urgency, c.token_id))
        fresh.sort(key=lambda c: c.token_id)

        budget = self.config.budget
        cost = self.config.calls_per_token
        selected = []
        deferred = []
        calls_used = 0
        for candidate in never + due:
            if calls_used + cost <= budget:
                selected.append(candidate)
                calls_used += cost
            else:
                deferred.append(candidate)

        logger.info(
            f"[priority] Selected {len(selected)}/{len(unique)} tokens "
            f"(never={len(never)}, due={len(due)}, fresh={len(fresh)}, "
            f"deferred={len(deferred)}, calls={calls_used}/{budget})"
        )
        return SelectionResult(
            selected=tuple(selected),
            deferred=tuple(deferred),
            fresh=tuple(fresh),
            budget=budget,
            calls_used=calls_used,
        )
