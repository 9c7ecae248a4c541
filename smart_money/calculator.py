"""
Behavioral Metrics Calculator.

============================================================
RESPONSIBILITY
============================================================
Transfer history (+ candle market context) -> behavioral
snapshot fields, tagged with provenance, confidence and
analysis source.

- whale_buys_24h: buys >= whale_threshold_usd in the window
- new_holders_24h: destinations first seen in the window,
  scanning the whole fetched history
- volume_spike_ratio: current window / trailing average
- token_age_hours: now - earliest transfer or candle

============================================================
FALLBACK
============================================================
Feed unavailable, malformed or empty -> whale/holder/flow
fields are estimated from price/volume shape
(mathematical_fallback). Partial real data -> hybrid or
real_primary. Unknown token age -> error_fallback.

============================================================
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from core.clock import ensure_utc
from core.constants import AnalysisSource
from core.exceptions import InternalComputationError, UpstreamError
from onchain_adapters.models import TransferBatch
from smart_money.config import BehavioralConfig
from smart_money.confidence import classify_source, compute_confidence
from smart_money.estimator import FallbackEstimator
from smart_money.models import BehavioralMetrics, MarketContext, Provenance


logger = logging.getLogger(__name__)


class BehavioralMetricsCalculator:
    """Computes the behavioral half of a snapshot."""

    def __init__(self, config: Optional[BehavioralConfig] = None) -> None:
        self.config = config or BehavioralConfig()
        self.estimator = FallbackEstimator(self.config)

    def compute(
        self,
        token_id: str,
        transfers: Optional[TransferBatch],
        market: MarketContext,
        now: datetime,
        feed_error: Optional[UpstreamError] = None,
    ) -> BehavioralMetrics:
        """
        Args:
            transfers: fetched history, or None when the feed failed
            feed_error: the failure that caused `transfers` to be None

        Raises:
            InternalComputationError: unguarded arithmetic failure
        """
        try:
            return self._compute(token_id, transfers, market, ensure_utc(now), feed_error)
        except (ArithmeticError, ValueError) as e:
            raise InternalComputationError(
                f"Behavioral metrics failed: {e}",
                token_id=token_id,
                stage="behavioral",
                cause=e,
            ) from e

    def _compute(
        self,
        token_id: str,
        transfers: Optional[TransferBatch],
        market: MarketContext,
        now: datetime,
        feed_error: Optional[UpstreamError],
    ) -> BehavioralMetrics:
        metrics = BehavioralMetrics(token_id=token_id)
        provenance = metrics.provenance

        self._apply_token_age(metrics, transfers, market, now)
        self._apply_volume_spike(metrics, market)

        transfers_used = transfers is not None and len(transfers) > 0
        if transfers_used:
            self._apply_transfer_metrics(metrics, transfers, market, now)
        else:
            metrics.fallback_reason = (
                f"{type(feed_error).__name__}: {feed_error}" if feed_error else "empty transfer history"
            )
            self._apply_estimates(metrics, market)

        source = classify_source(provenance, transfers_used)
        if source == AnalysisSource.ERROR_FALLBACK:
            logger.warning(f"[behavioral] {token_id}: token age unknown, no transfers or candles")
            return BehavioralMetrics.error(token_id, "token age unknown")

        metrics.analysis_source = source
        metrics.data_confidence = compute_confidence(provenance, self.config.confidence, source)

        logger.debug(
            f"[behavioral] {token_id}: source={source.value} "
            f"confidence={metrics.data_confidence:.2f} transfers={metrics.transfer_count}"
        )
        return metrics

    # ─────────────────────────────────────────────────────────────
    # Field groups
    # ─────────────────────────────────────────────────────────────

    def _apply_token_age(
        self,
        metrics: BehavioralMetrics,
        transfers: Optional[TransferBatch],
        market: MarketContext,
        now: datetime,
    ) -> None:
        first_transfer = transfers.earliest_timestamp if transfers is not None else None
        first_candle = market.earliest_candle_at

        candidates = [
            (ts, prov) for ts, prov in (
                (first_transfer, Provenance.TRANSFER),
                (first_candle, Provenance.MARKET),
            ) if ts is not None
        ]
        if not candidates:
            metrics.provenance["token_age_hours"] = Provenance.UNAVAILABLE
            return

        earliest, provenance = min(candidates, key=lambda item: item[0])
        metrics.token_age_hours = max(0.0, (now - earliest).total_seconds() / 3600.0)
        metrics.provenance["token_age_hours"] = provenance

    def _apply_volume_spike(self, metrics: BehavioralMetrics, market: MarketContext) -> None:
        average = market.trailing_average_volume
        if average is None:
            estimate = self.estimator.volume_spike(market)
            metrics.volume_spike_ratio = estimate
            metrics.provenance["volume_spike_ratio"] = (
                Provenance.ESTIMATED if estimate is not None else Provenance.UNAVAILABLE
            )
        elif average == 0 or market.current_volume is None:
            # Undefined rather than infinite
            metrics.provenance["volume_spike_ratio"] = Provenance.UNAVAILABLE
        else:
            metrics.volume_spike_ratio = market.current_volume / average
            metrics.provenance["volume_spike_ratio"] = Provenance.MARKET

    def _apply_transfer_metrics(
        self,
        metrics: BehavioralMetrics,
        transfers: TransferBatch,
        market: MarketContext,
        now: datetime,
    ) -> None:
        window_start = now - timedelta(hours=self.config.activity_window_hours)
        threshold = self.config.whale_threshold_usd

        events = list(transfers)
        metrics.transfer_count = len(events)
        metrics.history_complete = transfers.complete
        in_window = [e for e in events if window_start <= e.timestamp <= now]
        priced = any(e.amount_usd_estimate is not None for e in events)

        # New holders: first-ever appearance as destination, over the whole history
        first_seen: dict[str, datetime] = {}
        for event in events:
            if event.destination_wallet and event.destination_wallet not in first_seen:
                first_seen[event.destination_wallet] = event.timestamp
        metrics.new_holders_24h = sum(
            1 for ts in first_seen.values() if window_start <= ts <= now
        )
        metrics.provenance["new_holders_24h"] = (
            Provenance.TRANSFER if transfers.complete else Provenance.APPROXIMATED
        )

        if priced:
            large_buys = [
                e for e in in_window
                if e.is_buy and e.amount_usd_estimate is not None and e.amount_usd_estimate >= threshold
            ]
            large_sells = [
                e for e in in_window
                if e.is_sell and e.amount_usd_estimate is not None and e.amount_usd_estimate >= threshold
            ]
            metrics.whale_buys_24h = len(large_buys)
            metrics.large_buy_volume_usd = sum(e.amount_usd_estimate for e in large_buys)
            metrics.large_sell_volume_usd = sum(e.amount_usd_estimate for e in large_sells)
            metrics.provenance["whale_buys_24h"] = Provenance.TRANSFER
            metrics.provenance["smart_money_index"] = Provenance.TRANSFER
        else:
            # No USD price for this token: whales and flows cannot be measured
            metrics.whale_buys_24h = self.estimator.whale_buys(market)
            buy, sell = self.estimator.large_flows(market)
            metrics.large_buy_volume_usd = buy
            metrics.large_sell_volume_usd = sell
            metrics.provenance["whale_buys_24h"] = Provenance.ESTIMATED
            metrics.provenance["smart_money_index"] = Provenance.ESTIMATED

    def _apply_estimates(self, metrics: BehavioralMetrics, market: MarketContext) -> None:
        metrics.whale_buys_24h = self.estimator.whale_buys(market)
        metrics.new_holders_24h = self.estimator.new_holders(market)
        buy, sell = self.estimator.large_flows(market)
        metrics.large_buy_volume_usd = buy
        metrics.large_sell_volume_usd = sell
        for name in ("whale_buys_24h", "new_holders_24h", "smart_money_index"):
            metrics.provenance[name] = Provenance.ESTIMATED
