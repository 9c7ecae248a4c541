"""
Behavioral Metrics Tests.

============================================================
PURPOSE
============================================================
Unit tests for transfer-derived metrics, the fallback estimator
and confidence / analysis-source tagging.

TEST CATEGORIES:
- Whale threshold boundary
- New holder detection over full history
- Volume spike windows
- Analysis source and confidence per data situation
- Configurable confidence weights

============================================================
"""

from datetime import timedelta

import pytest

from core.constants import AnalysisSource, Timeframe
from core.exceptions import ConfigurationError, UpstreamUnavailable
from onchain_adapters.models import TransferBatch, TransferClassification
from onchain_adapters.providers.memory import InMemoryTransferAdapter
from smart_money.calculator import BehavioralMetricsCalculator
from smart_money.config import BehavioralConfig, ConfidenceWeights
from smart_money.confidence import classify_source, compute_confidence
from smart_money.estimator import FallbackEstimator
from smart_money.market import build_market_context
from smart_money.models import MarketContext, Provenance

from conftest import NOW, make_candles, make_transfer


def market(**overrides) -> MarketContext:
    values = dict(
        current_volume=120_000.0,
        baseline_volumes=(100_000.0,),
        earliest_candle_at=NOW - timedelta(days=10),
        price_usd=1.5,
        price_change_pct=4.0,
        market_cap_usd=2_000_000.0,
        up_volume_usd=70_000.0,
        down_volume_usd=50_000.0,
    )
    values.update(overrides)
    return MarketContext(**values)


def batch(events, complete=True) -> TransferBatch:
    return TransferBatch.from_events("TOKEN", events, complete=complete)


# ============================================================
# WHALE TESTS
# ============================================================

class TestWhaleBuys:
    """Tests for whale_buys_24h."""

    def test_threshold_is_inclusive(self):
        """Test $9,999 does not count and $10,000 does."""
        calculator = BehavioralMetricsCalculator(BehavioralConfig(whale_threshold_usd=10_000))
        events = [
            make_transfer("a", NOW - timedelta(hours=2), amount_usd=9_999.0),
            make_transfer("b", NOW - timedelta(hours=1), amount_usd=10_000.0),
        ]

        metrics = calculator.compute("TOKEN", batch(events), market(), NOW)

        assert metrics.whale_buys_24h == 1
        assert metrics.large_buy_volume_usd == pytest.approx(10_000.0)

    def test_only_buys_in_window_count(self):
        """Test sells and transfers older than 24h are ignored."""
        calculator = BehavioralMetricsCalculator()
        events = [
            make_transfer("old", NOW - timedelta(hours=30), amount_usd=50_000.0),
            make_transfer("sell", NOW - timedelta(hours=3), amount_usd=50_000.0,
                          classification=TransferClassification.SELL),
            make_transfer("plain", NOW - timedelta(hours=3), amount_usd=50_000.0,
                          classification=TransferClassification.TRANSFER),
            make_transfer("buy", NOW - timedelta(hours=1), amount_usd=20_000.0),
        ]

        metrics = calculator.compute("TOKEN", batch(events), market(), NOW)

        assert metrics.whale_buys_24h == 1
        assert metrics.large_sell_volume_usd == pytest.approx(50_000.0)


# ============================================================
# NEW HOLDER TESTS
# ============================================================

class TestNewHolders:
    """Tests for new_holders_24h."""

    def test_first_appearance_over_whole_history(self):
        """Test a wallet seen before the window is not new."""
        calculator = BehavioralMetricsCalculator()
        events = [
            make_transfer("1", NOW - timedelta(days=3), destination="returning"),
            make_transfer("2", NOW - timedelta(hours=5), destination="returning"),
            make_transfer("3", NOW - timedelta(hours=4), destination="fresh-a"),
            make_transfer("4", NOW - timedelta(hours=2), destination="fresh-b"),
            make_transfer("5", NOW - timedelta(hours=1), destination="fresh-a"),
        ]

        metrics = calculator.compute("TOKEN", batch(events), market(), NOW)

        assert metrics.new_holders_24h == 2
        assert metrics.provenance_of("new_holders_24h") == Provenance.TRANSFER

    def test_truncated_history_is_approximated(self):
        """Test an incomplete batch marks holders approximated."""
        calculator = BehavioralMetricsCalculator()
        events = [make_transfer("1", NOW - timedelta(hours=1), amount_usd=500.0)]

        metrics = calculator.compute("TOKEN", batch(events, complete=False), market(), NOW)

        assert metrics.provenance_of("new_holders_24h") == Provenance.APPROXIMATED
        assert metrics.analysis_source == AnalysisSource.REAL_PRIMARY

    @pytest.mark.asyncio
    async def test_history_cut_at_since_is_approximated(self):
        """Test a wallet first seen before the fetched range lowers confidence."""
        adapter = InMemoryTransferAdapter(
            [
                make_transfer("old", NOW - timedelta(days=60), amount_usd=500.0, destination="returning"),
                make_transfer("mid", NOW - timedelta(days=10), amount_usd=500.0),
                make_transfer("new", NOW - timedelta(hours=2), amount_usd=500.0, destination="returning"),
            ],
            page_size=1,
        )

        transfers = await adapter.get_transfers("TOKEN", since=NOW - timedelta(hours=720))
        metrics = BehavioralMetricsCalculator().compute("TOKEN", transfers, market(), NOW)

        assert not transfers.complete
        assert [e.signature for e in transfers] == ["mid", "new"]
        assert metrics.provenance_of("new_holders_24h") == Provenance.APPROXIMATED
        assert metrics.analysis_source != AnalysisSource.REAL_ONLY
        assert metrics.data_confidence < 1.0


# ============================================================
# VOLUME SPIKE TESTS
# ============================================================

class TestVolumeSpike:
    """Tests for volume_spike_ratio and market context windows."""

    def test_equal_volume_gives_exactly_one(self):
        """Test current == trailing average yields 1.0."""
        candles = make_candles("TOKEN", Timeframe.H1, [1.0] * 48, volume=1_000.0)
        config = BehavioralConfig()

        context = build_market_context(candles, NOW, config)
        metrics = BehavioralMetricsCalculator(config).compute("TOKEN", None, context, NOW)

        assert context.current_volume == context.trailing_average_volume
        assert metrics.volume_spike_ratio == 1.0

    def test_spike_of_two_and_a_half(self):
        """Test 250k current over 100k average yields 2.5."""
        volumes = [100_000.0 / 24] * 24 + [250_000.0 / 24] * 24
        candles = make_candles("TOKEN", Timeframe.H1, [1.0] * 48, volumes=volumes)

        context = build_market_context(candles, NOW, BehavioralConfig())

        assert context.current_volume == pytest.approx(250_000.0)
        assert context.trailing_average_volume == pytest.approx(100_000.0)

        metrics = BehavioralMetricsCalculator().compute(
            "TOKEN", None, market(current_volume=250_000.0, baseline_volumes=(100_000.0,)), NOW
        )
        assert metrics.volume_spike_ratio == 2.5

    def test_partial_baseline_window_is_not_counted(self):
        """Test a baseline window not fully covered by history is skipped."""
        candles = make_candles("TOKEN", Timeframe.H1, [1.0] * 30)

        context = build_market_context(candles, NOW, BehavioralConfig())

        assert context.baseline_volumes == ()
        assert context.trailing_average_volume is None

    def test_zero_average_is_unavailable(self):
        """Test a zero baseline leaves the ratio null instead of infinite."""
        metrics = BehavioralMetricsCalculator().compute(
            "TOKEN", None, market(baseline_volumes=(0.0,)), NOW
        )

        assert metrics.volume_spike_ratio is None
        assert metrics.provenance_of("volume_spike_ratio") == Provenance.UNAVAILABLE

    def test_estimated_without_baseline(self):
        """Test the fallback estimate is used when no baseline exists."""
        metrics = BehavioralMetricsCalculator().compute(
            "TOKEN", None, market(baseline_volumes=(), price_change_pct=-25.0), NOW
        )

        assert metrics.volume_spike_ratio == pytest.approx(1.5)
        assert metrics.provenance_of("volume_spike_ratio") == Provenance.ESTIMATED


# ============================================================
# SOURCE AND CONFIDENCE TESTS
# ============================================================

class TestAnalysisSource:
    """Tests for analysis_source and data_confidence tagging."""

    def test_real_only(self):
        """Test complete priced history is real_only with full confidence."""
        events = [make_transfer("1", NOW - timedelta(hours=1), amount_usd=15_000.0)]

        metrics = BehavioralMetricsCalculator().compute("TOKEN", batch(events), market(), NOW)

        assert metrics.analysis_source == AnalysisSource.REAL_ONLY
        assert metrics.data_confidence == 1.0

    def test_real_primary_confidence(self):
        """Test approximated holders reduce confidence by their credit."""
        events = [make_transfer("1", NOW - timedelta(hours=1), amount_usd=15_000.0)]

        metrics = BehavioralMetricsCalculator().compute(
            "TOKEN", batch(events, complete=False), market(), NOW
        )

        assert metrics.analysis_source == AnalysisSource.REAL_PRIMARY
        assert metrics.data_confidence == pytest.approx((1 + 0.6 + 1 + 0.5 + 0.5) / 4)

    def test_unpriced_transfers_are_hybrid(self):
        """Test transfers without USD estimates make whale fields estimated."""
        events = [make_transfer("1", NOW - timedelta(hours=1), amount_usd=None)]

        metrics = BehavioralMetricsCalculator().compute("TOKEN", batch(events), market(), NOW)

        assert metrics.analysis_source == AnalysisSource.HYBRID
        assert metrics.provenance_of("whale_buys_24h") == Provenance.ESTIMATED
        assert metrics.provenance_of("new_holders_24h") == Provenance.TRANSFER
        assert 0.0 < metrics.data_confidence < 1.0

    def test_feed_failure_is_mathematical_fallback(self):
        """Test an upstream failure switches to estimation."""
        error = UpstreamUnavailable("HTTP 503", source="helius")

        metrics = BehavioralMetricsCalculator().compute("TOKEN", None, market(), NOW, feed_error=error)

        assert metrics.analysis_source == AnalysisSource.MATHEMATICAL_FALLBACK
        assert "UpstreamUnavailable" in metrics.fallback_reason
        assert metrics.whale_buys_24h is not None
        assert metrics.new_holders_24h is not None
        assert 0.0 < metrics.data_confidence < 1.0

    def test_empty_history_is_mathematical_fallback(self):
        """Test an empty transfer history is treated like a feed failure."""
        metrics = BehavioralMetricsCalculator().compute("TOKEN", batch([]), market(), NOW)

        assert metrics.analysis_source == AnalysisSource.MATHEMATICAL_FALLBACK
        assert metrics.fallback_reason == "empty transfer history"

    def test_unknown_age_is_error_fallback(self):
        """Test no transfers and no candles yields error_fallback with zero confidence."""
        empty_market = MarketContext()

        metrics = BehavioralMetricsCalculator().compute("TOKEN", None, empty_market, NOW)

        assert metrics.analysis_source == AnalysisSource.ERROR_FALLBACK
        assert metrics.data_confidence == 0.0
        assert metrics.whale_buys_24h is None

    @pytest.mark.parametrize("transfers, context", [
        (None, market()),
        (batch([]), market(baseline_volumes=(), price_change_pct=None)),
        (batch([make_transfer("1", NOW - timedelta(hours=1), amount_usd=None)]), market()),
        (batch([make_transfer("1", NOW - timedelta(hours=1), amount_usd=1.0)], complete=False),
         market(market_cap_usd=None)),
    ])
    def test_confidence_positive_unless_error(self, transfers, context):
        """Test data_confidence is in (0, 1] for every non-error snapshot."""
        metrics = BehavioralMetricsCalculator().compute("TOKEN", transfers, context, NOW)

        assert metrics.analysis_source != AnalysisSource.ERROR_FALLBACK
        assert 0.0 < metrics.data_confidence <= 1.0

    def test_token_age_uses_earliest_source(self):
        """Test age comes from the earliest transfer or candle."""
        events = [make_transfer("1", NOW - timedelta(hours=12))]

        metrics = BehavioralMetricsCalculator().compute(
            "TOKEN", batch(events), market(earliest_candle_at=NOW - timedelta(hours=6)), NOW
        )

        assert metrics.token_age_hours == pytest.approx(12.0)
        assert metrics.provenance_of("token_age_hours") == Provenance.TRANSFER


class TestConfidenceWeights:
    """Tests for configurable confidence weighting."""

    def test_custom_weights_change_confidence(self):
        """Test weights and credits come from configuration."""
        weights = ConfidenceWeights(field_weights={"whale_buys_24h": 1.0})
        provenance = {"whale_buys_24h": Provenance.ESTIMATED, "token_age_hours": Provenance.MARKET}

        confidence = compute_confidence(provenance, weights, AnalysisSource.MATHEMATICAL_FALLBACK)

        assert confidence == pytest.approx(0.2)

    def test_floor_for_non_error_sources(self):
        """Test non-error snapshots never reach zero."""
        weights = ConfidenceWeights(min_confidence=0.05)
        provenance = {"token_age_hours": Provenance.UNAVAILABLE}

        confidence = compute_confidence(provenance, weights, AnalysisSource.MATHEMATICAL_FALLBACK)

        assert confidence == 0.05

    def test_error_source_is_zero(self):
        """Test error_fallback always has zero confidence."""
        provenance = {name: Provenance.TRANSFER for name in ("whale_buys_24h", "token_age_hours")}

        assert compute_confidence(provenance, ConfidenceWeights(), AnalysisSource.ERROR_FALLBACK) == 0.0

    def test_missing_credit_rejected(self):
        """Test every provenance needs a credit."""
        with pytest.raises(ConfigurationError):
            ConfidenceWeights(provenance_credits={"transfer": 1.0})

    def test_classify_without_age(self):
        """Test unknown token age classifies as error_fallback."""
        assert classify_source({}, transfers_used=True) == AnalysisSource.ERROR_FALLBACK

    def test_from_dict_builds_nested_weights(self):
        """Test BehavioralConfig.from_dict accepts a confidence mapping."""
        config = BehavioralConfig.from_dict({
            "whale_threshold_usd": 5_000,
            "confidence": {"min_confidence": 0.1},
        })

        assert config.whale_threshold_usd == 5_000
        assert config.confidence.min_confidence == 0.1

    def test_from_dict_rejects_unknown(self):
        """Test unknown behavioral settings are rejected."""
        with pytest.raises(ConfigurationError):
            BehavioralConfig.from_dict({"whale_usd": 1})


# ============================================================
# ESTIMATOR TESTS
# ============================================================

class TestFallbackEstimator:
    """Tests for price/volume heuristics."""

    def test_whale_estimate_is_capped(self):
        """Test whale estimate saturates at the configured maximum."""
        estimator = FallbackEstimator(BehavioralConfig())

        assert estimator.whale_buys(market(current_volume=200_000.0, market_cap_usd=1_000_000.0)) == 10
        assert estimator.whale_buys(market(current_volume=5_000_000.0, market_cap_usd=1_000_000.0)) == 15

    def test_whale_estimate_without_market_cap(self):
        """Test missing market cap estimates zero whales."""
        estimator = FallbackEstimator(BehavioralConfig())

        assert estimator.whale_buys(market(market_cap_usd=None)) == 0

    def test_holder_estimate(self):
        """Test holder estimate from volume saturation and price change."""
        estimator = FallbackEstimator(BehavioralConfig())

        assert estimator.new_holders(market(current_volume=50_000.0, price_change_pct=None)) == 50
        assert estimator.new_holders(market(current_volume=500_000.0, price_change_pct=-10.0)) == 100
