"""
Pipeline and Batch Cycle Tests.

============================================================
PURPOSE
============================================================
End-to-end tests of the per-token pipeline and the batch
cycle against in-memory storage and an in-memory feed.

TEST CATEGORIES:
- Snapshot per timeframe and duplicate writes
- Feed failure fallback and error_fallback snapshots
- Budgeted selection across cycles
- Failure containment and cycle-level failure
- Bounded worker pool and cancellation
- CLI entry points

============================================================
"""

import asyncio
from datetime import timedelta
from unittest.mock import patch

import pytest

from core.constants import AnalysisSource, Timeframe
from core.exceptions import InternalComputationError, StorageError, UpstreamUnavailable
from onchain_adapters import InMemoryTransferAdapter, TransferClassification
from orchestrator.cli import create_parser, main
from orchestrator.config import EngineConfig
from orchestrator.core import build_cycle_runner
from orchestrator.models import OutcomeStatus, WriteStatus
from orchestrator.pipeline import LatestClosePriceResolver, TokenPipeline
from storage.repositories.features import FeatureStoreRepository

from conftest import NOW, make_candles, make_token, make_transfer


def feed_events(token_id="TOKEN"):
    return [
        make_transfer("sig-a", NOW - timedelta(hours=2), amount_usd=20_000.0, token_id=token_id),
        make_transfer("sig-b", NOW - timedelta(hours=3), amount_usd=500.0, token_id=token_id),
        make_transfer("sig-c", NOW - timedelta(hours=30), amount_usd=500.0, token_id=token_id),
        make_transfer("sig-d", NOW - timedelta(hours=4), amount_usd=15_000.0, token_id=token_id,
                      classification=TransferClassification.SELL),
    ]


def hourly_history(token_id="TOKEN", bars=48):
    return make_candles(token_id, Timeframe.H1, [1.0 + (i % 5) / 100 for i in range(bars)])


def latest_snapshot(session_factory, token_id="TOKEN", timeframe=Timeframe.H1):
    session = session_factory()
    try:
        return FeatureStoreRepository(session).latest(token_id, timeframe)
    finally:
        session.close()


def snapshot_count(session_factory, token_id=None) -> int:
    session = session_factory()
    try:
        return FeatureStoreRepository(session).count(token_id)
    finally:
        session.close()


@pytest.fixture
def slept():
    return []


@pytest.fixture
def pipeline_factory(session_factory, clock, slept):
    async def record_sleep(seconds):
        slept.append(seconds)

    def build(adapter, config=None):
        return TokenPipeline(session_factory, adapter, config or EngineConfig(), clock=clock,
                             retry_sleep=record_sleep)

    return build


# ============================================================
# PIPELINE TESTS
# ============================================================

class TestTokenPipeline:
    """Tests for TokenPipeline.run."""

    @pytest.mark.asyncio
    async def test_real_data_snapshot(self, pipeline_factory, store_candles, session_factory):
        """Test a complete feed and candle history yield a real_only snapshot."""
        store_candles(hourly_history())
        pipeline = pipeline_factory(InMemoryTransferAdapter(feed_events()))

        outcome = await pipeline.run(make_token("TOKEN"), NOW)

        assert outcome.status == OutcomeStatus.PERSISTED
        assert outcome.writes == {Timeframe.H1: WriteStatus.PERSISTED}
        snapshot = latest_snapshot(session_factory)
        assert snapshot.timestamp == NOW
        assert snapshot.analysis_source == AnalysisSource.REAL_ONLY
        assert snapshot.data_confidence == 1.0
        assert snapshot.whale_buys_24h == 1
        assert snapshot.new_holders_24h == 3
        assert snapshot.token_age_hours == pytest.approx(48.0)
        assert snapshot.volume_spike_ratio is not None
        assert snapshot.smart_money_index == pytest.approx((20_000 - 15_000) / 35_000)
        assert snapshot.smart_money_bullish
        assert snapshot.vwap is not None

    @pytest.mark.asyncio
    async def test_one_snapshot_per_timeframe(self, pipeline_factory, store_candles, session_factory):
        """Test each configured timeframe gets its own snapshot."""
        store_candles(hourly_history())
        config = EngineConfig(snapshot_timeframes=(Timeframe.H1, Timeframe.H4))
        pipeline = pipeline_factory(InMemoryTransferAdapter(feed_events()), config)

        outcome = await pipeline.run(make_token("TOKEN"), NOW + timedelta(minutes=10))

        assert set(outcome.writes) == {Timeframe.H1, Timeframe.H4}
        assert snapshot_count(session_factory, "TOKEN") == 2
        assert latest_snapshot(session_factory, timeframe=Timeframe.H4).timestamp == Timeframe.H4.floor(NOW)

    @pytest.mark.asyncio
    async def test_rerun_same_bar_is_duplicate(self, pipeline_factory, store_candles, session_factory):
        """Test a second run inside the same bar writes nothing new."""
        store_candles(hourly_history())
        pipeline = pipeline_factory(InMemoryTransferAdapter(feed_events()))
        await pipeline.run(make_token("TOKEN"), NOW)

        outcome = await pipeline.run(make_token("TOKEN"), NOW + timedelta(minutes=30))

        assert outcome.status == OutcomeStatus.DUPLICATE
        assert snapshot_count(session_factory, "TOKEN") == 1

    @pytest.mark.asyncio
    async def test_feed_failure_falls_back(self, pipeline_factory, store_candles, session_factory, slept):
        """Test an unavailable feed is retried, then estimated."""
        store_candles(hourly_history())
        adapter = InMemoryTransferAdapter(feed_events())
        adapter.fail_next("TOKEN", UpstreamUnavailable("down"), UpstreamUnavailable("still down"))
        pipeline = pipeline_factory(adapter)

        outcome = await pipeline.run(make_token("TOKEN"), NOW)

        assert slept == [1.0]
        assert outcome.feed_error.startswith("UpstreamUnavailable")
        assert outcome.status == OutcomeStatus.PERSISTED
        snapshot = latest_snapshot(session_factory)
        assert snapshot.analysis_source == AnalysisSource.MATHEMATICAL_FALLBACK
        assert 0.0 < snapshot.data_confidence < 1.0
        assert snapshot.whale_buys_24h is not None

    @pytest.mark.asyncio
    async def test_nothing_known_is_error_fallback(self, pipeline_factory, session_factory):
        """Test no candles and no transfers yields a zero-confidence snapshot."""
        pipeline = pipeline_factory(InMemoryTransferAdapter())

        outcome = await pipeline.run(make_token("TOKEN"), NOW)

        assert outcome.status == OutcomeStatus.ERROR_FALLBACK
        snapshot = latest_snapshot(session_factory)
        assert snapshot.analysis_source == AnalysisSource.ERROR_FALLBACK
        assert snapshot.data_confidence == 0.0
        assert snapshot.whale_buys_24h is None

    @pytest.mark.asyncio
    async def test_internal_error_writes_error_snapshot(self, pipeline_factory, store_candles, session_factory):
        """Test a computation failure still persists an error_fallback snapshot."""
        store_candles(hourly_history())
        pipeline = pipeline_factory(InMemoryTransferAdapter(feed_events()))

        with patch.object(pipeline.behavioral, "compute",
                          side_effect=InternalComputationError("bad math", stage="behavioral")):
            outcome = await pipeline.run(make_token("TOKEN"), NOW)

        assert outcome.error.startswith("bad math")
        assert outcome.status == OutcomeStatus.ERROR_FALLBACK
        snapshot = latest_snapshot(session_factory)
        assert snapshot.analysis_source == AnalysisSource.ERROR_FALLBACK
        assert snapshot.vwap is not None

    @pytest.mark.asyncio
    async def test_feed_bug_still_writes_snapshot(self, pipeline_factory, store_candles, session_factory, slept):
        """Test a non-upstream failure in the transfer branch keeps the technical half."""
        store_candles(hourly_history())
        adapter = InMemoryTransferAdapter(feed_events())
        adapter.fail_next("TOKEN", RuntimeError("provider bug"))
        pipeline = pipeline_factory(adapter)

        outcome = await pipeline.run(make_token("TOKEN"), NOW)

        assert slept == []
        assert "provider bug" in outcome.error
        assert outcome.status == OutcomeStatus.ERROR_FALLBACK
        assert snapshot_count(session_factory, "TOKEN") == 1
        snapshot = latest_snapshot(session_factory)
        assert snapshot.analysis_source == AnalysisSource.ERROR_FALLBACK
        assert snapshot.vwap is not None

    @pytest.mark.asyncio
    async def test_storage_failure_reported(self, pipeline_factory, store_candles):
        """Test a failed write is reported on the outcome."""
        store_candles(hourly_history())
        pipeline = pipeline_factory(InMemoryTransferAdapter(feed_events()))

        with patch.object(FeatureStoreRepository, "append", side_effect=StorageError("disk full")):
            outcome = await pipeline.run(make_token("TOKEN"), NOW)

        assert outcome.writes[Timeframe.H1] == WriteStatus.FAILED
        assert outcome.status == OutcomeStatus.FAILED

    def test_price_resolver_uses_latest_close(self, session_factory, store_candles, clock):
        """Test USD prices come from the latest stored bar."""
        store_candles(make_candles("TOKEN", Timeframe.H1, [1.0, 2.0, 3.5]))
        resolver = LatestClosePriceResolver(session_factory, Timeframe.H1, clock)

        assert resolver("TOKEN") == 3.5
        assert resolver("UNKNOWN") is None


# ============================================================
# CYCLE TESTS
# ============================================================

class TestFeatureCycle:
    """Tests for FeatureCycleRunner."""

    @pytest.fixture
    def runner_factory(self, session_factory, clock):
        def build(adapter=None, **overrides):
            values = {"priority": {"budget": 2}, "worker_pool_size": 2}
            values.update(overrides)
            config = EngineConfig.from_dict(values)
            return build_cycle_runner(
                config,
                session_factory,
                adapter=adapter or InMemoryTransferAdapter(),
                clock=clock,
            )

        return build

    @pytest.mark.asyncio
    async def test_budget_limits_cycle(self, runner_factory, register_tokens, session_factory):
        """Test only budgeted tokens are enriched, in selection order."""
        register_tokens([make_token("A"), make_token("B"), make_token("C")])
        runner = runner_factory()

        result = await runner.run_cycle(NOW)

        assert result.success
        assert result.universe_size == 3
        assert [o.token_id for o in result.outcomes] == ["A", "B"]
        assert [c.token_id for c in result.selection.deferred] == ["C"]
        assert snapshot_count(session_factory) == 2

    @pytest.mark.asyncio
    async def test_next_cycle_picks_deferred(self, runner_factory, register_tokens):
        """Test fresh tokens give way to never-enriched ones."""
        register_tokens([make_token("A"), make_token("B"), make_token("C")])
        runner = runner_factory()
        await runner.run_cycle(NOW)

        result = await runner.run_cycle(NOW + timedelta(minutes=5))

        assert [o.token_id for o in result.outcomes] == ["C"]
        assert {c.token_id for c in result.selection.fresh} == {"A", "B"}

    @pytest.mark.asyncio
    async def test_ineligible_tokens_never_selected(self, runner_factory, register_tokens):
        """Test the universe filter runs before selection."""
        register_tokens([make_token("A"), make_token("SCAMCOIN", name="scam coin")])
        runner = runner_factory()

        result = await runner.run_cycle(NOW)

        assert [o.token_id for o in result.outcomes] == ["A"]

    @pytest.mark.asyncio
    async def test_selector_failure_aborts_cycle(self, runner_factory, register_tokens, session_factory):
        """Test a failure before the fan-out writes nothing."""
        register_tokens([make_token("A")])
        runner = runner_factory()

        with patch.object(runner.selector, "select",
                          side_effect=InternalComputationError("selector broke")):
            result = await runner.run_cycle(NOW)

        assert not result.success
        assert "InternalComputationError" in result.error
        assert result.outcomes == []
        assert snapshot_count(session_factory) == 0
        assert runner.history.get_last() is result

    @pytest.mark.asyncio
    async def test_token_failure_contained(self, runner_factory, register_tokens, session_factory):
        """Test one failing token does not stop the others."""
        register_tokens([make_token("A"), make_token("B")])
        runner = runner_factory()
        pipeline = runner._pipeline
        original = pipeline.run

        async def flaky(token, now):
            if token.token_id == "A":
                raise RuntimeError("unexpected")
            return await original(token, now)

        pipeline.run = flaky

        result = await runner.run_cycle(NOW)

        assert result.success
        failed = result.outcome_for("A")
        assert failed.status == OutcomeStatus.FAILED
        assert failed.error == "RuntimeError: unexpected"
        assert result.outcome_for("B").status == OutcomeStatus.ERROR_FALLBACK
        assert snapshot_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_worker_pool_bounds_concurrency(self, runner_factory, register_tokens):
        """Test no more than worker_pool_size tokens run at once."""
        register_tokens([make_token(f"T{i}") for i in range(6)])
        runner = runner_factory(priority={"budget": 10}, worker_pool_size=2)
        pipeline = runner._pipeline
        original = pipeline.run
        active = []
        peak = []

        async def tracked(token, now):
            active.append(token.token_id)
            peak.append(len(active))
            await asyncio.sleep(0.01)
            try:
                return await original(token, now)
            finally:
                active.remove(token.token_id)

        pipeline.run = tracked

        result = await runner.run_cycle(NOW)

        assert len(result.outcomes) == 6
        assert max(peak) == 2

    @pytest.mark.asyncio
    async def test_cancellation_finishes_workers(self, runner_factory, register_tokens):
        """Test cancelling a cycle leaves no worker task running."""
        register_tokens([make_token(f"T{i}") for i in range(4)])
        runner = runner_factory(priority={"budget": 10}, worker_pool_size=2)
        started = []
        stopped = []

        async def blocked(token, now):
            started.append(token.token_id)
            try:
                await asyncio.Event().wait()
            finally:
                stopped.append(token.token_id)

        runner._pipeline.run = blocked

        cycle = asyncio.create_task(runner.run_cycle(NOW))
        while len(started) < 2:
            await asyncio.sleep(0)
        cycle.cancel()

        with pytest.raises(asyncio.CancelledError):
            await cycle

        assert sorted(stopped) == sorted(started)

    @pytest.mark.asyncio
    async def test_cycle_history(self, runner_factory, register_tokens):
        """Test cycles are recorded in the history."""
        register_tokens([make_token("A")])
        runner = runner_factory()

        await runner.run_cycle(NOW)
        await runner.run_cycle(NOW + timedelta(hours=2))

        stats = runner.history.get_statistics()
        assert stats["total_cycles"] == 2
        assert stats["success_rate"] == 1.0
        assert runner.history.get_success_rate() == 1.0

    @pytest.mark.asyncio
    async def test_empty_universe(self, runner_factory):
        """Test a cycle over no tokens succeeds with no outcomes."""
        result = await runner_factory().run_cycle(NOW)

        assert result.success
        assert result.outcomes == []


# ============================================================
# CLI TESTS
# ============================================================

class TestCli:
    """Tests for the command-line entry point."""

    def test_parser(self):
        """Test argument parsing."""
        args = create_parser().parse_args(["--mode", "ingest", "--tokens", "A", "B"])

        assert args.mode == "ingest"
        assert args.tokens == ["A", "B"]
        assert not args.single_cycle

    def test_init_db(self, monkeypatch):
        """Test table creation exits cleanly."""
        monkeypatch.delenv("FEATURE_TIMEFRAMES", raising=False)

        assert main(["--mode", "init-db", "--database-url", "sqlite:///:memory:"]) == 0

    def test_bad_config_exit_code(self, tmp_path):
        """Test configuration errors exit with code 2."""
        assert main(["--mode", "init-db", "--config", str(tmp_path / "missing.yaml")]) == 2
