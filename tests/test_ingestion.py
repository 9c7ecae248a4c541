"""
Candle Ingestion Tests.

============================================================
PURPOSE
============================================================
Tests for the candle ingestion service and OHLCV collectors.

TEST CATEGORIES:
- Window planning (overlap, backfill, chunks)
- Incremental, idempotent ingestion
- Upstream failure handling
- Birdeye response parsing

============================================================
"""

from datetime import timedelta

import pytest

from core.constants import Timeframe
from core.exceptions import ConfigurationError, UpstreamMalformed, UpstreamUnavailable
from data_ingestion.collectors import (
    BirdeyeCandleCollector,
    InMemoryCandleCollector,
    create_candle_collector,
)
from data_ingestion.ingestion_service import CandleIngestionService, IngestionServiceConfig
from data_ingestion.types import IngestionStatus
from onchain_adapters.retry import RetryPolicy
from storage.database import transaction_scope
from storage.repositories.candles import CandleRepository

from conftest import NOW, make_candles


HOURLY = IngestionServiceConfig(timeframes=(Timeframe.H1,), backfill_days={Timeframe.H1: 2})


@pytest.fixture
def collector():
    return InMemoryCandleCollector(make_candles("TOKEN", Timeframe.H1, [1.0 + i / 10 for i in range(10)]))


@pytest.fixture
def service(collector, session_factory, clock):
    return CandleIngestionService(
        collector,
        session_factory,
        config=HOURLY,
        retry_policy=RetryPolicy(max_attempts=1),
        clock=clock,
    )


def stored_count(session_factory, token_id="TOKEN", timeframe=Timeframe.H1) -> int:
    with transaction_scope(session_factory) as session:
        return len(CandleRepository(session).get_candles(
            token_id, timeframe, NOW - timedelta(days=30), NOW
        ))


# ============================================================
# WINDOW TESTS
# ============================================================

class TestWindowPlanning:
    """Tests for fetch window computation."""

    def test_new_series_backfills(self, service):
        """Test a series without bars starts at the backfill horizon."""
        start, end = service.compute_window(Timeframe.H1, None, NOW)

        assert start == NOW - timedelta(days=2)
        assert end == NOW

    def test_existing_series_overlaps(self, service):
        """Test a known series resumes a few bars before its latest bar."""
        latest = NOW - timedelta(hours=1)

        start, _ = service.compute_window(Timeframe.H1, latest, NOW)

        assert start == latest - timedelta(hours=3)

    def test_chunks_cover_range(self, collector, session_factory):
        """Test long ranges split into provider-sized chunks."""
        config = IngestionServiceConfig(timeframes=(Timeframe.H1,), chunk_bars=24)
        service = CandleIngestionService(collector, session_factory, config=config)

        chunks = service.chunk_window(Timeframe.H1, NOW - timedelta(hours=60), NOW)

        assert len(chunks) == 3
        assert chunks[0] == (NOW - timedelta(hours=60), NOW - timedelta(hours=36))
        assert chunks[-1][1] == NOW

    def test_unknown_backfill_timeframe_defaults(self):
        """Test a timeframe without a backfill entry uses seven days."""
        assert HOURLY.backfill_for(Timeframe.D1) == timedelta(days=7)

    def test_invalid_config(self):
        """Test validation of ingestion settings."""
        with pytest.raises(ConfigurationError):
            IngestionServiceConfig(chunk_bars=0)


# ============================================================
# INGESTION TESTS
# ============================================================

class TestIngest:
    """Tests for CandleIngestionService.ingest."""

    @pytest.mark.asyncio
    async def test_first_run_stores_history(self, service, session_factory):
        """Test a new series is backfilled."""
        result = await service.ingest("TOKEN", Timeframe.H1)

        assert result.status == IngestionStatus.SUCCESS
        assert result.records_stored == 10
        assert stored_count(session_factory) == 10

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, service, session_factory):
        """Test overlap bars are re-read but not stored twice."""
        await service.ingest("TOKEN", Timeframe.H1)

        result = await service.ingest("TOKEN", Timeframe.H1)

        assert result.records_fetched == 4
        assert result.records_stored == 0
        assert result.records_skipped == 4
        assert stored_count(session_factory) == 10

    @pytest.mark.asyncio
    async def test_new_bar_appended(self, service, collector, session_factory, clock):
        """Test the next run picks up a newly closed bar."""
        await service.ingest("TOKEN", Timeframe.H1)
        clock.advance(hours=1)
        collector.add_candles(make_candles("TOKEN", Timeframe.H1, [2.0], end=clock.now()))

        result = await service.ingest("TOKEN", Timeframe.H1)

        assert result.records_stored == 1
        assert stored_count(session_factory) == 10 + 1

    @pytest.mark.asyncio
    async def test_up_to_date(self, collector, session_factory, clock):
        """Test no request is made when the window is under one bar."""
        config = IngestionServiceConfig(timeframes=(Timeframe.H1,), overlap_bars=0,
                                        backfill_days={Timeframe.H1: 2})
        service = CandleIngestionService(collector, session_factory, config=config, clock=clock)
        await service.ingest("TOKEN", Timeframe.H1)
        requests = len(collector.requests)

        result = await service.ingest("TOKEN", Timeframe.H1)

        assert result.status == IngestionStatus.UP_TO_DATE
        assert len(collector.requests) == requests

    @pytest.mark.asyncio
    async def test_upstream_failure_reported(self, service, collector):
        """Test provider failures are reported, not raised."""
        collector.fail_next(UpstreamUnavailable("down", source="memory"))

        result = await service.ingest("TOKEN", Timeframe.H1)

        assert result.status == IngestionStatus.FAILED
        assert not result.is_success
        assert result.errors[0].startswith("down")
        assert service.metrics.failed_runs == 1

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, collector, session_factory, clock):
        """Test the retry policy wraps each provider request."""
        service = CandleIngestionService(
            collector,
            session_factory,
            config=HOURLY,
            retry_policy=RetryPolicy(max_attempts=2, backoff_base_seconds=0.0),
            clock=clock,
        )
        collector.fail_next(UpstreamUnavailable("blip"))

        result = await service.ingest("TOKEN", Timeframe.H1)

        assert result.status == IngestionStatus.SUCCESS
        assert len(collector.requests) == 2

    @pytest.mark.asyncio
    async def test_ingest_many(self, collector, session_factory, clock):
        """Test every (token, timeframe) pair is processed."""
        collector.add_candles(make_candles("OTHER", Timeframe.H1, [5.0, 6.0]))
        service = CandleIngestionService(collector, session_factory, config=HOURLY, clock=clock)

        results = await service.ingest_many(["TOKEN", "OTHER"])

        assert [(r.token_id, r.records_stored) for r in results] == [("TOKEN", 10), ("OTHER", 2)]
        assert service.metrics.total_records_stored == 12


# ============================================================
# BIRDEYE TESTS
# ============================================================

class TestBirdeyeParsing:
    """Tests for BirdeyeCandleCollector.parse_candles."""

    @pytest.fixture
    def birdeye(self):
        return BirdeyeCandleCollector(api_key="test-key")

    @staticmethod
    def item(unix_time, close=2.0, **extra):
        values = {"unixTime": unix_time, "o": 1.0, "h": 2.5, "l": 0.5, "c": close, "v": 100.0}
        values.update(extra)
        return values

    def test_parses_items(self, birdeye):
        """Test bars are mapped and snapped to the bucket start."""
        raw = {"success": True, "data": {"items": [self.item(int(NOW.timestamp()) + 30)]}}

        [candle] = birdeye.parse_candles(raw, "TOKEN", Timeframe.H1)

        assert candle.timestamp == NOW
        assert candle.close == 2.0
        assert candle.volume == 200.0

    def test_usd_volume_preferred(self, birdeye):
        """Test a reported USD volume wins over close * v."""
        raw = {"data": {"items": [self.item(int(NOW.timestamp()), quoteVolumeUsd=999.0)]}}

        [candle] = birdeye.parse_candles(raw, "TOKEN", Timeframe.H1)

        assert candle.volume == 999.0

    def test_zero_close_dropped(self, birdeye):
        """Test bars without a positive close are skipped."""
        raw = {"data": {"items": [self.item(int(NOW.timestamp()), close=0.0)]}}

        assert birdeye.parse_candles(raw, "TOKEN", Timeframe.H1) == []

    def test_refused_request(self, birdeye):
        """Test success=false is an availability failure."""
        with pytest.raises(UpstreamUnavailable):
            birdeye.parse_candles({"success": False, "message": "limit"}, "TOKEN", Timeframe.H1)

    @pytest.mark.parametrize("raw", [
        [],
        {"data": {}},
        {"data": {"items": ["bar"]}},
        {"data": {"items": [{"unixTime": 1, "o": 1, "h": 1, "l": 1}]}},
        {"data": {"items": [{"unixTime": "now", "o": 1, "h": 1, "l": 1, "c": 1}]}},
        {"data": {"items": [{"unixTime": 1e20, "o": 1, "h": 1, "l": 1, "c": 1}]}},
    ])
    def test_malformed(self, birdeye, raw):
        """Test unexpected shapes raise UpstreamMalformed."""
        with pytest.raises(UpstreamMalformed):
            birdeye.parse_candles(raw, "TOKEN", Timeframe.H1)

    def test_missing_api_key(self, monkeypatch):
        """Test construction without a key fails."""
        monkeypatch.delenv("BIRDEYE_API_KEY", raising=False)

        with pytest.raises(ConfigurationError):
            create_candle_collector("birdeye")

    def test_unknown_provider(self):
        """Test the factory rejects unknown providers."""
        with pytest.raises(ConfigurationError):
            create_candle_collector("coingecko")
