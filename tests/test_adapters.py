"""
Transfer Feed Adapter Tests.

============================================================
PURPOSE
============================================================
Unit tests for the transfer feed adapter boundary.

TEST CATEGORIES:
- Pagination, since cut-off and the transaction cap
- Timeouts and the error taxonomy
- Retry policy schedule and retryable errors
- Shared rate limiter
- Helius payload normalization and classification
- Health tracking

============================================================
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from core.clock import MockClock
from core.exceptions import ConfigurationError, UpstreamMalformed, UpstreamUnavailable
from onchain_adapters import (
    AdapterStatus,
    HeliusTransferAdapter,
    InMemoryTransferAdapter,
    NotFoundError,
    RateLimitedError,
    RateLimiter,
    RetryPolicy,
    TransferClassification,
    create_transfer_adapter,
)

from conftest import NOW, make_transfer


MINT = "MintAddress111"


def hourly_transfers(count, token_id="TOKEN"):
    return [
        make_transfer(f"sig-{i:04d}", NOW - timedelta(hours=i), amount_usd=100.0, token_id=token_id)
        for i in range(count)
    ]


def clocked_sleep(clock, recorded):
    async def sleep(seconds):
        recorded.append(seconds)
        clock.advance(seconds)

    return sleep


def helius_tx(signature, transfers, tx_type="SWAP", fee_payer="trader", timestamp=None):
    return {
        "signature": signature,
        "timestamp": timestamp if timestamp is not None else int(NOW.timestamp()),
        "type": tx_type,
        "feePayer": fee_payer,
        "tokenTransfers": transfers,
    }


def mint_transfer(amount, source="pool", destination="trader", mint=MINT):
    return {
        "mint": mint,
        "tokenAmount": amount,
        "fromUserAccount": source,
        "toUserAccount": destination,
    }


# ============================================================
# PAGINATION TESTS
# ============================================================

class TestPagination:
    """Tests for BaseTransferAdapter.get_transfers."""

    @pytest.mark.asyncio
    async def test_reads_all_pages_oldest_first(self):
        """Test full history is returned ascending by timestamp."""
        adapter = InMemoryTransferAdapter(hourly_transfers(250), page_size=100)

        batch = await adapter.get_transfers("TOKEN")

        assert len(batch) == 250
        assert batch.complete
        assert len(adapter.calls) == 3
        timestamps = [e.timestamp for e in batch]
        assert timestamps == sorted(timestamps)

    @pytest.mark.asyncio
    async def test_stops_at_since(self):
        """Test pagination stops once a page reaches past `since`."""
        adapter = InMemoryTransferAdapter(hourly_transfers(300), page_size=10)

        batch = await adapter.get_transfers("TOKEN", since=NOW - timedelta(hours=24))

        assert len(batch) == 25
        assert len(adapter.calls) == 3
        assert batch.earliest_timestamp == NOW - timedelta(hours=24)
        assert not batch.complete

    @pytest.mark.asyncio
    async def test_since_not_reached_stays_complete(self):
        """Test history fully inside `since` is complete."""
        adapter = InMemoryTransferAdapter(hourly_transfers(20), page_size=10)

        batch = await adapter.get_transfers("TOKEN", since=NOW - timedelta(hours=24))

        assert len(batch) == 20
        assert batch.complete

    @pytest.mark.asyncio
    async def test_transaction_cap_marks_incomplete(self):
        """Test the cap truncates history and clears `complete`."""
        adapter = InMemoryTransferAdapter(hourly_transfers(300), page_size=100, max_transactions=150)

        batch = await adapter.get_transfers("TOKEN", since=NOW - timedelta(days=30))

        assert len(batch) == 200
        assert not batch.complete

    @pytest.mark.asyncio
    async def test_duplicates_removed(self):
        """Test repeated signatures yield one event."""
        event = make_transfer("sig-dup", NOW)
        adapter = InMemoryTransferAdapter([event, event, make_transfer("sig-other", NOW)])

        batch = await adapter.get_transfers("TOKEN")

        assert [e.signature for e in batch] == ["sig-dup", "sig-other"]

    @pytest.mark.asyncio
    async def test_unknown_token_is_empty(self):
        """Test a token without history yields an empty batch."""
        batch = await InMemoryTransferAdapter().get_transfers("NOTHING")

        assert len(batch) == 0
        assert batch.complete


# ============================================================
# ERROR TAXONOMY TESTS
# ============================================================

class TestAdapterErrors:
    """Tests for timeout and error mapping."""

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_unavailable(self):
        """Test a slow provider call surfaces UpstreamUnavailable."""
        adapter = InMemoryTransferAdapter(hourly_transfers(1), latency_seconds=0.5, timeout=0.01)

        with pytest.raises(UpstreamUnavailable, match="Timeout"):
            await adapter.get_transfers("TOKEN")

    @pytest.mark.asyncio
    async def test_errors_recorded_as_incidents(self, clock):
        """Test failures land in the incident log."""
        adapter = InMemoryTransferAdapter(clock=clock)
        adapter.fail_next("TOKEN", UpstreamMalformed("bad page", source="memory"))

        with pytest.raises(UpstreamMalformed):
            await adapter.get_transfers("TOKEN")

        incidents = adapter.get_incidents()
        assert incidents[-1].incident_type == "UpstreamMalformed"
        assert incidents[-1].token_id == "TOKEN"
        assert incidents[-1].timestamp == NOW

    @pytest.mark.asyncio
    async def test_health_degrades_and_recovers(self, clock):
        """Test consecutive failures degrade health and a success restores it."""
        adapter = InMemoryTransferAdapter(hourly_transfers(1), clock=clock)
        adapter.fail_next("TOKEN", *[UpstreamUnavailable("down") for _ in range(3)])

        for _ in range(3):
            with pytest.raises(UpstreamUnavailable):
                await adapter.get_transfers("TOKEN")

        assert adapter.get_health().status == AdapterStatus.DEGRADED
        assert adapter.is_usable()

        await adapter.get_transfers("TOKEN")

        assert adapter.get_health().status == AdapterStatus.HEALTHY
        assert adapter.get_health().consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_rate_limited_drains_shared_limiter(self, clock):
        """Test a 429 pauses every worker sharing the limiter."""
        limiter = RateLimiter(requests_per_second=5.0, burst=5, clock=clock)
        adapter = InMemoryTransferAdapter(rate_limiter=limiter, clock=clock)
        adapter.fail_next("TOKEN", RateLimitedError("slow down", source="memory", retry_after_seconds=30))

        with pytest.raises(RateLimitedError):
            await adapter.get_transfers("TOKEN")

        assert adapter.get_health().status == AdapterStatus.RATE_LIMITED
        assert limiter.available == 0.0

    def test_unknown_provider(self):
        """Test the factory rejects unknown providers."""
        with pytest.raises(ConfigurationError):
            create_transfer_adapter("solscan")

    def test_factory_builds_memory_adapter(self):
        """Test the factory passes options through."""
        adapter = create_transfer_adapter("memory", page_size=5)

        assert isinstance(adapter, InMemoryTransferAdapter)
        assert adapter.metadata().max_page_size == 5


# ============================================================
# RETRY POLICY TESTS
# ============================================================

class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_default_schedule(self):
        """Test the default policy retries once after 1s."""
        assert RetryPolicy().delays() == [1.0]

    def test_exponential_schedule_capped(self):
        """Test delays grow by the multiplier up to the cap."""
        policy = RetryPolicy(max_attempts=5, backoff_base_seconds=2.0, backoff_multiplier=2.0,
                             max_backoff_seconds=5.0)

        assert policy.delays() == [2.0, 4.0, 5.0, 5.0]

    @pytest.mark.parametrize("error, retried", [
        (UpstreamUnavailable("timeout"), True),
        (RateLimitedError("429"), False),
        (NotFoundError("404"), False),
        (UpstreamMalformed("shape"), False),
        (ValueError("bug"), False),
    ])
    def test_retryable_errors(self, error, retried):
        """Test which errors are retried."""
        assert RetryPolicy(max_attempts=3).should_retry(error, attempt=1) is retried

    def test_invalid_attempts(self):
        """Test max_attempts below one is rejected."""
        with pytest.raises(ConfigurationError):
            RetryPolicy(max_attempts=0)

    @pytest.mark.asyncio
    async def test_run_retries_then_succeeds(self):
        """Test a transient failure is retried after the scheduled delay."""
        adapter = InMemoryTransferAdapter(hourly_transfers(2))
        adapter.fail_next("TOKEN", UpstreamUnavailable("blip"))
        slept = []

        async def sleep(seconds):
            slept.append(seconds)

        batch = await RetryPolicy(max_attempts=2).run(
            lambda: adapter.get_transfers("TOKEN"), sleep=sleep
        )

        assert len(batch) == 2
        assert slept == [1.0]

    @pytest.mark.asyncio
    async def test_run_gives_up_after_max_attempts(self):
        """Test the last error is raised once attempts are exhausted."""
        operation = AsyncMock(side_effect=UpstreamUnavailable("down"))
        slept = []

        async def sleep(seconds):
            slept.append(seconds)

        with pytest.raises(UpstreamUnavailable):
            await RetryPolicy(max_attempts=3).run(operation, sleep=sleep)

        assert operation.await_count == 3
        assert slept == [1.0, 1.5]

    @pytest.mark.asyncio
    async def test_run_does_not_retry_rate_limit(self):
        """Test a 429 is raised immediately."""
        operation = AsyncMock(side_effect=RateLimitedError("429"))

        with pytest.raises(RateLimitedError):
            await RetryPolicy(max_attempts=3).run(operation, sleep=AsyncMock())

        assert operation.await_count == 1


# ============================================================
# RATE LIMITER TESTS
# ============================================================

class TestRateLimiter:
    """Tests for the shared token bucket."""

    @pytest.mark.asyncio
    async def test_burst_then_refill_rate(self, clock):
        """Test burst permits are immediate, then one per 1/rate seconds."""
        slept = []
        limiter = RateLimiter(requests_per_second=2.0, burst=2, clock=clock,
                              sleep=clocked_sleep(clock, slept))

        waits = [await limiter.acquire() for _ in range(3)]

        assert waits == [0.0, 0.0, 0.5]
        assert limiter.get_stats()["granted"] == 3

    @pytest.mark.asyncio
    async def test_rate_limited_blocks_for_retry_after(self, clock):
        """Test record_rate_limited pauses permits for the penalty."""
        slept = []
        limiter = RateLimiter(requests_per_second=2.0, burst=2, clock=clock,
                              sleep=clocked_sleep(clock, slept))

        limiter.record_rate_limited(10.0)
        waited = await limiter.acquire()

        assert waited == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_concurrent_workers_share_permits(self, clock):
        """Test concurrent acquirers are serialized through one bucket."""
        slept = []
        limiter = RateLimiter(requests_per_second=1.0, burst=1, clock=clock,
                              sleep=clocked_sleep(clock, slept))

        await asyncio.gather(*(limiter.acquire() for _ in range(4)))

        assert sum(slept) == pytest.approx(3.0)
        assert clock.monotonic() == pytest.approx(3.0)

    @pytest.mark.parametrize("kwargs", [{"requests_per_second": 0}, {"burst": 0}])
    def test_invalid_arguments(self, kwargs):
        """Test non-positive settings are rejected."""
        with pytest.raises(ValueError):
            RateLimiter(clock=MockClock(NOW), **kwargs)


# ============================================================
# HELIUS TESTS
# ============================================================

class TestHeliusNormalization:
    """Tests for HeliusTransferAdapter payload mapping."""

    @pytest.fixture
    def adapter(self):
        return HeliusTransferAdapter(api_key="test-key", price_resolver=lambda mint: 0.5)

    def test_swap_into_fee_payer_is_buy(self, adapter):
        """Test received-by-signer swaps are buys with a USD estimate."""
        page = [helius_tx("s1", [mint_transfer(1_000.0, source="pool", destination="trader")])]

        [event] = adapter.normalize_page(page, MINT)

        assert event.classification == TransferClassification.BUY
        assert event.amount_usd_estimate == 500.0
        assert event.timestamp == NOW

    def test_swap_out_of_fee_payer_is_sell(self, adapter):
        """Test sent-by-signer swaps are sells."""
        page = [helius_tx("s1", [mint_transfer(10.0, source="trader", destination="pool")])]

        [event] = adapter.normalize_page(page, MINT)

        assert event.classification == TransferClassification.SELL

    def test_plain_transfer_and_unknown(self, adapter):
        """Test TRANSFER and other types are classified."""
        page = [
            helius_tx("s1", [mint_transfer(1.0)], tx_type="TRANSFER"),
            helius_tx("s2", [mint_transfer(1.0)], tx_type="NFT_MINT"),
        ]

        events = adapter.normalize_page(page, MINT)

        assert [e.classification for e in events] == [
            TransferClassification.TRANSFER,
            TransferClassification.UNKNOWN,
        ]

    def test_largest_transfer_of_mint_wins(self, adapter):
        """Test one event per signature using the largest movement of the mint."""
        page = [helius_tx("s1", [
            mint_transfer(5.0),
            mint_transfer(50.0, source="trader", destination="pool"),
            mint_transfer(9_999.0, mint="OtherMint"),
        ])]

        [event] = adapter.normalize_page(page, MINT)

        assert event.amount_token == 50.0
        assert event.classification == TransferClassification.SELL

    def test_transactions_without_mint_skipped(self, adapter):
        """Test transactions not touching the mint produce nothing."""
        page = [helius_tx("s1", [mint_transfer(1.0, mint="OtherMint")])]

        assert adapter.normalize_page(page, MINT) == []

    def test_no_price_means_no_usd(self):
        """Test events lack a USD estimate when no price is known."""
        adapter = HeliusTransferAdapter(api_key="test-key")

        [event] = adapter.normalize_page([helius_tx("s1", [mint_transfer(3.0)])], MINT)

        assert event.amount_usd_estimate is None

    @pytest.mark.parametrize("page", [
        {"error": "nope"},
        ["not-an-object"],
        [{"timestamp": 1}],
        [helius_tx("s1", [], timestamp="yesterday")],
        [helius_tx("s1", [mint_transfer(1.0)], timestamp=1e20)],
        [helius_tx("s1", [mint_transfer(1.0)], timestamp=-1e20)],
        [helius_tx("s1", [mint_transfer(1.0)], timestamp=float("nan"))],
        [helius_tx("s1", [mint_transfer(1.0)], timestamp=float("inf"))],
        [helius_tx("s1", "transfers")],
        [helius_tx("s1", [mint_transfer("lots")])],
    ])
    def test_malformed_pages(self, adapter, page):
        """Test unexpected shapes raise UpstreamMalformed."""
        with pytest.raises(UpstreamMalformed):
            adapter.normalize_page(page, MINT)

    def test_next_cursor_only_on_full_page(self, adapter):
        """Test pagination continues from the last signature of a full page."""
        full = [helius_tx(f"s{i}", []) for i in range(HeliusTransferAdapter.PAGE_SIZE)]

        assert adapter.next_cursor(full) == f"s{HeliusTransferAdapter.PAGE_SIZE - 1}"
        assert adapter.next_cursor(full[:10]) is None

    @pytest.mark.asyncio
    async def test_fetch_page_passes_cursor(self, adapter):
        """Test `before` is sent when paginating."""
        adapter._http.request_json = AsyncMock(return_value=[])

        await adapter.fetch_page(MINT, "s99")

        _, kwargs = adapter._http.request_json.call_args
        assert kwargs["params"]["before"] == "s99"
        assert kwargs["params"]["api-key"] == "test-key"

    def test_missing_api_key(self, monkeypatch):
        """Test construction without a key fails."""
        monkeypatch.delenv("HELIUS_API_KEY", raising=False)

        with pytest.raises(ConfigurationError):
            HeliusTransferAdapter()
