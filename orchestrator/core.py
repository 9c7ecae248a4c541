"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Runs the periodic batch cycle.

1. Load the token universe (explicit cache, refreshed by policy)
2. Build priority candidates from candle volume and last
   snapshot times
3. Run the Priority Selector once, synchronously
4. Fan the selected tokens out to a fixed-size worker pool
5. Collect per-token outcomes into a CycleResult

============================================================
FAILURE POLICY
============================================================
- Errors before the fan-out (selector, storage) fail the cycle
- Errors inside one token's pipeline are contained to it
- Cancellation stops the workers; snapshots already written
  stay, since each write is its own transaction

============================================================
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from core.clock import ClockProtocol, SystemClock, ensure_utc
from core.exceptions import FeatureEngineError
from onchain_adapters.base import BaseTransferAdapter
from onchain_adapters.providers import create_transfer_adapter
from onchain_adapters.rate_limiter import RateLimiter
from orchestrator.config import EngineConfig
from orchestrator.models import CycleResult, TokenOutcome
from orchestrator.pipeline import LatestClosePriceResolver, TokenPipeline
from prioritization.models import TokenMetadata
from prioritization.selector import PrioritySelector
from prioritization.universe import RefreshPolicy, TokenUniverseCache, UniverseFilter
from storage.database import transaction_scope
from storage.repositories.candles import CandleRepository
from storage.repositories.features import FeatureStoreRepository
from storage.repositories.tokens import TokenRegistryRepository


logger = logging.getLogger(__name__)


# ============================================================
# REGISTRY LOADER
# ============================================================

def registry_loader(session_factory: sessionmaker) -> Callable[[], List[TokenMetadata]]:
    """Loader for TokenUniverseCache reading the token registry."""

    def load() -> List[TokenMetadata]:
        with transaction_scope(session_factory) as session:
            records = TokenRegistryRepository(session).list_tokens()
            return [TokenMetadata.from_record(record) for record in records]

    return load


# ============================================================
# CYCLE HISTORY
# ============================================================

class CycleHistory:
    """
    Tracks execution cycle history.
    """

    def __init__(self, max_size: int = 100):
        self._max_size = max_size
        self._cycles: List[CycleResult] = []

    def add(self, result: CycleResult) -> None:
        self._cycles.append(result)
        if len(self._cycles) > self._max_size:
            self._cycles = self._cycles[-self._max_size:]

    def get_last(self) -> Optional[CycleResult]:
        return self._cycles[-1] if self._cycles else None

    def get_success_rate(self, last_n: int = 10) -> float:
        """Get success rate of last N cycles."""
        recent = self._cycles[-last_n:]
        if not recent:
            return 0.0
        return sum(1 for c in recent if c.success) / len(recent)

    def get_statistics(self) -> Dict[str, Any]:
        if not self._cycles:
            return {"total_cycles": 0, "success_rate": 0.0, "average_duration_seconds": 0.0}

        successes = sum(1 for c in self._cycles if c.success)
        durations = [c.duration_seconds for c in self._cycles if c.completed_at]
        return {
            "total_cycles": len(self._cycles),
            "successful_cycles": successes,
            "failed_cycles": len(self._cycles) - successes,
            "success_rate": successes / len(self._cycles),
            "average_duration_seconds": sum(durations) / len(durations) if durations else 0.0,
            "last_cycle_time": self._cycles[-1].started_at.isoformat(),
        }

    def __len__(self) -> int:
        return len(self._cycles)


# ============================================================
# CYCLE RUNNER
# ============================================================

class FeatureCycleRunner:
    """
    Periodic batch cycle over the token universe.

    Args:
        session_factory: sessionmaker for all repositories
        pipeline: per-token pipeline run by the workers
        universe: explicit token-universe cache
        config: engine configuration
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        pipeline: TokenPipeline,
        universe: TokenUniverseCache,
        config: Optional[EngineConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._session_factory = session_factory
        self._pipeline = pipeline
        self._universe = universe
        self.config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self.selector = PrioritySelector(self.config.priority)
        self.history = CycleHistory()
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def universe(self) -> TokenUniverseCache:
        return self._universe

    # ----------------------------------------------------------
    # One cycle
    # ----------------------------------------------------------

    async def run_cycle(self, now: Optional[datetime] = None) -> CycleResult:
        """
        Run one cycle.

        Per-token failures appear on the outcomes; a failure before the
        fan-out sets `error` and the cycle writes nothing.
        """
        now = ensure_utc(now or self._clock.now())
        result = CycleResult(cycle_id=f"cycle_{now:%Y%m%d_%H%M%S}", started_at=self._clock.now())
        logger.info(f"[cycle] {result.cycle_id} starting")

        try:
            tokens = self._universe.get()
            result.universe_size = len(tokens)
            candidates = self._build_candidates(tokens, now)
            selection = self.selector.select(candidates)
        except FeatureEngineError as e:
            result.error = f"{type(e).__name__}: {e}"
            result.completed_at = self._clock.now()
            logger.error(f"[cycle] {result.cycle_id} aborted before fan-out: {e}", exc_info=True)
            self.history.add(result)
            return result

        result.selection = selection
        by_id = {token.token_id: token for token in tokens}
        selected = [by_id[token_id] for token_id in selection.token_ids]

        try:
            outcomes = await self._fan_out(selected, now)
        except asyncio.CancelledError:
            result.cancelled = True
            result.completed_at = self._clock.now()
            logger.warning(f"[cycle] {result.cycle_id} cancelled")
            self.history.add(result)
            raise

        result.outcomes = [outcomes[token.token_id] for token in selected]
        result.completed_at = self._clock.now()
        self.history.add(result)
        logger.info(
            f"[cycle] {result.cycle_id} complete in {result.duration_seconds:.1f}s: {result.summary()}"
        )
        return result

    def _build_candidates(self, tokens, now: datetime):
        token_ids = [token.token_id for token in tokens]
        with transaction_scope(self._session_factory) as session:
            volumes = CandleRepository(session).volume_between(
                token_ids,
                self.config.behavioral.volume_timeframe,
                now - timedelta(hours=24),
                now,
            )
            last_enriched = FeatureStoreRepository(session).last_computed_at(
                self.config.primary_timeframe
            )
        return self.selector.build_candidates(tokens, volumes, last_enriched, now)

    # ----------------------------------------------------------
    # Worker pool
    # ----------------------------------------------------------

    async def _fan_out(self, tokens: List[TokenMetadata], now: datetime) -> Dict[str, TokenOutcome]:
        queue: asyncio.Queue = asyncio.Queue()
        for token in tokens:
            queue.put_nowait(token)

        outcomes: Dict[str, TokenOutcome] = {}
        pool_size = min(self.config.worker_pool_size, len(tokens))
        workers = [
            asyncio.create_task(self._worker(f"worker-{i}", queue, outcomes, now))
            for i in range(pool_size)
        ]
        try:
            await asyncio.gather(*workers)
        except asyncio.CancelledError:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise
        return outcomes

    async def _worker(
        self,
        name: str,
        queue: asyncio.Queue,
        outcomes: Dict[str, TokenOutcome],
        now: datetime,
    ) -> None:
        while True:
            try:
                token = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            outcomes[token.token_id] = await self._process(token, now, name)

    async def _process(self, token: TokenMetadata, now: datetime, worker: str) -> TokenOutcome:
        try:
            return await self._pipeline.run(token, now)
        except Exception as e:
            # Contained: one token never aborts the batch
            logger.error(f"[cycle] {worker} {token.token_id} failed: {e}", exc_info=True)
            return TokenOutcome(token_id=token.token_id, error=f"{type(e).__name__}: {e}")

    # ----------------------------------------------------------
    # Loop
    # ----------------------------------------------------------

    async def run_forever(self) -> None:
        """Run cycles every `cycle_interval_seconds` until stop() is called."""
        self._stop_event = asyncio.Event()
        interval = self.config.cycle_interval_seconds
        logger.info(f"[cycle] Running every {interval:.0f}s")

        while not self._stop_event.is_set():
            await self.run_cycle()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

        logger.info(f"[cycle] Stopped after {len(self.history)} cycles")

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()


# ============================================================
# FACTORY
# ============================================================

def build_transfer_adapter(
    config: EngineConfig,
    session_factory: sessionmaker,
    clock: Optional[ClockProtocol] = None,
) -> BaseTransferAdapter:
    """Configured adapter with its shared rate limiter and retry policy."""
    settings = config.transfers
    rate_limiter = RateLimiter(
        requests_per_second=settings.requests_per_second,
        burst=settings.burst,
        clock=clock,
    )
    kwargs: Dict[str, Any] = {
        "timeout": settings.timeout_seconds,
        "rate_limiter": rate_limiter,
        "retry_policy": settings.retry_policy(),
        "max_transactions": settings.max_transactions,
        "clock": clock,
    }
    if settings.provider.lower() == "helius":
        kwargs["price_resolver"] = LatestClosePriceResolver(
            session_factory, config.behavioral.volume_timeframe, clock
        )
    return create_transfer_adapter(settings.provider, api_key=settings.api_key, **kwargs)


def build_cycle_runner(
    config: EngineConfig,
    session_factory: sessionmaker,
    adapter: Optional[BaseTransferAdapter] = None,
    clock: Optional[ClockProtocol] = None,
) -> FeatureCycleRunner:
    """Wire the engine from configuration."""
    clock = clock or SystemClock()
    adapter = adapter or build_transfer_adapter(config, session_factory, clock)
    universe = TokenUniverseCache(
        registry_loader(session_factory),
        policy=RefreshPolicy(max_age_seconds=config.universe.refresh_seconds),
        universe_filter=UniverseFilter(config.universe),
        clock=clock,
    )
    pipeline = TokenPipeline(session_factory, adapter, config, clock=clock)
    return FeatureCycleRunner(session_factory, pipeline, universe, config, clock=clock)
