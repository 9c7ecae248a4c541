"""
Orchestrator - Per-Token Pipeline.

============================================================
RESPONSIBILITY
============================================================
Runs one selected token through the engine:

    fetch transfers  ─┐
                      ├─ join ─> behavioral ─> fuse ─> persist
    load candles ─> indicators ─┘

- Transfer fetch goes through the adapter's retry policy,
  rate limiter and per-call timeout
- Candle loading and indicator computation run while the
  transfer fetch is in flight
- One snapshot per configured timeframe, each written in its
  own transaction

============================================================
FAILURE CONTAINMENT
============================================================
- UpstreamError from the feed -> fallback estimation
- Any other failure in the transfer branch and
  InternalComputationError -> error_fallback snapshot
- DuplicateKey on write -> no-op
- StorageError on write -> reported on the outcome

A selected token always gets a snapshot attempt.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from core.clock import ClockProtocol, SystemClock, ensure_utc
from core.constants import Candle, Timeframe
from core.exceptions import (
    DuplicateKey,
    InternalComputationError,
    StorageError,
    UpstreamError,
)
from onchain_adapters.base import BaseTransferAdapter
from onchain_adapters.models import TransferBatch
from orchestrator.config import EngineConfig
from orchestrator.models import TokenOutcome, WriteStatus
from prioritization.models import TokenMetadata
from scoring_engine.fusion import FeatureFusion
from scoring_engine.models import TokenFeatureSnapshot
from smart_money.calculator import BehavioralMetricsCalculator
from smart_money.market import build_market_context
from smart_money.models import MarketContext
from storage.database import transaction_scope
from storage.repositories.candles import CandleRepository
from storage.repositories.features import FeatureStoreRepository
from technical_analysis.calculator import IndicatorCalculator
from technical_analysis.models import TechnicalIndicators


logger = logging.getLogger(__name__)


# ============================================================
# PRICE RESOLVER
# ============================================================

class LatestClosePriceResolver:
    """USD price of a token: close of its latest stored bar."""

    def __init__(
        self,
        session_factory: sessionmaker,
        timeframe: Timeframe = Timeframe.H1,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._session_factory = session_factory
        self._timeframe = Timeframe.parse(timeframe)
        self._clock = clock or SystemClock()

    def __call__(self, token_id: str) -> Optional[float]:
        with transaction_scope(self._session_factory) as session:
            recent = CandleRepository(session).get_recent(
                token_id, self._timeframe, self._clock.now(), limit=1
            )
        if not recent or recent[-1].close <= 0:
            return None
        return recent[-1].close


# ============================================================
# CANDLE INPUTS
# ============================================================

@dataclass
class CandleInputs:
    """Everything the calculators read from the candle repository."""
    by_timeframe: Dict[Timeframe, List[Candle]]
    volume_bars: List[Candle]
    earliest_candle_at: Optional[datetime]


# ============================================================
# TOKEN PIPELINE
# ============================================================

class TokenPipeline:
    """
    Computes and persists snapshots for one token.

    Args:
        session_factory: sessionmaker for candles and the feature store
        adapter: transfer feed adapter (shared rate limiter inside)
        config: engine configuration
        retry_sleep: sleep used between retries (injected for tests)
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        adapter: BaseTransferAdapter,
        config: Optional[EngineConfig] = None,
        clock: Optional[ClockProtocol] = None,
        retry_sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._adapter = adapter
        self.config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._retry_sleep = retry_sleep

        self.indicators = IndicatorCalculator(self.config.indicators)
        self.behavioral = BehavioralMetricsCalculator(self.config.behavioral)
        self.fusion = FeatureFusion(self.config.fusion)

    async def run(self, token: TokenMetadata, now: datetime) -> TokenOutcome:
        """
        Compute and persist one snapshot per configured timeframe.

        Raises:
            StorageError: candle history could not be read
        """
        now = ensure_utc(now)
        started = self._clock.monotonic()
        token_id = token.token_id
        outcome = TokenOutcome(token_id=token_id)

        (transfers, feed_error, transfer_error), (technical, market, error) = await asyncio.gather(
            self._fetch_transfers(token_id, now),
            self._compute_technical(token, now),
        )
        error = error or transfer_error
        if feed_error is not None:
            outcome.feed_error = f"{type(feed_error).__name__}: {feed_error}"

        snapshots: List[TokenFeatureSnapshot] = []
        if error is None:
            try:
                behavioral = self.behavioral.compute(token_id, transfers, market, now, feed_error)
                for timeframe in self.config.snapshot_timeframes:
                    snapshots.append(self.fusion.fuse(
                        token_id, timeframe, timeframe.floor(now), technical[timeframe], behavioral,
                    ))
            except InternalComputationError as e:
                error = e

        if error is not None:
            logger.error(f"[pipeline] {token_id}: {error}; writing error_fallback snapshots", exc_info=error)
            outcome.error = str(error)
            snapshots = [
                self.fusion.error_snapshot(token_id, tf, tf.floor(now), technical.get(tf))
                for tf in self.config.snapshot_timeframes
            ]

        for snapshot in snapshots:
            outcome.writes[snapshot.timeframe] = self._persist(snapshot)

        primary = snapshots[0]
        outcome.analysis_source = primary.analysis_source
        outcome.data_confidence = primary.data_confidence
        outcome.duration_seconds = self._clock.monotonic() - started

        logger.info(
            f"[pipeline] {token_id}: {outcome.status.value} "
            f"source={primary.analysis_source.value} confidence={primary.data_confidence:.2f}"
        )
        return outcome

    # ─────────────────────────────────────────────────────────────
    # Transfer branch
    # ─────────────────────────────────────────────────────────────

    async def _fetch_transfers(
        self,
        token_id: str,
        now: datetime,
    ) -> Tuple[Optional[TransferBatch], Optional[UpstreamError], Optional[InternalComputationError]]:
        since = now - timedelta(hours=self.config.behavioral.transfer_history_hours)
        try:
            batch = await self._adapter.retry_policy.run(
                lambda: self._adapter.get_transfers(token_id, since),
                description=f"{self._adapter.name} transfers {token_id}",
                sleep=self._retry_sleep,
            )
        except UpstreamError as e:
            logger.info(f"[pipeline] {token_id}: transfer feed failed, using fallback ({e})")
            return None, e, None
        except Exception as e:
            return None, None, InternalComputationError(
                f"Transfer branch failed: {type(e).__name__}: {e}",
                token_id=token_id,
                stage="transfers",
                cause=e,
            )
        return batch, None, None

    # ─────────────────────────────────────────────────────────────
    # Candle branch
    # ─────────────────────────────────────────────────────────────

    async def _compute_technical(
        self,
        token: TokenMetadata,
        now: datetime,
    ) -> Tuple[Dict[Timeframe, TechnicalIndicators], Optional[MarketContext], Optional[InternalComputationError]]:
        inputs = self.load_candles(token.token_id, now)
        technical: Dict[Timeframe, TechnicalIndicators] = {}
        try:
            for timeframe in self.config.snapshot_timeframes:
                technical[timeframe] = self.indicators.compute(
                    inputs.by_timeframe, timeframe, token_id=token.token_id
                )
            market = build_market_context(
                inputs.volume_bars,
                now,
                self.config.behavioral,
                earliest_candle_at=inputs.earliest_candle_at,
                market_cap_usd=token.market_cap_usd,
            )
        except InternalComputationError as e:
            return technical, None, e
        except ArithmeticError as e:
            return technical, None, InternalComputationError(
                f"Market context failed: {e}",
                token_id=token.token_id,
                stage="market_context",
                cause=e,
            )
        return technical, market, None

    def load_candles(self, token_id: str, now: datetime) -> CandleInputs:
        """Read every candle series the calculators need for one token."""
        requirements: Dict[Timeframe, int] = {}
        for timeframe in self.config.snapshot_timeframes:
            for tf, bars in self.indicators.history_requirements(timeframe).items():
                requirements[tf] = max(requirements.get(tf, 0), bars)

        behavioral = self.config.behavioral
        volume_tf = behavioral.volume_timeframe
        volume_end = volume_tf.floor(now)
        volume_hours = max(behavioral.volume_history_hours, behavioral.activity_window_hours)
        volume_start = volume_end - timedelta(hours=volume_hours)

        with transaction_scope(self._session_factory) as session:
            repo = CandleRepository(session)
            by_timeframe = {
                tf: repo.get_recent(token_id, tf, now, limit=bars)
                for tf, bars in requirements.items()
            }
            volume_bars = repo.get_candles(token_id, volume_tf, volume_start, volume_end)
            earliest = repo.earliest_timestamp(token_id)

        return CandleInputs(
            by_timeframe=by_timeframe,
            volume_bars=volume_bars,
            earliest_candle_at=earliest,
        )

    # ─────────────────────────────────────────────────────────────
    # Persist
    # ─────────────────────────────────────────────────────────────

    def _persist(self, snapshot: TokenFeatureSnapshot) -> WriteStatus:
        try:
            with transaction_scope(self._session_factory) as session:
                FeatureStoreRepository(session).append(snapshot)
        except DuplicateKey:
            logger.debug(
                f"[pipeline] {snapshot.token_id} {snapshot.timeframe.value} "
                f"{snapshot.timestamp.isoformat()} already stored"
            )
            return WriteStatus.DUPLICATE
        except StorageError as e:
            logger.error(f"[pipeline] {snapshot.token_id}: snapshot write failed: {e}")
            return WriteStatus.FAILED
        return WriteStatus.PERSISTED
