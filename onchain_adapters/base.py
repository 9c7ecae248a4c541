"""
Base Transfer Feed Adapter - Abstract interface for on-chain transfer providers.

All adapters MUST:
- Map every response either to typed TransferEvents or to UpstreamMalformed
- Report network, timeout and rate-limit failures as UpstreamUnavailable
- Acquire a permit from the shared rate limiter before each upstream call
- Apply the per-call timeout to each upstream call
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Optional, TypeVar

from core.clock import ClockProtocol, SystemClock, ensure_utc
from core.exceptions import UpstreamError, UpstreamMalformed, UpstreamUnavailable
from onchain_adapters.exceptions import RateLimitedError
from onchain_adapters.models import (
    AdapterHealth,
    AdapterIncident,
    AdapterMetadata,
    AdapterStatus,
    TransferBatch,
    TransferEvent,
)
from onchain_adapters.rate_limiter import RateLimiter
from onchain_adapters.retry import RetryPolicy


logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseTransferAdapter(ABC):
    """
    Abstract base class for transfer feed adapters.

    Each adapter must:
    1. Implement fetch_page() - Get one raw page from the provider
    2. Implement normalize_page() - Convert a page to TransferEvents
    3. Implement next_cursor() - Cursor for the next (older) page
    4. Implement metadata() - Return adapter metadata

    get_transfers() drives pagination, newest page first, until the
    requested `since`, the end of history, or the transaction cap.
    """

    # Configuration defaults
    DEFAULT_TIMEOUT = 10.0
    DEFAULT_MAX_TRANSACTIONS = 1000
    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5
    MAX_INCIDENTS = 100

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_transactions: int = DEFAULT_MAX_TRANSACTIONS,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._timeout = timeout
        self._rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self._max_transactions = max_transactions
        self._clock = clock or SystemClock()

        # Health tracking
        self._health = AdapterHealth(
            status=AdapterStatus.UNKNOWN,
            last_check=self._clock.now(),
        )
        self._last_successful_request: Optional[datetime] = None

        # Incident log
        self._incidents: list[AdapterIncident] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this adapter."""
        pass

    @abstractmethod
    async def fetch_page(self, token_id: str, cursor: Optional[str]) -> Any:
        """
        Fetch one raw page of transactions, newest first.

        Raises:
            UpstreamUnavailable: network/rate-limit/not-found failures
        """
        pass

    @abstractmethod
    def normalize_page(self, raw_page: Any, token_id: str) -> list[TransferEvent]:
        """
        Map a raw page to TransferEvents for `token_id`.

        Raises:
            UpstreamMalformed: page shape not understood
        """
        pass

    @abstractmethod
    def next_cursor(self, raw_page: Any) -> Optional[str]:
        """Cursor for the next older page, or None at end of history."""
        pass

    @abstractmethod
    def metadata(self) -> AdapterMetadata:
        pass

    async def health_check(self) -> AdapterHealth:
        """Current health; providers may override with a live probe."""
        self._health.last_check = self._clock.now()
        return self._health

    # ─────────────────────────────────────────────────────────────
    # Main entry point
    # ─────────────────────────────────────────────────────────────

    async def get_transfers(
        self,
        token_id: str,
        since: Optional[datetime] = None,
    ) -> TransferBatch:
        """
        Ordered transfer history for `token_id` from `since` onwards.

        Raises:
            UpstreamUnavailable: rate limited, network error or timeout
            UpstreamMalformed: response shape not understood
        """
        since = ensure_utc(since) if since else None
        collected: list[TransferEvent] = []
        cursor: Optional[str] = None
        complete = True
        pages = 0

        try:
            while True:
                raw_page = await self._call(self.fetch_page(token_id, cursor))
                page = self.normalize_page(raw_page, token_id)
                pages += 1
                collected.extend(page)

                if since and page and min(e.timestamp for e in page) < since:
                    # Older history exists but lies outside the requested range
                    complete = False
                    break

                cursor = self.next_cursor(raw_page)
                if cursor is None:
                    break

                if len(collected) >= self._max_transactions:
                    complete = False
                    logger.info(
                        f"[{self.name}] Transaction cap {self._max_transactions} reached "
                        f"for {token_id}; history truncated"
                    )
                    break

        except UpstreamError as e:
            self._on_error(e, token_id)
            raise

        self._on_success()
        batch = TransferBatch.from_events(
            token_id,
            collected,
            complete=complete,
            since=since,
            source_name=self.name,
        )
        logger.debug(
            f"[{self.name}] {token_id}: {len(batch)} transfers from {pages} page(s), "
            f"complete={batch.complete}"
        )
        return batch

    async def _call(self, coro: Awaitable[T]) -> T:
        """One upstream call: rate-limit permit, then timeout."""
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()

        self._health.requests_made += 1
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(
                f"Timeout after {self._timeout:.1f}s",
                source=self.name,
                cause=e,
            ) from e

    # ─────────────────────────────────────────────────────────────
    # Health & Error Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_success(self) -> None:
        self._last_successful_request = self._clock.now()
        self._health.consecutive_failures = 0

        if self._health.status != AdapterStatus.HEALTHY:
            if self._health.status != AdapterStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = AdapterStatus.HEALTHY

    def _on_error(self, error: UpstreamError, token_id: Optional[str] = None) -> None:
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = self._clock.now()

        if isinstance(error, RateLimitedError):
            self._health.status = AdapterStatus.RATE_LIMITED
            if self._rate_limiter is not None:
                self._rate_limiter.record_rate_limited(error.retry_after_seconds)
        elif self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != AdapterStatus.UNAVAILABLE:
                self._health.status = AdapterStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != AdapterStatus.DEGRADED:
                self._health.status = AdapterStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED")

        self._log_incident(error, token_id)

    def _log_incident(self, error: UpstreamError, token_id: Optional[str]) -> None:
        incident = AdapterIncident(
            adapter_name=self.name,
            incident_type=error.__class__.__name__,
            timestamp=self._clock.now(),
            error_message=str(error),
            token_id=token_id,
            context=dict(error.context),
        )
        self._incidents.append(incident)
        if len(self._incidents) > self.MAX_INCIDENTS:
            self._incidents = self._incidents[-self.MAX_INCIDENTS:]

        if isinstance(error, UpstreamMalformed):
            # Possible upstream contract change
            logger.error(f"[{self.name}] Malformed response for {token_id}: {error}")
        else:
            logger.warning(f"[{self.name}] Incident for {token_id}: {error}")

    def get_health(self) -> AdapterHealth:
        return self._health

    def get_incidents(self, limit: int = 10) -> list[AdapterIncident]:
        return self._incidents[-limit:]

    def is_usable(self) -> bool:
        return self._health.is_usable()

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Release provider resources."""
        pass

    async def __aenter__(self) -> "BaseTransferAdapter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"
