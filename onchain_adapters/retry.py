"""
Bounded retry policy for upstream calls.

A policy is configured per adapter and invoked by the worker
pipeline around the adapter call. Business logic never loops or
sleeps on its own.

Retried: generic UpstreamUnavailable (network, 5xx, timeout).
Not retried: rate limits, not-found, malformed responses.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from core.exceptions import ConfigurationError, UpstreamUnavailable
from onchain_adapters.exceptions import NON_RETRYABLE_ERRORS


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Max attempts plus an exponential backoff schedule.

    Delay before attempt n (n >= 2) is
    min(backoff_base_seconds * backoff_multiplier ** (n - 2), max_backoff_seconds).
    """
    max_attempts: int = 2
    backoff_base_seconds: float = 1.0
    backoff_multiplier: float = 1.5
    max_backoff_seconds: float = 10.0
    retry_on: Tuple[Type[BaseException], ...] = field(default=(UpstreamUnavailable,))

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be >= 1", config_key="max_attempts",
                                     actual_value=self.max_attempts)
        if self.backoff_base_seconds < 0 or self.max_backoff_seconds < 0:
            raise ConfigurationError("backoff delays must be >= 0", config_key="backoff_base_seconds")
        if self.backoff_multiplier < 1.0:
            raise ConfigurationError("backoff_multiplier must be >= 1", config_key="backoff_multiplier",
                                     actual_value=self.backoff_multiplier)

    def delays(self) -> list[float]:
        """Backoff before each retry (length max_attempts - 1)."""
        return [
            min(self.backoff_base_seconds * self.backoff_multiplier ** i, self.max_backoff_seconds)
            for i in range(self.max_attempts - 1)
        ]

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        if isinstance(error, NON_RETRYABLE_ERRORS):
            return False
        return isinstance(error, self.retry_on)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "upstream call",
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> T:
        """
        Execute `operation`, retrying per the policy.

        The last error is re-raised once attempts are exhausted or the
        error is not retryable.
        """
        sleep = sleep or asyncio.sleep
        delays = self.delays()
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise
                wait_time = delays[attempt - 1]
                logger.warning(
                    f"[retry] {description}: attempt {attempt}/{self.max_attempts} failed "
                    f"({e}); retrying in {wait_time:.1f}s"
                )
                await sleep(wait_time)

    def to_dict(self) -> dict:
        return {
            "max_attempts": self.max_attempts,
            "backoff_base_seconds": self.backoff_base_seconds,
            "backoff_multiplier": self.backoff_multiplier,
            "max_backoff_seconds": self.max_backoff_seconds,
        }
