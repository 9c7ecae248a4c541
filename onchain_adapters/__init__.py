"""
On-chain Adapters Package - Transfer Feed Adapter layer.

Provides normalized transfer history per token for the behavioral
metrics calculator.

Features:
- Strict boundary: typed TransferEvents or UpstreamMalformed
- Shared token-bucket rate limiter across workers
- Per-call timeout mapped to UpstreamUnavailable
- Bounded retry policy configured per adapter

Quick Start:
    from onchain_adapters import (
        RateLimiter,
        RetryPolicy,
        create_transfer_adapter,
    )

    async def load_history(token_id, since):
        adapter = create_transfer_adapter(
            "helius",
            rate_limiter=RateLimiter(requests_per_second=3.0),
            retry_policy=RetryPolicy(max_attempts=2),
        )
        async with adapter:
            batch = await adapter.retry_policy.run(
                lambda: adapter.get_transfers(token_id, since)
            )
        for event in batch:
            print(event.signature, event.classification.value)

Adding New Adapters:
    class NewAdapter(BaseTransferAdapter):
        @property
        def name(self) -> str:
            return "new_adapter"

        async def fetch_page(self, token_id, cursor): ...
        def normalize_page(self, raw_page, token_id): ...
        def next_cursor(self, raw_page): ...
        def metadata(self): ...
"""

from onchain_adapters.base import BaseTransferAdapter
from onchain_adapters.exceptions import (
    NON_RETRYABLE_ERRORS,
    NotFoundError,
    RateLimitedError,
)
from onchain_adapters.models import (
    AdapterHealth,
    AdapterIncident,
    AdapterMetadata,
    AdapterStatus,
    TransferBatch,
    TransferClassification,
    TransferEvent,
)
from onchain_adapters.providers import (
    HeliusTransferAdapter,
    InMemoryTransferAdapter,
    create_transfer_adapter,
)
from onchain_adapters.rate_limiter import RateLimiter
from onchain_adapters.retry import RetryPolicy


__version__ = "1.0.0"

__all__ = [
    # Base
    "BaseTransferAdapter",

    # Models
    "TransferEvent",
    "TransferBatch",
    "TransferClassification",
    "AdapterHealth",
    "AdapterMetadata",
    "AdapterIncident",
    "AdapterStatus",

    # Exceptions
    "RateLimitedError",
    "NotFoundError",
    "NON_RETRYABLE_ERRORS",

    # Infrastructure
    "RateLimiter",
    "RetryPolicy",

    # Providers
    "HeliusTransferAdapter",
    "InMemoryTransferAdapter",
    "create_transfer_adapter",
]
