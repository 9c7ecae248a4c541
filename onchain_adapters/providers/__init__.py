"""
Providers package - Transfer feed adapter implementations.
"""

from typing import Optional

from core.exceptions import ConfigurationError
from onchain_adapters.base import BaseTransferAdapter
from onchain_adapters.providers.helius import HeliusTransferAdapter
from onchain_adapters.providers.memory import InMemoryTransferAdapter


PROVIDERS = {
    "helius": HeliusTransferAdapter,
    "memory": InMemoryTransferAdapter,
}


def create_transfer_adapter(provider: str, api_key: Optional[str] = None, **kwargs) -> BaseTransferAdapter:
    """
    Build the configured transfer feed adapter.

    Raises:
        ConfigurationError: unknown provider name
    """
    adapter_class = PROVIDERS.get(provider.lower())
    if adapter_class is None:
        raise ConfigurationError(
            f"Unsupported transfer provider: {provider}",
            config_key="transfer_provider",
            actual_value=provider,
        )
    if adapter_class is HeliusTransferAdapter:
        kwargs["api_key"] = api_key
    return adapter_class(**kwargs)


__all__ = [
    "HeliusTransferAdapter",
    "InMemoryTransferAdapter",
    "PROVIDERS",
    "create_transfer_adapter",
]
