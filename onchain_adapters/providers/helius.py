"""
Helius Transfer Feed Adapter - Solana enhanced transactions API.

Reads parsed transactions touching a token mint and maps their token
transfers to TransferEvents.

API:
- GET /v0/addresses/{mint}/transactions?api-key=...&limit=100[&before=<sig>]
- Newest first; paginate with `before=<last signature>`

Classification (relative to the fee payer, who signs the trade):
- SWAP, mint received by fee payer -> buy
- SWAP, mint sent by fee payer     -> sell
- TRANSFER                         -> transfer
- anything else                    -> unknown
"""

import logging
import math
import os
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import aiohttp

from core.exceptions import ConfigurationError, UpstreamMalformed
from onchain_adapters.base import BaseTransferAdapter
from onchain_adapters.http import JsonHttpClient
from onchain_adapters.models import (
    AdapterMetadata,
    TransferClassification,
    TransferEvent,
)


logger = logging.getLogger(__name__)

PriceResolver = Callable[[str], Optional[float]]


class HeliusTransferAdapter(BaseTransferAdapter):
    """Helius enhanced-transactions adapter."""

    BASE_URL = "https://api.helius.xyz"
    PAGE_SIZE = 100
    API_KEY_ENV_VAR = "HELIUS_API_KEY"

    def __init__(
        self,
        api_key: Optional[str] = None,
        price_resolver: Optional[PriceResolver] = None,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._api_key = api_key or os.getenv(self.API_KEY_ENV_VAR)
        if not self._api_key:
            raise ConfigurationError(
                "Helius API key is required",
                config_key=self.API_KEY_ENV_VAR,
            )
        self._price_resolver = price_resolver
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._http = JsonHttpClient(self.name, timeout=self._timeout, session=session)

    @property
    def name(self) -> str:
        return "helius"

    def metadata(self) -> AdapterMetadata:
        return AdapterMetadata(
            name=self.name,
            display_name="Helius Enhanced Transactions",
            version="v0",
            requires_api_key=True,
            base_url=self._base_url,
            documentation_url="https://docs.helius.dev/",
            max_page_size=self.PAGE_SIZE,
            tags=["solana", "transfers"],
        )

    # ─────────────────────────────────────────────────────────────
    # Fetch
    # ─────────────────────────────────────────────────────────────

    async def fetch_page(self, token_id: str, cursor: Optional[str]) -> Any:
        params: dict[str, Any] = {"api-key": self._api_key, "limit": self.PAGE_SIZE}
        if cursor:
            params["before"] = cursor
        url = f"{self._base_url}/v0/addresses/{token_id}/transactions"
        return await self._http.request_json("GET", url, params=params)

    def next_cursor(self, raw_page: Any) -> Optional[str]:
        if not isinstance(raw_page, list) or len(raw_page) < self.PAGE_SIZE:
            return None
        return raw_page[-1]["signature"]

    # ─────────────────────────────────────────────────────────────
    # Normalize
    # ─────────────────────────────────────────────────────────────

    def normalize_page(self, raw_page: Any, token_id: str) -> list[TransferEvent]:
        if not isinstance(raw_page, list):
            raise UpstreamMalformed(
                f"Expected a list of transactions, got {type(raw_page).__name__}",
                source=self.name,
            )

        price = self._price_resolver(token_id) if self._price_resolver else None
        events = []
        for tx in raw_page:
            event = self._normalize_transaction(tx, token_id, price)
            if event is not None:
                events.append(event)
        return events

    def _normalize_transaction(
        self,
        tx: Any,
        token_id: str,
        price: Optional[float],
    ) -> Optional[TransferEvent]:
        if not isinstance(tx, dict):
            raise UpstreamMalformed("Transaction entry is not an object", source=self.name)

        signature = tx.get("signature")
        timestamp = tx.get("timestamp")
        if not isinstance(signature, str) or not signature:
            raise UpstreamMalformed("Transaction without signature", source=self.name)
        if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
            raise UpstreamMalformed(
                "Transaction without numeric timestamp",
                source=self.name,
                context={"signature": signature},
            )
        try:
            if not math.isfinite(timestamp):
                raise ValueError(timestamp)
            occurred_at = datetime.fromtimestamp(timestamp, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise UpstreamMalformed(
                "Transaction timestamp out of range",
                source=self.name,
                context={"signature": signature, "timestamp": timestamp},
                cause=e,
            ) from e

        token_transfers = tx.get("tokenTransfers") or []
        if not isinstance(token_transfers, list):
            raise UpstreamMalformed(
                "tokenTransfers is not a list",
                source=self.name,
                context={"signature": signature},
            )

        relevant = []
        for transfer in token_transfers:
            if not isinstance(transfer, dict):
                raise UpstreamMalformed("Token transfer is not an object", source=self.name)
            if transfer.get("mint") != token_id:
                continue
            amount = transfer.get("tokenAmount")
            if not isinstance(amount, (int, float)) or isinstance(amount, bool):
                raise UpstreamMalformed(
                    "Token transfer without numeric tokenAmount",
                    source=self.name,
                    context={"signature": signature},
                )
            relevant.append(transfer)

        if not relevant:
            return None

        # One event per signature: the largest movement of this mint
        transfer = max(relevant, key=lambda t: abs(t["tokenAmount"]))
        amount_token = abs(float(transfer["tokenAmount"]))
        source_wallet = transfer.get("fromUserAccount") or None
        destination_wallet = transfer.get("toUserAccount") or None

        return TransferEvent(
            signature=signature,
            token_id=token_id,
            timestamp=occurred_at,
            amount_token=amount_token,
            amount_usd_estimate=amount_token * price if price else None,
            source_wallet=source_wallet,
            destination_wallet=destination_wallet,
            classification=self._classify(tx, source_wallet, destination_wallet),
        )

    @staticmethod
    def _classify(
        tx: dict,
        source_wallet: Optional[str],
        destination_wallet: Optional[str],
    ) -> TransferClassification:
        tx_type = str(tx.get("type") or "").upper()
        fee_payer = tx.get("feePayer")

        if tx_type == "SWAP" and fee_payer:
            if destination_wallet == fee_payer:
                return TransferClassification.BUY
            if source_wallet == fee_payer:
                return TransferClassification.SELL
            return TransferClassification.UNKNOWN
        if tx_type == "TRANSFER":
            return TransferClassification.TRANSFER
        return TransferClassification.UNKNOWN

    async def close(self) -> None:
        await self._http.close()
