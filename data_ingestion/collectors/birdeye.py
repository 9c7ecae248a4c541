"""
Data Ingestion - Birdeye Candle Collector.

============================================================
RESPONSIBILITY
============================================================
Collects OHLCV bars for Solana tokens from the Birdeye API.

- GET /defi/ohlcv?address=&type=&time_from=&time_to=
- Items under data.items with unixTime, o, h, l, c, v
- USD volume taken from the item when present, else close * v

============================================================
DESIGN PRINCIPLES
============================================================
- No business logic - collection only
- Strict mapping: unknown shapes raise UpstreamMalformed
- Rows without a positive close are dropped, not repaired

============================================================
DATA FLOW
============================================================
1. Fetch one range from Birdeye
2. Parse items to Candles (bucket-aligned)
3. Return to the ingestion service for storage

============================================================
"""

import math
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from core.constants import Candle, Timeframe
from core.exceptions import ConfigurationError, UpstreamMalformed, UpstreamUnavailable
from data_ingestion.collectors.base import BaseCandleCollector
from onchain_adapters.http import JsonHttpClient


# Birdeye interval names
BIRDEYE_INTERVALS = {
    Timeframe.M1: "1m",
    Timeframe.M5: "5m",
    Timeframe.M15: "15m",
    Timeframe.H1: "1H",
    Timeframe.H4: "4H",
    Timeframe.D1: "1D",
}

_USD_VOLUME_KEYS = ("quoteVolumeUsd", "usdVolume", "value")


class BirdeyeCandleCollector(BaseCandleCollector):
    """
    Collector for Birdeye OHLCV data.

    ============================================================
    WIRING
    ============================================================
    Source: Birdeye public API (REST)
    Consumer: CandleIngestionService
    Chain: solana (x-chain header)

    ============================================================
    """

    BASE_URL = "https://public-api.birdeye.so"
    API_KEY_ENV_VAR = "BIRDEYE_API_KEY"

    def __init__(
        self,
        api_key: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: Optional[str] = None,
        chain: str = "solana",
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._api_key = api_key or os.getenv(self.API_KEY_ENV_VAR)
        if not self._api_key:
            raise ConfigurationError(
                "Birdeye API key is required",
                config_key=self.API_KEY_ENV_VAR,
            )
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._http = JsonHttpClient(
            self.name,
            timeout=self._timeout,
            session=session,
            headers={"X-API-KEY": self._api_key, "x-chain": chain},
        )

    @property
    def name(self) -> str:
        return "birdeye"

    # =========================================================
    # FETCH - External API Call
    # =========================================================

    async def fetch_raw(
        self,
        token_id: str,
        timeframe: Timeframe,
        start: datetime,
        end: datetime,
    ) -> Any:
        params = {
            "address": token_id,
            "type": BIRDEYE_INTERVALS[timeframe],
            "time_from": int(start.timestamp()),
            "time_to": int(end.timestamp()),
        }
        return await self._http.request_json("GET", f"{self._base_url}/defi/ohlcv", params=params)

    # =========================================================
    # PARSE - Normalize to Candle
    # =========================================================

    def parse_candles(self, raw: Any, token_id: str, timeframe: Timeframe) -> List[Candle]:
        if not isinstance(raw, dict):
            raise self._malformed(f"expected object, got {type(raw).__name__}")

        if raw.get("success") is False:
            raise UpstreamUnavailable(
                f"Birdeye refused request: {raw.get('message', 'unknown error')}",
                source=self.name,
            )

        data = raw.get("data")
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise self._malformed("missing data.items")

        candles = []
        dropped = 0
        for item in data["items"]:
            candle = self._parse_item(item, token_id, timeframe)
            if candle is None:
                dropped += 1
            else:
                candles.append(candle)

        if dropped:
            self._logger.debug(f"[{self.name}] {token_id}: dropped {dropped} bars without a price")
        return candles

    def _parse_item(self, item: Any, token_id: str, timeframe: Timeframe) -> Optional[Candle]:
        if not isinstance(item, dict):
            raise self._malformed(f"item is {type(item).__name__}, expected object")

        unix_time = _number(item, "unixTime")
        if unix_time is None:
            raise self._malformed("item without numeric unixTime")

        prices = {}
        for key in ("o", "h", "l", "c"):
            value = _number(item, key)
            if value is None:
                raise self._malformed(f"item field {key!r} missing or not numeric")
            prices[key] = value

        if prices["c"] <= 0:
            return None

        base_volume = _number(item, "v") or 0.0
        volume_usd = None
        for key in _USD_VOLUME_KEYS:
            volume_usd = _number(item, key)
            if volume_usd is not None:
                break
        if volume_usd is None:
            volume_usd = prices["c"] * base_volume
        if volume_usd < 0:
            volume_usd = 0.0

        try:
            timestamp = datetime.fromtimestamp(int(unix_time), tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise self._malformed(f"unixTime {unix_time!r} out of range") from e

        return Candle(
            token_id=token_id,
            timeframe=timeframe,
            timestamp=timeframe.floor(timestamp),
            open=prices["o"],
            high=prices["h"],
            low=prices["l"],
            close=prices["c"],
            volume=volume_usd,
        )

    def _malformed(self, reason: str) -> UpstreamMalformed:
        return UpstreamMalformed(f"Unexpected Birdeye OHLCV response: {reason}", source=self.name)

    async def close(self) -> None:
        await self._http.close()


def _number(item: Dict[str, Any], key: str) -> Optional[float]:
    value = item.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)
