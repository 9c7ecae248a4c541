"""
JSON-over-HTTP client shared by provider adapters.

Maps transport outcomes onto the engine taxonomy:
- 429                      -> RateLimitedError
- 404                      -> NotFoundError
- other >= 400, network,
  timeout                  -> UpstreamUnavailable
- body is not JSON         -> UpstreamMalformed
"""

import asyncio
import logging
import time
from typing import Any, Optional

import aiohttp

from core.exceptions import UpstreamMalformed, UpstreamUnavailable
from onchain_adapters.exceptions import NotFoundError, RateLimitedError


logger = logging.getLogger(__name__)


class JsonHttpClient:
    """
    Thin aiohttp wrapper owned by one adapter.

    A caller-provided session is reused and never closed here.
    """

    USER_AGENT = "TokenFeatureEngine/1.0"

    def __init__(
        self,
        source_name: str,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self._source_name = source_name
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._headers = headers or {}
        self.last_latency_ms: Optional[float] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={
                    "Accept": "application/json",
                    "User-Agent": self.USER_AGENT,
                    **self._headers,
                },
            )
            self._owns_session = True
        return self._session

    async def request_json(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
    ) -> Any:
        """Make HTTP request and decode the JSON body."""
        session = await self._get_session()

        start_time = time.monotonic()
        try:
            async with session.request(
                method,
                url,
                params=params,
                headers=headers,
                json=json_body,
            ) as response:
                self.last_latency_ms = (time.monotonic() - start_time) * 1000

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitedError(
                        "Rate limit exceeded",
                        source=self._source_name,
                        retry_after_seconds=_parse_retry_after(retry_after),
                        url=url,
                    )

                if response.status == 404:
                    raise NotFoundError("Resource not found", source=self._source_name, url=url)

                if response.status >= 400:
                    body = await response.text()
                    raise UpstreamUnavailable(
                        f"HTTP {response.status}: {body[:200]}",
                        source=self._source_name,
                        status_code=response.status,
                        url=url,
                    )

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise UpstreamMalformed(
                        "Response body is not valid JSON",
                        source=self._source_name,
                        status_code=response.status,
                        url=url,
                        cause=e,
                    ) from e

        except aiohttp.ClientError as e:
            raise UpstreamUnavailable(
                f"Connection error: {e}",
                source=self._source_name,
                url=url,
                cause=e,
            ) from e
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(
                f"Timeout after {self._timeout:.1f}s",
                source=self._source_name,
                url=url,
                cause=e,
            ) from e

    async def close(self) -> None:
        """Close the session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
