"""
In-memory Transfer Feed Adapter.

Serves pre-loaded TransferEvents through the full adapter contract
(pagination, rate limiting, timeouts, health tracking). Used for
local dry runs and tests. Failures can be scripted per token.
"""

import asyncio
from collections import defaultdict, deque
from typing import Any, Iterable, Optional

from onchain_adapters.base import BaseTransferAdapter
from onchain_adapters.models import AdapterMetadata, TransferEvent


class InMemoryTransferAdapter(BaseTransferAdapter):
    """Adapter backed by a dict of token_id -> events."""

    def __init__(
        self,
        events: Optional[Iterable[TransferEvent]] = None,
        page_size: int = 100,
        latency_seconds: float = 0.0,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._page_size = page_size
        self._latency = latency_seconds
        self._events: dict[str, list[TransferEvent]] = defaultdict(list)
        self._failures: dict[str, deque] = defaultdict(deque)
        self.calls: list[tuple[str, Optional[str]]] = []
        self.add_events(events or [])

    @property
    def name(self) -> str:
        return "memory"

    def metadata(self) -> AdapterMetadata:
        return AdapterMetadata(
            name=self.name,
            display_name="In-memory transfer feed",
            version="1",
            max_page_size=self._page_size,
            tags=["local"],
        )

    def add_events(self, events: Iterable[TransferEvent]) -> None:
        for event in events:
            self._events[event.token_id].append(event)
        for token_events in self._events.values():
            token_events.sort(key=lambda e: (e.timestamp, e.signature), reverse=True)

    def fail_next(self, token_id: str, *errors: BaseException) -> None:
        """Raise these errors, in order, on the next calls for `token_id`."""
        self._failures[token_id].extend(errors)

    async def fetch_page(self, token_id: str, cursor: Optional[str]) -> Any:
        self.calls.append((token_id, cursor))
        if self._latency:
            await asyncio.sleep(self._latency)
        if self._failures[token_id]:
            raise self._failures[token_id].popleft()

        offset = int(cursor) if cursor else 0
        events = self._events.get(token_id, [])
        page = events[offset:offset + self._page_size]
        next_offset = offset + self._page_size
        return {
            "events": page,
            "next": str(next_offset) if next_offset < len(events) else None,
        }

    def normalize_page(self, raw_page: Any, token_id: str) -> list[TransferEvent]:
        return list(raw_page["events"])

    def next_cursor(self, raw_page: Any) -> Optional[str]:
        return raw_page["next"]
