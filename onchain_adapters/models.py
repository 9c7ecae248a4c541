"""
On-chain Data Models - Normalized transfer events and adapter health.

Everything that crosses the adapter boundary is one of these typed
shapes; provider payloads never reach the calculators.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional, Sequence

from core.clock import ensure_utc


class AdapterStatus(Enum):
    """Health status of a transfer feed adapter."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class TransferClassification(str, Enum):
    """Direction of a transfer relative to the trading wallet."""
    BUY = "buy"
    SELL = "sell"
    TRANSFER = "transfer"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TransferEvent:
    """One normalized token transfer. Identity is the signature."""
    signature: str
    token_id: str
    timestamp: datetime
    amount_token: float
    amount_usd_estimate: Optional[float]
    source_wallet: Optional[str]
    destination_wallet: Optional[str]
    classification: TransferClassification = TransferClassification.UNKNOWN

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        object.__setattr__(
            self, "classification", TransferClassification(self.classification)
        )

    @property
    def is_buy(self) -> bool:
        return self.classification == TransferClassification.BUY

    @property
    def is_sell(self) -> bool:
        return self.classification == TransferClassification.SELL


@dataclass(frozen=True)
class TransferBatch:
    """
    Ordered, de-duplicated transfer history for one token.

    `complete` is False when older history exists that the batch does
    not hold: pagination crossed the requested `since`, or stopped at
    the transaction cap before reaching it.
    """
    token_id: str
    events: tuple = ()
    complete: bool = True
    since: Optional[datetime] = None
    source_name: str = ""

    @classmethod
    def from_events(
        cls,
        token_id: str,
        events: Sequence[TransferEvent],
        complete: bool = True,
        since: Optional[datetime] = None,
        source_name: str = "",
    ) -> "TransferBatch":
        unique: dict[str, TransferEvent] = {}
        for event in events:
            unique.setdefault(event.signature, event)
        ordered = sorted(unique.values(), key=lambda e: (e.timestamp, e.signature))
        if since is not None:
            since = ensure_utc(since)
            ordered = [e for e in ordered if e.timestamp >= since]
        return cls(
            token_id=token_id,
            events=tuple(ordered),
            complete=complete,
            since=since,
            source_name=source_name,
        )

    def __iter__(self) -> Iterator[TransferEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    def __getitem__(self, index):
        return self.events[index]

    @property
    def earliest_timestamp(self) -> Optional[datetime]:
        return self.events[0].timestamp if self.events else None


@dataclass
class AdapterHealth:
    """Health status of a transfer feed adapter."""
    status: AdapterStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    requests_made: int = 0

    def is_usable(self) -> bool:
        return self.status in (AdapterStatus.HEALTHY, AdapterStatus.DEGRADED, AdapterStatus.UNKNOWN)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "requests_made": self.requests_made,
        }


@dataclass(frozen=True)
class AdapterMetadata:
    """Static description of a transfer feed provider."""
    name: str
    display_name: str
    version: str
    requires_api_key: bool = False
    base_url: str = ""
    documentation_url: str = ""
    max_page_size: int = 100
    tags: list[str] = field(default_factory=list)


@dataclass
class AdapterIncident:
    """One recorded adapter failure."""
    adapter_name: str
    incident_type: str
    timestamp: datetime
    error_message: str
    token_id: Optional[str] = None
    context: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "adapter_name": self.adapter_name,
            "incident_type": self.incident_type,
            "timestamp": self.timestamp.isoformat(),
            "error_message": self.error_message,
            "token_id": self.token_id,
            "context": self.context,
        }
