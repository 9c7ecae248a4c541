"""
Core Module - Constants and Shared Types.

============================================================
RESPONSIBILITY
============================================================
Defines the value types shared by every layer of the engine.

- Timeframe: fixed bar durations
- Candle: one normalized OHLCV bar
- Analysis source tags carried on every snapshot

============================================================
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from core.clock import ensure_utc


# ============================================================
# TIME CONSTANTS
# ============================================================

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


# ============================================================
# TIMEFRAMES
# ============================================================

class Timeframe(str, Enum):
    """Fixed bar durations supported by candles and indicators."""

    M1 = "1m"
    M5 = "5m"
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"

    @property
    def seconds(self) -> int:
        return _TIMEFRAME_SECONDS[self]

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.seconds)

    def floor(self, moment: datetime) -> datetime:
        """Snap a moment to the start of its bucket (UTC)."""
        moment = ensure_utc(moment)
        epoch = int(moment.timestamp())
        return datetime.fromtimestamp(epoch - epoch % self.seconds, tz=timezone.utc)

    @classmethod
    def parse(cls, value: "str | Timeframe") -> "Timeframe":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            raise ValueError(
                f"Unknown timeframe {value!r}, expected one of "
                f"{', '.join(t.value for t in cls)}"
            ) from None


_TIMEFRAME_SECONDS = {
    Timeframe.M1: 60,
    Timeframe.M5: 300,
    Timeframe.M15: 900,
    Timeframe.H1: 3600,
    Timeframe.H4: 14400,
    Timeframe.D1: 86400,
}


# ============================================================
# ANALYSIS SOURCE
# ============================================================

class AnalysisSource(str, Enum):
    """How much of a snapshot is backed by real transfer data."""

    REAL_ONLY = "real_only"
    REAL_PRIMARY = "real_primary"
    HYBRID = "hybrid"
    MATHEMATICAL_FALLBACK = "mathematical_fallback"
    ERROR_FALLBACK = "error_fallback"


# ============================================================
# CANDLE
# ============================================================

@dataclass(frozen=True)
class Candle:
    """
    One OHLCV bar for a token over a fixed timeframe.

    `volume` is quote (USD) volume for the bar.
    """
    token_id: str
    timeframe: Timeframe
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "timeframe", Timeframe.parse(self.timeframe))
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0

    @property
    def key(self) -> tuple:
        return (self.token_id, self.timeframe.value, self.timestamp)
