"""
Data Ingestion - Types.

============================================================
RESPONSIBILITY
============================================================
Result types of candle ingestion runs.

- IngestionStatus: outcome of one (token, timeframe) run
- IngestionResult: counts and the fetched window for one run
- IngestionMetrics: running totals across runs

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from core.constants import Timeframe


# ============================================================
# ENUMS
# ============================================================


class IngestionStatus(str, Enum):
    """Outcome of one ingestion run."""
    SUCCESS = "success"
    UP_TO_DATE = "up_to_date"
    FAILED = "failed"


# ============================================================
# RESULTS
# ============================================================


@dataclass
class IngestionResult:
    """Result of ingesting one (token, timeframe) series."""

    token_id: str
    timeframe: Timeframe
    status: IngestionStatus = IngestionStatus.SUCCESS

    # Window actually requested from the provider
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None

    # Counts
    records_fetched: int = 0
    records_stored: int = 0
    records_skipped: int = 0
    chunks: int = 0

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    errors: List[str] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.status != IngestionStatus.FAILED

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": self.token_id,
            "timeframe": self.timeframe.value,
            "status": self.status.value,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
            "records_fetched": self.records_fetched,
            "records_stored": self.records_stored,
            "records_skipped": self.records_skipped,
            "chunks": self.chunks,
            "duration_seconds": self.duration_seconds,
            "errors": self.errors,
        }


@dataclass
class IngestionMetrics:
    """Running totals of the ingestion service."""

    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0

    total_records_fetched: int = 0
    total_records_stored: int = 0

    last_run_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None

    def record(self, result: IngestionResult) -> None:
        self.total_runs += 1
        self.total_records_fetched += result.records_fetched
        self.total_records_stored += result.records_stored
        self.last_run_at = result.completed_at
        if result.is_success:
            self.successful_runs += 1
        else:
            self.failed_runs += 1
            self.last_failure_at = result.completed_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_runs": self.total_runs,
            "successful_runs": self.successful_runs,
            "failed_runs": self.failed_runs,
            "total_records_fetched": self.total_records_fetched,
            "total_records_stored": self.total_records_stored,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_failure_at": self.last_failure_at.isoformat() if self.last_failure_at else None,
        }
