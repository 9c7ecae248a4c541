"""
Orchestrator - Models.

============================================================
RESPONSIBILITY
============================================================
Result types of the batch cycle.

- WriteStatus: what happened to one snapshot write
- TokenOutcome: per-token result across snapshot timeframes
- CycleResult: one cycle's selection and token outcomes

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from core.constants import AnalysisSource, Timeframe
from prioritization.models import SelectionResult


# ============================================================
# OUTCOMES
# ============================================================

class WriteStatus(str, Enum):
    """Result of one snapshot append."""

    PERSISTED = "persisted"
    """Row written."""

    DUPLICATE = "duplicate"
    """Identity already stored; no-op."""

    FAILED = "failed"
    """Storage error; nothing written."""


class OutcomeStatus(str, Enum):
    """Per-token summary shown in cycle reports."""
    PERSISTED = "persisted"
    DUPLICATE = "duplicate"
    ERROR_FALLBACK = "error_fallback"
    FAILED = "failed"


@dataclass
class TokenOutcome:
    """Result of one token's pipeline run."""

    token_id: str
    analysis_source: Optional[AnalysisSource] = None
    data_confidence: Optional[float] = None
    writes: Dict[Timeframe, WriteStatus] = field(default_factory=dict)
    feed_error: Optional[str] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def status(self) -> OutcomeStatus:
        if not self.writes or any(s == WriteStatus.FAILED for s in self.writes.values()):
            return OutcomeStatus.FAILED
        if self.analysis_source == AnalysisSource.ERROR_FALLBACK:
            return OutcomeStatus.ERROR_FALLBACK
        if all(s == WriteStatus.DUPLICATE for s in self.writes.values()):
            return OutcomeStatus.DUPLICATE
        return OutcomeStatus.PERSISTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": self.token_id,
            "status": self.status.value,
            "analysis_source": self.analysis_source.value if self.analysis_source else None,
            "data_confidence": self.data_confidence,
            "writes": {tf.value: status.value for tf, status in self.writes.items()},
            "feed_error": self.feed_error,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
        }


# ============================================================
# CYCLE RESULT
# ============================================================

@dataclass
class CycleResult:
    """Result of a complete batch cycle."""

    cycle_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None

    universe_size: int = 0
    selection: Optional[SelectionResult] = None
    outcomes: List[TokenOutcome] = field(default_factory=list)

    # Set when the cycle itself failed (selector error, storage down)
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.error is None and not self.cancelled

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    def outcome_for(self, token_id: str) -> Optional[TokenOutcome]:
        for outcome in self.outcomes:
            if outcome.token_id == token_id:
                return outcome
        return None

    def summary(self) -> str:
        return (
            f"{len(self.outcomes)} tokens: "
            f"{self.count(OutcomeStatus.PERSISTED)} persisted, "
            f"{self.count(OutcomeStatus.DUPLICATE)} duplicate, "
            f"{self.count(OutcomeStatus.ERROR_FALLBACK)} error_fallback, "
            f"{self.count(OutcomeStatus.FAILED)} failed"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "success": self.success,
            "universe_size": self.universe_size,
            "selection": self.selection.to_dict() if self.selection else None,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "error": self.error,
            "cancelled": self.cancelled,
        }
