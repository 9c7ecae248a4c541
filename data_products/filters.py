"""
Data Products - Snapshot Filters.

============================================================
RESPONSIBILITY
============================================================
Structured predicates over feature snapshot fields, usable in
memory and as SQLAlchemy clauses against the latest projection.

- FeatureFilter: one (column, operator, value) predicate
- Named presets: fresh_launch, volume_spike, whale_activity
- PresetRules: prioritized keyword -> preset rule list

============================================================
SEMANTICS
============================================================
- Operators: eq, lt, lte, gt, gte
- A null field never satisfies a range predicate
- Boundaries follow the operator exactly
  (fresh_launch uses age < 12h, so 12h is excluded)

============================================================
"""

import operator
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from core.exceptions import ConfigurationError
from scoring_engine.models import TokenFeatureSnapshot


class FilterOperator(str, Enum):
    EQ = "eq"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"


_OPERATORS = {
    FilterOperator.EQ: operator.eq,
    FilterOperator.LT: operator.lt,
    FilterOperator.LTE: operator.le,
    FilterOperator.GT: operator.gt,
    FilterOperator.GTE: operator.ge,
}

_SYMBOLS = {
    "=": FilterOperator.EQ,
    "==": FilterOperator.EQ,
    "<": FilterOperator.LT,
    "<=": FilterOperator.LTE,
    ">": FilterOperator.GT,
    ">=": FilterOperator.GTE,
}

FILTERABLE_FIELDS = frozenset(TokenFeatureSnapshot.field_names())

_EXPRESSION = re.compile(r"^\s*(?P<column>\w+)\s*(?P<op><=|>=|==|=|<|>)\s*(?P<value>\S+)\s*$")


@dataclass(frozen=True)
class FeatureFilter:
    """One predicate on a snapshot field."""
    column: str
    operator: FilterOperator
    value: Any

    def __post_init__(self) -> None:
        if self.column not in FILTERABLE_FIELDS:
            raise ConfigurationError(
                f"Unknown snapshot field: {self.column}",
                config_key="filter.column",
                actual_value=self.column,
            )
        try:
            object.__setattr__(self, "operator", FilterOperator(self.operator))
        except ValueError:
            raise ConfigurationError(
                f"Unsupported filter operator: {self.operator}",
                config_key="filter.operator",
                actual_value=self.operator,
            ) from None
        if isinstance(self.value, Enum):
            object.__setattr__(self, "value", self.value.value)

    @classmethod
    def parse(cls, expression: str) -> "FeatureFilter":
        """Parse 'whale_buys_24h > 3' style expressions."""
        match = _EXPRESSION.match(expression)
        if not match:
            raise ConfigurationError(
                f"Cannot parse filter expression: {expression!r}",
                config_key="filter",
            )
        return cls(match["column"], _SYMBOLS[match["op"]], _coerce(match["value"]))

    def matches(self, snapshot: TokenFeatureSnapshot) -> bool:
        actual = getattr(snapshot, self.column)
        if isinstance(actual, Enum):
            actual = actual.value
        if actual is None:
            return False
        return _OPERATORS[self.operator](actual, self.value)

    def to_clause(self, model: Any):
        """SQLAlchemy clause against a mapped TokenFeatureRecord (or alias)."""
        return _OPERATORS[self.operator](getattr(model, self.column), self.value)

    def __str__(self) -> str:
        return f"{self.column} {self.operator.value} {self.value}"


def _coerce(raw: str) -> Any:
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw


def apply_filters(
    snapshots: Sequence[TokenFeatureSnapshot],
    filters: Sequence[FeatureFilter],
) -> list[TokenFeatureSnapshot]:
    return [s for s in snapshots if all(f.matches(s) for f in filters)]


# ============================================================
# PRESETS
# ============================================================

PRESETS: Mapping[str, tuple] = {
    "fresh_launch": (
        FeatureFilter("token_age_hours", FilterOperator.LT, 12),
        FeatureFilter("new_holders_24h", FilterOperator.GTE, 5),
    ),
    "volume_spike": (
        FeatureFilter("volume_spike_ratio", FilterOperator.GT, 2.0),
    ),
    "whale_activity": (
        FeatureFilter("whale_buys_24h", FilterOperator.GT, 3),
    ),
}


def get_preset(name: str) -> tuple:
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown filter preset: {name}",
            config_key="filter.preset",
            actual_value=name,
        ) from None


@dataclass(frozen=True)
class PresetRule:
    """Keyword pattern mapped to a preset; lower priority value wins."""
    pattern: str
    preset: str
    priority: int = 100

    def matches(self, text: str) -> bool:
        return re.search(self.pattern, text, flags=re.IGNORECASE) is not None


DEFAULT_PRESET_RULES = (
    PresetRule(r"\b(new|fresh|launch(es|ed)?)\b", "fresh_launch", priority=10),
    PresetRule(r"\bwhales?\b", "whale_activity", priority=20),
    PresetRule(r"\b(spike|surge|pump)\w*\b", "volume_spike", priority=30),
)


class PresetRules:
    """Prioritized rule list resolving free text to one preset."""

    def __init__(self, rules: Sequence[PresetRule] = DEFAULT_PRESET_RULES) -> None:
        for rule in rules:
            get_preset(rule.preset)
        self._rules = sorted(rules, key=lambda r: (r.priority, r.preset))

    def resolve(self, text: str) -> Optional[str]:
        for rule in self._rules:
            if rule.matches(text):
                return rule.preset
        return None

    def filters_for(self, text: str) -> tuple:
        preset = self.resolve(text)
        return get_preset(preset) if preset else ()
