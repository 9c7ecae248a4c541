"""
Data Products Package.

Query boundary over stored feature snapshots. The excluded CRUD/query
layer composes these filters; the engine only defines them.

Modules:
- filters: Snapshot predicates, named presets and preset rules
"""

from .filters import (
    DEFAULT_PRESET_RULES,
    FILTERABLE_FIELDS,
    PRESETS,
    FeatureFilter,
    FilterOperator,
    PresetRule,
    PresetRules,
    apply_filters,
    get_preset,
)

__all__ = [
    "DEFAULT_PRESET_RULES",
    "FILTERABLE_FIELDS",
    "PRESETS",
    "FeatureFilter",
    "FilterOperator",
    "PresetRule",
    "PresetRules",
    "apply_filters",
    "get_preset",
]
