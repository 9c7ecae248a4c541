"""
Scoring Engine Package.

This package fuses indicator and behavioral outputs into feature
snapshots. Snapshots are inputs to the query layer, not trade signals.

Modules:
- models: TokenFeatureSnapshot and its field groups
- smart_money_index: Net large-holder flow score
- fusion: Snapshot assembly
"""

from .config import FusionConfig
from .fusion import FeatureFusion
from .models import (
    BEHAVIORAL_FIELDS,
    FUSION_FIELDS,
    IDENTITY_FIELDS,
    TECHNICAL_FIELDS,
    TokenFeatureSnapshot,
)
from .smart_money_index import is_bullish, smart_money_index

__all__ = [
    "FusionConfig",
    "FeatureFusion",
    "TokenFeatureSnapshot",
    "TECHNICAL_FIELDS",
    "BEHAVIORAL_FIELDS",
    "FUSION_FIELDS",
    "IDENTITY_FIELDS",
    "is_bullish",
    "smart_money_index",
]
