"""
Storage Models Package.

ORM models of the feature engine database.

- CandleRecord (candles.py): append-only OHLCV bars
- TokenFeatureRecord (features.py): append-only feature snapshots
- TokenRecord (tokens.py): token registry
"""

from storage.models.base import Base, UTCDateTime
from storage.models.candles import CandleRecord
from storage.models.features import TokenFeatureRecord
from storage.models.tokens import TokenRecord

__all__ = [
    "Base",
    "UTCDateTime",
    "CandleRecord",
    "TokenFeatureRecord",
    "TokenRecord",
]
