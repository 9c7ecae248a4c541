"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to persistent storage.
All database access goes through these classes.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. Session Injection: sessions are injected, not created internally
2. Explicit Methods: no generic 'execute', clear method names
3. Immutability: candles and snapshots are append-only
4. Exception Handling: DB errors wrapped in DuplicateKey / StorageError

============================================================
"""

from storage.repositories.base import BaseRepository
from storage.repositories.candles import CandleRepository
from storage.repositories.features import (
    FeatureStoreRepository,
    record_to_snapshot,
    snapshot_to_record,
)
from storage.repositories.tokens import TokenRegistryRepository

__all__ = [
    "BaseRepository",
    "CandleRepository",
    "FeatureStoreRepository",
    "TokenRegistryRepository",
    "record_to_snapshot",
    "snapshot_to_record",
]
