"""
Storage Package.

This package manages all persistence of the feature engine.

Modules:
- database: engine, session factory, transaction scope
- models/: ORM models (candles, token_features, tokens)
- repositories/: data access layer
"""

from storage.database import (
    create_all_tables,
    create_database_engine,
    create_session_factory,
    get_database_url,
    initialize_database,
    transaction_scope,
)

__all__ = [
    "create_all_tables",
    "create_database_engine",
    "create_session_factory",
    "get_database_url",
    "initialize_database",
    "transaction_scope",
]
