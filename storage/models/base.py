"""
Base ORM Model.

============================================================
PURPOSE
============================================================
Provides the declarative base used by all ORM models of the
feature engine.

============================================================
COMPONENTS
============================================================
- UTCDateTime: timezone-aware datetime column on every backend
- Base: SQLAlchemy declarative base for all models

============================================================
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Datetime column that always round-trips as aware UTC.

    SQLite drops tzinfo on read; values are normalized to UTC on the
    way in and re-tagged on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.

    All models in the feature engine inherit from this base.
    """

    type_annotation_map = {
        datetime: UTCDateTime(),
    }
