"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Provides common functionality for all repositories including:
- Session injection
- Error wrapping into the engine's error taxonomy
- Common query helpers
- Logging setup

============================================================
USAGE
============================================================
All repositories inherit from BaseRepository.
Session is injected via constructor; the caller owns the
transaction (see storage.database.transaction_scope).

============================================================
"""

import logging
from abc import ABC
from typing import Any, Dict, Generic, List, NoReturn, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import DuplicateKey, StorageError
from storage.models.base import Base


# Type variable for ORM model
T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base class for all repositories.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    - Wraps database errors in engine exceptions
    - Maps unique-key violations to DuplicateKey
    - Manages logging for all operations

    ============================================================
    USAGE
    ============================================================
    class MyRepository(BaseRepository[MyModel]):
        def __init__(self, session: Session):
            super().__init__(session, MyModel, "MyRepository")

    ============================================================
    """

    def __init__(
        self,
        session: Session,
        model_class: Type[T],
        repository_name: str
    ) -> None:
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy session (injected)
            model_class: The ORM model class this repository manages
            repository_name: Name for logging and error messages
        """
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> Session:
        return self._session

    @property
    def repository_name(self) -> str:
        return self._repository_name

    # =========================================================
    # PROTECTED HELPER METHODS
    # =========================================================

    def _handle_db_error(
        self,
        error: SQLAlchemyError,
        operation: str,
        key: Optional[Dict[str, Any]] = None
    ) -> NoReturn:
        """
        Wrap a database error in an engine exception.

        Raises:
            DuplicateKey: unique constraint violated on insert
            StorageError: anything else
        """
        if isinstance(error, IntegrityError):
            error_str = str(error.orig).lower() if error.orig else str(error).lower()
            if "duplicate" in error_str or "unique" in error_str:
                self._logger.debug(f"Duplicate key in {operation}: {key}")
                raise DuplicateKey(
                    f"{self._model_class.__tablename__} row already exists",
                    table=self._model_class.__tablename__,
                    key=key,
                ) from error

        self._logger.error(
            f"Database error in {operation}: {error}",
            extra={"context": key or {}},
            exc_info=True
        )
        raise StorageError(
            f"[{self._repository_name}] {operation} failed: {error}",
            context={"repository": self._repository_name, "operation": operation},
            cause=error,
        ) from error

    def _add(self, entity: T, key: Optional[Dict[str, Any]] = None) -> T:
        """
        Add an entity and flush it.

        On failure the session is rolled back so the caller's
        transaction can be discarded cleanly.
        """
        try:
            self._session.add(entity)
            self._session.flush()
            self._logger.debug(f"Added entity: {entity}")
            return entity
        except SQLAlchemyError as e:
            self._session.rollback()
            self._handle_db_error(e, "add", key)

    def _count(self, *criteria: Any) -> int:
        try:
            stmt = select(func.count()).select_from(self._model_class)
            if criteria:
                stmt = stmt.where(*criteria)
            return self._session.execute(stmt).scalar() or 0
        except SQLAlchemyError as e:
            self._handle_db_error(e, "count")

    def _execute_query(self, stmt: Any) -> List[T]:
        try:
            result = self._session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query")

    def _execute_scalar(self, stmt: Any) -> Optional[Any]:
        try:
            return self._session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query_scalar")
