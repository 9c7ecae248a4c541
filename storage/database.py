"""
Storage - Database Engine and Sessions.

============================================================
RESPONSIBILITY
============================================================
Creates SQLAlchemy engines and session factories, and provides
explicit transaction boundaries.

- Connection pooling for server databases
- Shared in-memory connection for SQLite test databases
- One transaction per snapshot write

============================================================
DESIGN PRINCIPLES
============================================================
- No module-level engine: callers own the engine they create
- Hard failures on persistence errors
- Domain errors (DuplicateKey) pass through transaction scopes

============================================================
"""

import os
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from core.exceptions import FeatureEngineError, StorageError
from storage.models.base import Base


logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///token_features.db"


# =============================================================
# DATABASE ENGINE
# =============================================================


def get_database_url() -> str:
    """Get database URL from environment."""
    load_dotenv()
    url = os.getenv("DATABASE_URL")
    if url and url.startswith("postgresql+asyncpg"):
        # Convert async URL to sync
        url = url.replace("postgresql+asyncpg", "postgresql")

    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"DATABASE_URL not set, using default: {url}")

    return url


def create_database_engine(
    database_url: Optional[str] = None,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
) -> Engine:
    """
    Create SQLAlchemy engine.

    Server databases get a QueuePool. SQLite in-memory URLs share a
    single connection so every session sees the same database.

    Args:
        database_url: SQLAlchemy URL (defaults to DATABASE_URL env)
        pool_size: Number of connections to keep in pool
        max_overflow: Max connections beyond pool_size
        pool_timeout: Seconds to wait for available connection
        pool_recycle: Recycle connections after N seconds
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    url = database_url or get_database_url()
    logger.info(f"Creating database engine for: {url.split('@')[-1]}")

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)
    else:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            echo=echo,
        )

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to `engine`."""
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


# =============================================================
# SESSION MANAGEMENT
# =============================================================


@contextmanager
def transaction_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for explicit transaction boundaries.

    Commits only if no exception occurs.
    Rolls back on ANY exception.

    Usage:
        with transaction_scope(factory) as session:
            FeatureStoreRepository(session).append(snapshot)
            # Commits automatically at end
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except FeatureEngineError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        logger.error(f"Database transaction failed, rolling back: {e}")
        session.rollback()
        raise StorageError(f"Transaction failed: {e}", cause=e) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================


def verify_database_connection(engine: Engine) -> bool:
    """
    Verify database connection is working.

    Raises:
        StorageError if connection fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection verified successfully")
            return True
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise StorageError(f"Cannot connect to database: {e}", cause=e) from e


def create_all_tables(engine: Engine) -> None:
    """
    Create all tables defined in ORM models.

    Raises:
        StorageError if table creation fails
    """
    # Register every model with Base.metadata
    from storage import models  # noqa: F401

    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info(f"Database tables ready: {', '.join(sorted(Base.metadata.tables))}")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise StorageError(f"Table creation failed: {e}", cause=e) from e


def initialize_database(engine: Engine) -> None:
    """Verify connection, then create missing tables."""
    logger.info("=" * 60)
    logger.info("INITIALIZING FEATURE STORE DATABASE")
    logger.info("=" * 60)
    verify_database_connection(engine)
    create_all_tables(engine)
