"""
Database Persistence Layer - Core Engine.

============================================================
BOUNTY INDEX STORE
============================================================

Owns the SQLAlchemy engine and session lifecycle for the
bounty index. The sync engine is the only writer; the query
API opens read-only sessions against the same store.

Requirements:
- SQLAlchemy ORM (SQLite by default, any SQLAlchemy URL works)
- Explicit transaction management
- WAL journal on SQLite so readers never block the writer
- Hard failures on persistence errors

============================================================
"""

import os
import logging
from typing import Optional, Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, text, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.exc import SQLAlchemyError, OperationalError

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# =============================================================
# DECLARATIVE BASE
# =============================================================

Base = declarative_base()

# =============================================================
# DATABASE ENGINE
# =============================================================

DEFAULT_DATABASE_URL = "sqlite:///taskmint.db"

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def get_database_url() -> str:
    """Get database URL from environment."""
    url = os.getenv("DATABASE_URL", "").strip()
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.debug(f"DATABASE_URL not set, using default: {url}")
    return url


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def create_database_engine(
    database_url: Optional[str] = None,
    echo: bool = False,
) -> Engine:
    """
    Create the SQLAlchemy engine and make it the process-wide engine.

    Args:
        database_url: SQLAlchemy URL (defaults to DATABASE_URL / SQLite file)
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    global _engine, _SessionFactory

    url = database_url or get_database_url()
    logger.info(f"Creating database engine for: {url.split('@')[-1]}")

    kwargs = {"echo": echo, "future": True}
    if _is_sqlite(url):
        # Sessions are used from sync worker threads and API worker threads
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            from sqlalchemy.pool import StaticPool
            kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(pool_size=5, max_overflow=10, pool_recycle=1800)

    engine = create_engine(url, **kwargs)

    if _is_sqlite(url):
        @event.listens_for(engine, "connect")
        def on_connect(dbapi_conn, connection_record):
            # Let SQLAlchemy own BEGIN so SAVEPOINTs nest correctly
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()
            logger.debug("SQLite connection established (WAL)")

        @event.listens_for(engine, "begin")
        def on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    if _engine is not None and _engine is not engine:
        _engine.dispose()

    _engine = engine
    _SessionFactory = None
    return _engine


def get_engine() -> Engine:
    """Get the database engine, creating if necessary."""
    global _engine
    if _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """Get session factory, creating if necessary."""
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    return _SessionFactory


def reset_engine() -> None:
    """Dispose the process-wide engine (tests and shutdown)."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


# =============================================================
# SESSION MANAGEMENT
# =============================================================


def get_session() -> Session:
    """
    Get a new database session.

    IMPORTANT: Caller is responsible for committing/closing.
    Prefer using transaction_scope() instead.
    """
    factory = get_session_factory()
    return factory()


@contextmanager
def transaction_scope(
    session_factory: Optional[sessionmaker] = None,
) -> Generator[Session, None, None]:
    """
    Context manager for explicit transaction boundaries.

    Commits only if no exception occurs.
    Rolls back on ANY exception.

    Usage:
        with transaction_scope() as session:
            insert_bounty(session, event)
            # Commits automatically at end
    """
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Database transaction failed, rolling back: {e}")
        session.rollback()
        raise DatabasePersistenceError(f"Transaction failed: {e}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================

REQUIRED_TABLES = [
    "bounties",
    "claims",
    "withdrawals",
    "sync_state",
    "id_sequences",
]


def verify_database_connection(engine: Optional[Engine] = None) -> bool:
    """
    Verify database connection is working.

    Raises:
        DatabaseConnectionError if connection fails
    """
    engine = engine or get_engine()

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
            logger.debug("Database connection verified")
            return True
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e


def create_all_tables(engine: Optional[Engine] = None) -> None:
    """
    Create all tables defined in ORM models (no-op for existing tables).

    Raises:
        DatabaseInitializationError if table creation fails
    """
    engine = engine or get_engine()

    # Register models with Base
    from . import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseInitializationError(f"Table creation failed: {e}") from e


def verify_required_tables(engine: Optional[Engine] = None) -> list[str]:
    """Return the required tables that are missing."""
    engine = engine or get_engine()
    existing = set(inspect(engine).get_table_names())
    missing = [t for t in REQUIRED_TABLES if t not in existing]
    for table in missing:
        logger.warning(f"  [!!] Table missing: {table}")
    return missing


def initialize_database(engine: Optional[Engine] = None) -> None:
    """
    Full database initialization sequence.

    1. Verify connection
    2. Create tables if not exist
    3. Abort on any failure

    Must be called at application startup.
    """
    engine = engine or get_engine()

    try:
        verify_database_connection(engine)
        create_all_tables(engine)
        missing = verify_required_tables(engine)
        if missing:
            raise DatabaseInitializationError(f"Missing tables: {', '.join(missing)}")
        logger.info(f"Database ready ({len(REQUIRED_TABLES)} tables)")

    except DatabasePersistenceError as e:
        logger.critical(f"DATABASE INITIALIZATION FAILED: {e}")
        raise


def get_table_row_counts(engine: Optional[Engine] = None) -> dict:
    """
    Get row counts for all tables.

    Returns:
        Dict mapping table name to row count (-1 if missing)
    """
    counts = {}
    engine = engine or get_engine()

    with engine.connect() as conn:
        for table in REQUIRED_TABLES:
            try:
                counts[table] = conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()
            except SQLAlchemyError:
                counts[table] = -1

    return counts


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================


class DatabasePersistenceError(Exception):
    """Raised when database persistence fails."""
    pass


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when database connection fails."""
    pass


class DatabaseInitializationError(DatabasePersistenceError):
    """Raised when database initialization fails."""
    pass


# =============================================================
# EXPORTS
# =============================================================

__all__ = [
    # Base
    "Base",
    # Engine & Session
    "create_database_engine",
    "get_engine",
    "reset_engine",
    "get_session",
    "get_session_factory",
    "transaction_scope",
    # Initialization
    "initialize_database",
    "verify_database_connection",
    "verify_required_tables",
    "create_all_tables",
    "get_table_row_counts",
    # Constants
    "DEFAULT_DATABASE_URL",
    "REQUIRED_TABLES",
    # Exceptions
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
]
