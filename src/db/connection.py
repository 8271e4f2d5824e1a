"""Database connection management for WorkChat.

Provides synchronous database access using SQLAlchemy. Supports SQLite for
development with a PostgreSQL path for production via DATABASE_URL.

Usage:
    # Sync (for FastAPI Depends)
    from src.db.connection import get_db, init_db

    init_db()  # Create tables
    db = next(get_db())
    # ... use db session

    # Outside request scope
    with get_db_context() as db:
        ...
"""

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from src.db.models import Base

logger = logging.getLogger(__name__)


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. WORKCHAT_DB_PATH (converted to sqlite URL)
    3. sqlite:///<data dir>/workchat.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("WORKCHAT_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    from src.utils.paths import get_default_db_path
    return f"sqlite:///{get_default_db_path()}"


# Engine creation
DATABASE_URL = get_database_url()

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False}
    if DATABASE_URL.startswith("sqlite")
    else {},
    echo=os.environ.get("SQL_ECHO", "").lower() == "true",
)


# Enable foreign keys for SQLite
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: Referential integrity (disabled by default in SQLite).
    - journal_mode=WAL: Concurrent readers alongside a single writer, so
      parallel chat requests do not block each other on reads.
    - synchronous=NORMAL: Durable after WAL fsync.
    """
    if DATABASE_URL.startswith("sqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.close()


# Session factories
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


# Dependency functions for FastAPI


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for synchronous operations.

    Intended for use with FastAPI's Depends() for request-scoped sessions.

    Usage:
        @app.get("/chats")
        def list_chats(db: Session = Depends(get_db)):
            return db.query(Chat).all()

    Yields:
        Session: SQLAlchemy session that will be closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Context managers for manual session management


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            chat = db.query(Chat).first()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Initialization functions


def _ensure_columns_exist(conn: Any) -> None:
    """Add columns introduced after the first schema release.

    Idempotent: introspects existing columns and only issues ALTERs for
    missing ones. SQLite only; other backends are expected to be migrated
    externally.

    Args:
        conn: SQLAlchemy Connection.
    """
    if not DATABASE_URL.startswith("sqlite"):
        return

    migrations: dict[str, list[tuple[str, str]]] = {
        "chat_messages": [
            ("model", "ALTER TABLE chat_messages ADD COLUMN model VARCHAR(100)"),
            (
                "tools_used_json",
                "ALTER TABLE chat_messages ADD COLUMN tools_used_json TEXT",
            ),
        ],
        "user_tokens": [
            (
                "key_version",
                "ALTER TABLE user_tokens ADD COLUMN key_version INTEGER NOT NULL DEFAULT 1",
            ),
        ],
    }

    for table, columns in migrations.items():
        result = conn.execute(text(f"PRAGMA table_info({table})"))
        existing_cols = {row[1] for row in result.fetchall()}
        for col_name, ddl in columns:
            if col_name in existing_cols:
                continue
            try:
                conn.execute(text(ddl))
                logger.info("Added column %s.%s", table, col_name)
            except OperationalError as e:
                if "duplicate column" in str(e).lower():
                    logger.debug("Column %s already exists (concurrent add).", col_name)
                else:
                    logger.error("Failed to add column %s: %s", col_name, e)
                    raise


def init_db() -> None:
    """Create all database tables synchronously.

    Uses the Base.metadata from models.py to create all defined tables.
    Safe to call multiple times - will not recreate existing tables.
    Runs column migration for new columns on existing tables.

    Usage:
        from src.db.connection import init_db
        init_db()
    """
    Base.metadata.create_all(bind=engine)
    with engine.begin() as conn:
        _ensure_columns_exist(conn)


# Cleanup functions


def close_db() -> None:
    """Close the sync engine and dispose of connection pool."""
    engine.dispose()
