"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- Hermetic environment (data dir, session secret, encryption key)
- In-memory SQLite database and session factory
- A persisted sample user
"""

import base64
import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).parent.parent

TEST_SESSION_SECRET = "test-session-secret-0123456789abcdef"


def _set_hermetic_env() -> None:
    # Keep every test run away from the real per-user data directory.
    if not os.environ.get("WORKCHAT_DATA_DIR"):
        os.environ["WORKCHAT_DATA_DIR"] = tempfile.mkdtemp(prefix="workchat-test-")
    os.environ.setdefault("WORKCHAT_SESSION_SECRET", TEST_SESSION_SECRET)
    os.environ.setdefault(
        "WORKCHAT_CREDENTIAL_KEY", base64.b64encode(b"k" * 32).decode()
    )
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")


# Must run before importing src: src.db.connection resolves DATABASE_URL at import.
_set_hermetic_env()

from src.db.models import Base, User  # noqa: E402


# ============================================================================
# Pytest Markers
# ============================================================================


def pytest_configure(config):
    """Register custom markers and set required env vars."""
    config.addinivalue_line(
        "markers", "integration: marks tests that spawn real worker processes"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests that take a long time to run"
    )
    _set_hermetic_env()


# ============================================================================
# Skip Conditions
# ============================================================================

requires_anthropic_key = pytest.mark.skipif(
    os.environ.get("ANTHROPIC_API_KEY", "test-key") == "test-key",
    reason="ANTHROPIC_API_KEY not set"
)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across connections."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the in-memory engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Request-style session over the in-memory database."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db_session: Session) -> User:
    """A persisted user."""
    u = User(email="alice@example.com", name="Alice", picture=None)
    db_session.add(u)
    db_session.commit()
    db_session.refresh(u)
    return u


@pytest.fixture
def other_user(db_session: Session) -> User:
    """A second persisted user, for ownership checks."""
    u = User(email="bob@example.com", name="Bob", picture="https://example.com/bob.png")
    db_session.add(u)
    db_session.commit()
    db_session.refresh(u)
    return u
