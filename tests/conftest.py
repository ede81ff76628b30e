"""
Pytest fixtures for testing
"""
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from subtrack.infrastructure.db.session import Base
from subtrack.infrastructure.realtime import ChangeFeed
from subtrack.infrastructure.remote_store import RemoteStore

TODAY = date(2026, 3, 10)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every connection (TestClient runs routes in threads)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False)


@pytest.fixture
def db_session(session_factory) -> Session:
    """Create database session for tests"""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def remote_store(session_factory, feed):
    return RemoteStore(session_factory, feed)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def sample_user_id():
    """Sample user ID for tests"""
    return 1
