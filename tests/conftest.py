"""Shared fixtures.

Tests run against an in-memory SQLite database with the full schema created
from the models. Redis is never started: realtime fan-out falls back to local
delivery and tests that care about pub/sub patch the client.
"""

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import courier.db.base  # noqa: F401
from courier.auth.models.user import User
from courier.core import redis as redis_module
from courier.db.session import Base, get_db
from courier.main import app
from courier.messaging.realtime import RealtimeBroadcaster
from courier.messaging.services.messaging_service import MessagingService
from tests.utils.factories import create_user_factory


@pytest.fixture
def memory_engine():
    """Create an in-memory SQLite engine for isolated testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(memory_engine):
    return sessionmaker(bind=memory_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(autouse=True)
def no_redis():
    """Keep the module-level Redis client unset unless a test installs one."""
    previous = redis_module.redis_client
    redis_module.redis_client = None
    yield
    redis_module.redis_client = previous


@pytest.fixture
def alice(db_session) -> User:
    return create_user_factory(db_session, email="alice@example.com", name="Alice")


@pytest.fixture
def bob(db_session) -> User:
    return create_user_factory(db_session, email="bob@example.com", name="Bob")


@pytest.fixture
def carol(db_session) -> User:
    return create_user_factory(db_session, email="carol@example.com", name="Carol")


@pytest.fixture
def dave(db_session) -> User:
    return create_user_factory(db_session, email="dave@example.com", name="Dave")


@pytest.fixture
def admin_user(db_session) -> User:
    return create_user_factory(db_session, email="admin@example.com", name="Admin", role="admin")


@pytest.fixture
def fake_broadcaster():
    return AsyncMock(spec=RealtimeBroadcaster)


@pytest.fixture
def service(db_session, fake_broadcaster) -> MessagingService:
    return MessagingService(db_session, broadcaster=fake_broadcaster)


@pytest.fixture
def test_app(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def test_client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as client:
        yield client
