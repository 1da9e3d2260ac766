"""Pytest configuration and fixtures."""

import os
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.config import Settings
from src.database import Base, get_db
from src.main import app
from src.models.user import User
from src.services.auth import create_access_token
from src.services.push_gateway import GatewayResult


class AuthHeaders(dict):
    """Dict subclass that also stores user_id."""

    def __init__(self, *args, user_id: int | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id = user_id


class FakeGateway:
    """Records payloads and answers with canned results per token."""

    def __init__(self, results: dict[str, GatewayResult | Exception] | None = None):
        self.results = results or {}
        self.sent: list[dict[str, Any]] = []

    def send(self, payload: dict[str, Any]) -> GatewayResult:
        self.sent.append(payload)
        result = self.results.get(payload["token"])
        if isinstance(result, Exception):
            raise result
        return result or GatewayResult.ok(f"msg-{len(self.sent)}")


# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    # Running in Docker - use PostgreSQL test database
    SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL").replace(
        "/crew_notifications", "/crew_notifications_test"
    )
else:
    # Running locally - use SQLite
    SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

connect_args = {"check_same_thread": False} if "sqlite" in SQLALCHEMY_DATABASE_URL else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in SQLALCHEMY_DATABASE_URL:
        # For PostgreSQL, create the test database
        from sqlalchemy_utils import create_database, database_exists

        # Create test database if it doesn't exist
        if not database_exists(SQLALCHEMY_DATABASE_URL):
            create_database(SQLALCHEMY_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield
    # Don't drop database - just leave it for next run (each test cleans up after itself)


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    # Clean up all data after test
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def session_factory():
    """Session factory bound to the test database, for code that opens its own sessions."""
    return TestingSessionLocal


@pytest.fixture
def settings():
    """Settings with deterministic timezone and small batches."""
    return Settings(
        default_timezone="UTC",
        push_batch_size=50,
        push_max_concurrent_sends=4,
        presence_window_seconds=120,
    )


@pytest.fixture
def gateway():
    """Push gateway that succeeds for every token unless told otherwise."""
    return FakeGateway()


@pytest.fixture
def make_gateway():
    """Build a fake gateway with canned results per token."""
    return FakeGateway


@pytest.fixture
def user(db):
    """Create a user."""
    user = User(email="test@example.com", name="Test User")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    """Create a second user."""
    user = User(email="other@example.com", name="Other User")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client, user):
    """Return auth headers for the test user."""
    token = create_access_token(user.id, user.email)
    return AuthHeaders({"Authorization": f"Bearer {token}"}, user_id=user.id)
