"""
Pytest configuration and fixtures
"""

import pytest
import os
from uuid import uuid4
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Set test environment variables before importing app
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite://")
os.environ["REDIS_URL"] = "redis://localhost:6379/1"  # Use DB 1 for tests
os.environ["JWT_SECRET"] = "test-secret-key-min-32-chars-for-testing-only"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["RELEASE_SWEEP_ENABLED"] = "false"
os.environ["METRICS_PUBLIC"] = "false"
os.environ["METRICS_TOKEN"] = "test-metrics-token"

from escrow_core.infrastructure.database import Base, get_db
from escrow_core.main import app
import escrow_core.models  # noqa: F401
from escrow_core.core.security.models import Role
from escrow_core.core.users.models import User, UserStatus
from escrow_core.services.notifications import get_notification_publisher

from tests.helpers import RecordingPublisher


# Create test database engine
test_engine = create_engine(
    os.environ["DATABASE_URL"],
    poolclass=StaticPool,
    connect_args={"check_same_thread": False} if "sqlite" in os.environ["DATABASE_URL"] else {},
)

TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Create a fresh database session for each test.
    Clears all tables before and after each test.
    """
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture(scope="function")
def client(db_session: Session, publisher: RecordingPublisher):
    """
    Create FastAPI test client with dependency overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_publisher] = lambda: publisher

    yield TestClient(app)

    app.dependency_overrides.clear()


def _create_user(db_session: Session, role: Role, email: str, **kwargs) -> User:
    user = User(
        id=uuid4(),
        email=email,
        name=kwargs.pop("name", email.split("@")[0]),
        role=role,
        status=kwargs.pop("status", UserStatus.ACTIVE),
        **kwargs,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def retailer(db_session: Session) -> User:
    return _create_user(db_session, Role.RETAILER, "retailer@example.com", phone="+263770000001")


@pytest.fixture
def other_retailer(db_session: Session) -> User:
    return _create_user(db_session, Role.RETAILER, "retailer2@example.com")


@pytest.fixture
def wholesaler(db_session: Session) -> User:
    return _create_user(db_session, Role.WHOLESALER, "wholesaler@example.com")


@pytest.fixture
def other_wholesaler(db_session: Session) -> User:
    return _create_user(db_session, Role.WHOLESALER, "wholesaler2@example.com")


@pytest.fixture
def agent(db_session: Session) -> User:
    return _create_user(db_session, Role.DELIVERY_AGENT, "agent@example.com", phone="+263770000009")


@pytest.fixture
def other_agent(db_session: Session) -> User:
    return _create_user(db_session, Role.DELIVERY_AGENT, "agent2@example.com")


@pytest.fixture
def admin(db_session: Session) -> User:
    return _create_user(db_session, Role.ADMIN, "admin@example.com")
