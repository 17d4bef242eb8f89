"""Pytest fixtures."""

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from sereno.core.deps import get_notifier
from sereno.core.errors import DeliveryFailure
from sereno.core.notifications import NotificationDispatcher
from sereno.core.security import create_access_token, hash_password
from sereno.db.base import Base
from sereno.db.session import build_engine, get_db
from sereno.main import app
from sereno.models import CompanionProfile, User

TEST_DATABASE_URL = "sqlite:///./test.db"
TEST_PASSWORD = "secret123"

engine = build_engine(TEST_DATABASE_URL)
# Objects stay readable after commit without reopening a transaction
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

_PASSWORD_HASH = hash_password(TEST_PASSWORD)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class RecordingTransport:
    """Push transport that remembers deliveries and can be told to fail."""

    def __init__(self):
        self.sent: list[tuple[int, str, dict]] = []
        self.fail_for: set[int] = set()
        self.attempts: dict[int, int] = {}

    def send(self, user_id, event, data):
        self.attempts[user_id] = self.attempts.get(user_id, 0) + 1
        if user_id in self.fail_for:
            raise DeliveryFailure(f"user {user_id} unreachable")
        self.sent.append((user_id, event, data))

    def events_for(self, user_id) -> list[str]:
        return [event for uid, event, _ in self.sent if uid == user_id]

    def recipients_of(self, event) -> set[int]:
        return {uid for uid, ev, _ in self.sent if ev == event}


@pytest.fixture(scope="session")
def setup_db():
    """Create tables once for test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(setup_db):
    return TestingSessionLocal


@pytest.fixture
def db(setup_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(setup_db, transport):
    """Never started: tests call drain() to deliver inline."""
    return NotificationDispatcher(transport, session_factory=TestingSessionLocal, max_attempts=3, backoff_seconds=0)


@pytest.fixture
def client(setup_db, dispatcher):
    """Test client with overridden DB and notifier."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: dispatcher
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(setup_db):
    """Factory creating a committed user in its own session."""

    def _make(role="user", **fields) -> User:
        tag = uuid.uuid4().hex[:8]
        with TestingSessionLocal() as session:
            user = User(
                email=fields.pop("email", f"{role}_{tag}@test.com"),
                hashed_password=_PASSWORD_HASH,
                full_name=fields.pop("full_name", f"{role.title()} {tag}"),
                role=role,
                mental_health_conditions=fields.pop("mental_health_conditions", []),
                emergency_contacts=fields.pop("emergency_contacts", []),
                **fields,
            )
            session.add(user)
            session.flush()
            session.refresh(user)
            session.commit()
            return user

    return _make


@pytest.fixture
def make_companion(make_user):
    """Factory creating a companion user with a profile. Verified and available all day by default."""

    def _make(
        verified=True,
        available=True,
        start="00:00",
        end="23:59",
        tz="UTC",
        latitude=None,
        longitude=None,
        radius_km=50.0,
        specializations=("anxiety",),
        **user_fields,
    ) -> User:
        user = make_user(role="companion", **user_fields)
        with TestingSessionLocal() as session:
            session.add(
                CompanionProfile(
                    user_id=user.id,
                    specializations=list(specializations),
                    availability_start=start,
                    availability_end=end,
                    timezone=tz,
                    max_response_distance_km=radius_km,
                    verification_status="verified" if verified else "pending",
                    is_available=available,
                    latitude=latitude,
                    longitude=longitude,
                )
            )
            session.commit()
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(subject=user.email, role=user.role)}"}

    return _headers
