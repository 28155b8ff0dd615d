"""Shared test fixtures."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from staffing.auth.providers import VerifiedProfile
from staffing.auth.sessions import SessionIdentity, issue_session_token
from staffing.core.config import settings
from staffing.core.database import get_session
from staffing.main import app
from staffing.models import Event, User

TEST_SECRET = "test-secret-that-is-long-enough-for-hs256"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    """Configure a session signing secret for every test."""
    monkeypatch.setattr(settings, "jwt_secret", TEST_SECRET)
    return TEST_SECRET


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Create a test client with the test database session."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="profile")
def profile_fixture() -> VerifiedProfile:
    """A Google-verified staff member."""
    return VerifiedProfile(
        provider="google",
        subject="alice-123",
        email="alice@example.com",
        name="Alice Mary Smith",
        picture="https://example.com/alice.png",
    )


@pytest.fixture(name="identity")
def identity_fixture(profile: VerifiedProfile) -> SessionIdentity:
    """Session claims for the sample staff member."""
    return SessionIdentity(
        sub=profile.subject,
        provider=profile.provider,
        email=profile.email,
        name=profile.name,
        picture=profile.picture,
    )


@pytest.fixture(name="other_identity")
def other_identity_fixture() -> SessionIdentity:
    """A second staff member signed in with Apple."""
    return SessionIdentity(sub="bob-456", provider="apple", email="bob@example.com")


@pytest.fixture(name="auth_headers")
def auth_headers_fixture(profile: VerifiedProfile) -> dict:
    """Bearer header carrying a session token for the sample staff member."""
    return {"Authorization": f"Bearer {issue_session_token(profile)}"}


@pytest.fixture(name="user")
def user_fixture(session: Session, profile: VerifiedProfile) -> User:
    """Stored user row for the sample staff member."""
    user = User(
        provider=profile.provider,
        subject=profile.subject,
        email=profile.email,
        name=profile.name,
        picture=profile.picture,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture(name="sample_event")
def sample_event_fixture(session: Session) -> Event:
    """Create an event with two declared roles and no responses."""
    event = Event(
        id=uuid4(),
        event_name="Gala Dinner",
        client_name="Acme Corp",
        date="2026-11-20",
        start_time="18:00",
        end_time="23:00",
        venue_name="Grand Hall",
        city="Austin",
        state="TX",
        country="US",
        headcount_total=3,
        roles=[
            {"role": "server", "count": 2, "visibility": "public"},
            {"role": "bartender", "count": 1},
        ],
    )
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@pytest.fixture(name="legacy_event")
def legacy_event_fixture(session: Session) -> Event:
    """Create an event whose staff lists still hold bare identity keys."""
    event = Event(
        id=uuid4(),
        event_name="Legacy Launch Party",
        date="2026-10-01",
        roles=[{"role": "server", "count": "3"}],
        accepted_staff=["google:alice-123", {"user_key": "apple:carol", "role": "server"}],
        declined_staff=["apple:bob-456"],
    )
    session.add(event)
    session.commit()
    session.refresh(event)
    return event
