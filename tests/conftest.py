"""
FieldTrack - Test Configuration

Pytest fixtures shared by the suite.
Provides an in-memory database, a configured app/client, identities
and a mailer double.
"""

from types import SimpleNamespace
from typing import Generator
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from fieldtrack.app import create_app
from fieldtrack.auth import store
from fieldtrack.auth.models import Region, Role, Transport, User
from fieldtrack.auth.sessions import ActivityTracker
from fieldtrack.auth.tokens import TokenIssuer
from fieldtrack.config import Settings
from fieldtrack.database import get_engine, get_session_factory, init_db
from fieldtrack.mailer import MailDeliveryError


ADMIN_EMAIL = "admin@test.com"
ADMIN_PASSWORD = "AdminPass123"
INSPECTOR_EMAIL = "inspector@test.com"
INSPECTOR_PASSWORD = "InspectorPass123"
ENGINEER_EMAIL = "engineer@test.com"
ENGINEER_PASSWORD = "EngineerPass123"


class FakeMailer:
    """Records outgoing mail instead of talking to a relay."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def _record(self, kind, **details):
        if self.fail:
            raise MailDeliveryError("relay unavailable")
        self.sent.append(SimpleNamespace(kind=kind, **details))

    def send_password_reset(self, to_email, name, token):
        self._record("password_reset", to=to_email, name=name, token=token)

    def send_report(self, recipients, month, year, filename, content):
        self._record("report", to=list(recipients), month=month, year=year, filename=filename, content=content)

    def send_inactivity_notice(self, to_email, name, months):
        self._record("inactivity", to=to_email, name=name, months=months)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        ACCESS_TOKEN_SECRET="test-access-secret",
        REFRESH_TOKEN_SECRET="test-refresh-secret",
        DEFAULT_ADMIN_EMAIL=ADMIN_EMAIL,
        DEFAULT_ADMIN_PASSWORD=ADMIN_PASSWORD,
        DEFAULT_ADMIN_NAME="Test Admin",
        SCHEDULER_ENABLED=False,
        REPORT_RECIPIENTS=["reports@test.com"],
        LOG_LEVEL="WARNING",
        RATE_LIMIT="1000/minute",
    )


@pytest.fixture
def test_engine():
    """Fresh in-memory database per test."""
    engine = get_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return get_session_factory(test_engine)


@pytest.fixture
def issuer(test_settings) -> TokenIssuer:
    return TokenIssuer(test_settings)


@pytest.fixture
def tracker(test_settings) -> ActivityTracker:
    return ActivityTracker(test_settings)


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def client(test_settings, test_engine, mailer) -> Generator[TestClient, None, None]:
    """Test client; startup seeds the admin account."""
    app = create_app(test_settings, engine=test_engine)
    with TestClient(app) as c:
        app.state.mailer = mailer
        yield c


@pytest.fixture
def db_session(client, test_engine) -> Generator[Session, None, None]:
    with Session(test_engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def admin(db_session) -> User:
    """The admin seeded at startup."""
    return store.get_user_by_email(db_session, ADMIN_EMAIL)


@pytest.fixture
def inspector(db_session) -> User:
    return store.create_user(
        db_session,
        name="Ana Inspector",
        email=INSPECTOR_EMAIL,
        password=INSPECTOR_PASSWORD,
        region=Region.CALDAS,
        transport=Transport.MOTORCYCLE,
        role=Role.INSPECTOR,
    )


@pytest.fixture
def engineer(db_session) -> User:
    return store.create_user(
        db_session,
        name="Luis Engineer",
        email=ENGINEER_EMAIL,
        password=ENGINEER_PASSWORD,
        region=Region.RISARALDA,
        transport=Transport.CAR,
        role=Role.ENGINEER,
    )


@pytest.fixture
def inactive_user(db_session) -> User:
    return store.create_user(
        db_session,
        name="Inactive User",
        email="inactive@test.com",
        password="InactivePass123",
        region=Region.QUINDIO,
        transport=Transport.CAR,
        is_active=False,
    )


def make_identity(role: Role = Role.INSPECTOR, token_generation: int = 0):
    """Plain identity object for token tests that need no database."""
    return SimpleNamespace(
        id=uuid4(),
        email="someone@test.com",
        role=role,
        name="Someone",
        token_generation=token_generation,
    )


def login_user(client: TestClient, email: str, password: str) -> dict:
    """Helper function to login and return the response body."""
    response = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    return response.json() if response.status_code == 200 else None


def auth_headers(access_token: str) -> dict:
    return {"Authorization": f"Bearer {access_token}"}


def login_headers(client: TestClient, email: str, password: str) -> dict:
    return auth_headers(login_user(client, email, password)["access_token"])


def movement_payload(**overrides) -> dict:
    """A valid completed trip; override or drop keys per test."""
    payload = {
        "start_location": {"latitude": 5.0703, "longitude": -75.5138, "timestamp": "2024-05-10T08:00:00"},
        "end_location": {"latitude": 5.0612, "longitude": -75.4907, "timestamp": "2024-05-10T08:45:00"},
        "distance_km": 12.5,
        "avg_speed_kmh": 30.0,
        "max_speed_kmh": 62.0,
        "duration_minutes": 45,
        "date": "2024-05-10T08:00:00",
        "region": "Caldas",
    }
    payload.update(overrides)
    return payload
