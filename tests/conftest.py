"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.errors import DeliveryError
from app.models.session import UserSession  # noqa: F401
from app.models.user import User  # noqa: F401
from app.services.accounts import AccountService, get_account_service
from app.services.sessions import SessionService, get_session_service

TEST_PASSWORD = "longenough1"


class FakeClock:
    """Controllable replacement for datetime.utcnow."""

    def __init__(self) -> None:
        self.now = datetime.utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeEmailService:
    """Records outgoing emails instead of sending them."""

    def __init__(self) -> None:
        self.verification_emails: list[tuple[str, str]] = []
        self.reset_emails: list[tuple[str, str]] = []
        self.fail_verification = False
        self.fail_reset = False

    def send_verification_email(self, to: str, token: str) -> None:
        if self.fail_verification:
            raise DeliveryError(detail="mail relay down")
        self.verification_emails.append((to, token))

    def send_password_reset_email(self, to: str, token: str) -> None:
        if self.fail_reset:
            raise DeliveryError(detail="mail relay down")
        self.reset_emails.append((to, token))

    def last_verification_token(self) -> str:
        return self.verification_emails[-1][1]

    def last_reset_token(self) -> str:
        return self.reset_emails[-1][1]


@pytest.fixture(name="db_session")
def db_session_fixture():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="email_service")
def email_service_fixture() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture(name="accounts")
def accounts_fixture(email_service: FakeEmailService, clock: FakeClock) -> AccountService:
    return AccountService(email_service=email_service, clock=clock)


@pytest.fixture(name="sessions")
def sessions_fixture(clock: FakeClock) -> SessionService:
    return SessionService(clock=clock)


@pytest.fixture(name="client")
def client_fixture(db_session: Session, accounts: AccountService, sessions: SessionService):
    """Create a test client with overridden DB and service dependencies and disabled rate limiting."""
    from app.rate_limit import limiter
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_account_service] = lambda: accounts
    app.dependency_overrides[get_session_service] = lambda: sessions
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture(name="pending_user")
def pending_user_fixture(db_session: Session, accounts: AccountService, email_service: FakeEmailService):
    """Register a user who has not verified their email yet."""
    identity = accounts.register(db_session, "a@x.com", "alice", TEST_PASSWORD)
    return {
        "user_id": identity.user_id,
        "email": identity.email,
        "username": identity.username,
        "password": TEST_PASSWORD,
        "verification_token": email_service.last_verification_token(),
    }


@pytest.fixture(name="test_user")
def test_user_fixture(db_session: Session, accounts: AccountService, pending_user: dict):
    """A registered and verified user."""
    accounts.verify_email(db_session, pending_user["verification_token"])
    return pending_user


@pytest.fixture(name="logged_in_user")
def logged_in_user_fixture(db_session: Session, sessions: SessionService, test_user: dict):
    """A verified user with an open session; adds the session token."""
    result = sessions.login(db_session, test_user["email"], test_user["password"])
    return {**test_user, "token": result.token}
