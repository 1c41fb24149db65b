"""Login sessions: credential checks, issuance, revocation and resolution."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.errors import AuthenticationError, ForbiddenError, StoreError, UnauthenticatedError, UnauthorizedError
from app.services.accounts import Identity
from app.services.credentials import burn_password_check, verify_password
from app.stores.base import Deadline
from app.stores.sessions import SessionStore
from app.stores.users import UserStore

logger = logging.getLogger("warden")

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


@dataclass
class LoginResult:
    """Result of a successful login."""

    token: str
    expires_at: datetime
    user: Identity


class SessionService:
    """Handles login, logout and current-user resolution."""

    def __init__(self, settings: Settings | None = None, clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self.settings = settings or get_settings()
        self.clock = clock

    @property
    def session_duration(self) -> timedelta:
        return timedelta(hours=self.settings.SESSION_DURATION_HOURS)

    def _deadline(self) -> Deadline:
        return Deadline(self.settings.DB_TIMEOUT_SECONDS)

    def login(self, db: Session, email: str, password: str) -> LoginResult:
        """Authenticate by email and password and open a new session.

        Checks run from least to most revealing: unknown email and wrong password
        produce the same error; only a caller holding valid credentials learns
        that the account is unverified or inactive.
        """
        email = (email or "").strip()
        password = password or ""
        deadline = self._deadline()
        users = UserStore(db, deadline)

        user = users.find_by_email(email) if email else None
        if user is None:
            burn_password_check(password)
            logger.warning("Login attempt with unknown email %s", email)
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

        try:
            verify_password(password, user.password_hash)
        except AuthenticationError:
            logger.warning("Login attempt with invalid password for user id=%s", user.id)
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE) from None

        if not user.is_verified:
            logger.warning("Login attempt with unverified email for user id=%s", user.id)
            raise ForbiddenError("Please verify your email address before logging in")
        if not user.is_active:
            logger.warning("Login attempt for non-active user id=%s status=%s", user.id, user.status)
            raise ForbiddenError("This account is not active")

        now = self.clock()
        session = SessionStore(db, deadline).create(user.id, self.session_duration, now)
        result = LoginResult(token=session.token, expires_at=session.expires_at, user=Identity.from_user(user))

        try:
            users.touch_last_login(user, now)
        except StoreError as exc:
            logger.warning("Failed to update last login for user id=%s: %s", result.user.user_id, exc)
        else:
            result.user.last_login_at = now

        logger.info("User logged in id=%s", result.user.user_id)
        return result

    def logout(self, db: Session, token: str | None) -> None:
        """Delete the session if it exists. Never fails from the caller's side."""
        if not token:
            return
        try:
            deleted = SessionStore(db, self._deadline()).delete_by_token(token)
        except StoreError as exc:
            logger.error("Failed to destroy session on logout: %s", exc)
            return
        if deleted:
            logger.info("User logged out")

    def logout_everywhere(self, db: Session, user_id: int) -> int:
        """Delete every session the user owns. Returns how many were removed."""
        deleted = SessionStore(db, self._deadline()).delete_all_for_user(user_id)
        logger.info("All sessions revoked for user id=%s (%d)", user_id, deleted)
        return deleted

    def resolve_current_user(self, db: Session, token: str | None) -> Identity:
        """Return the identity behind a session token, or raise UnauthenticatedError."""
        if not token:
            raise UnauthenticatedError()

        deadline = self._deadline()
        session = SessionStore(db, deadline).find_by_token(token)
        if session is None or not session.is_valid_at(self.clock()):
            raise UnauthenticatedError("Invalid or expired session")

        user = UserStore(db, deadline).find_by_id(session.user_id)
        if user is None:
            raise UnauthenticatedError("Invalid or expired session", detail=f"session owner id={session.user_id} missing")
        return Identity.from_user(user)

    def cleanup_expired_sessions(self, db: Session) -> int:
        """Purge sessions whose expiry has passed."""
        deleted = SessionStore(db, self._deadline()).delete_expired(self.clock())
        if deleted:
            logger.info("Removed %d expired session(s)", deleted)
        return deleted


_session_service: SessionService | None = None


def get_session_service() -> SessionService:
    """Get singleton session service instance."""
    global _session_service
    if _session_service is None:
        _session_service = SessionService()
    return _session_service
