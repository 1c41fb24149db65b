"""Account lifecycle: registration, email verification, password reset and profile updates."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.errors import (
    ConflictError,
    DeliveryError,
    InvalidTokenError,
    StoreError,
    UnauthenticatedError,
    ValidationError,
)
from app.models.user import User
from app.services.credentials import hash_password, validate_password_policy
from app.services.email import EmailService, get_email_service
from app.services.tokens import generate_opaque_token
from app.stores.base import Deadline
from app.stores.sessions import SessionStore
from app.stores.users import UserStore

logger = logging.getLogger("warden")

# Identical for every outcome so responses cannot be used to probe for accounts.
RESEND_VERIFICATION_MESSAGE = "If that email exists and is not verified, a verification email has been sent."
PASSWORD_RESET_MESSAGE = "If that email exists, a password reset link has been sent."

MAX_EMAIL_LENGTH = 255
MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 50
MAX_NAME_LENGTH = 50

_email_adapter = TypeAdapter(EmailStr)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


@dataclass
class Identity:
    """Public view of a user. Never carries the password hash or any token."""

    user_id: int
    email: str
    username: str
    first_name: str | None
    last_name: str | None
    status: str
    verified_at: datetime | None
    created_at: datetime | None = None
    last_login_at: datetime | None = None

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None

    @property
    def full_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else self.username

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(
            user_id=user.id,
            email=user.email,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            status=user.status,
            verified_at=user.verified_at,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


def _validate_email(email: str) -> None:
    if len(email) > MAX_EMAIL_LENGTH:
        raise ValidationError(f"Email must not exceed {MAX_EMAIL_LENGTH} characters")
    try:
        _email_adapter.validate_python(email)
    except PydanticValidationError as exc:
        raise ValidationError("Email address is not valid", detail=str(exc.errors()[0]["msg"])) from None


def _validate_username(username: str) -> None:
    if not MIN_USERNAME_LENGTH <= len(username) <= MAX_USERNAME_LENGTH:
        raise ValidationError(
            f"Username must be between {MIN_USERNAME_LENGTH} and {MAX_USERNAME_LENGTH} characters"
        )


def _clean_name(value: str | None, label: str) -> str | None:
    """Strip a name field; blank becomes None."""
    if value is None:
        return None
    value = value.strip()
    if len(value) > MAX_NAME_LENGTH:
        raise ValidationError(f"{label} must not exceed {MAX_NAME_LENGTH} characters")
    return value or None


class AccountService:
    """Orchestrates the account lifecycle against the user store and email gateway."""

    def __init__(
        self,
        email_service: EmailService | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._email_service = email_service
        self.settings = settings or get_settings()
        self.clock = clock

    @property
    def email_service(self) -> EmailService:
        if self._email_service is None:
            self._email_service = get_email_service()
        return self._email_service

    def _deadline(self) -> Deadline:
        return Deadline(self.settings.DB_TIMEOUT_SECONDS)

    def _verification_expiry(self, now: datetime) -> datetime | None:
        hours = self.settings.VERIFICATION_TOKEN_TTL_HOURS
        return now + timedelta(hours=hours) if hours > 0 else None

    def _send_verification(self, email: str, token: str) -> None:
        """Delivery failures are logged only; the user can always ask for a resend."""
        try:
            self.email_service.send_verification_email(email, token)
        except DeliveryError as exc:
            logger.error("Failed to send verification email to %s: %s", email, exc.detail)

    # --- Registration & verification ---

    def register(
        self,
        db: Session,
        email: str,
        username: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> Identity:
        """Create a pending account and send its verification email."""
        email = (email or "").strip()
        username = (username or "").strip()
        if not email or not username or not password:
            raise ValidationError("Email, username, and password are required")
        _validate_email(email)
        _validate_username(username)
        first_name = _clean_name(first_name, "First name")
        last_name = _clean_name(last_name, "Last name")
        validate_password_policy(password)

        password_hash = hash_password(password)
        token = generate_opaque_token()
        users = UserStore(db, self._deadline())
        try:
            user = users.create(
                email=email,
                username=username,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
                verification_token=token,
                verification_expires_at=self._verification_expiry(self.clock()),
            )
        except ConflictError as exc:
            logger.warning("Registration rejected, %s", exc.detail)
            raise ConflictError() from None

        self._send_verification(user.email, token)
        logger.info("User registered id=%s username=%s", user.id, user.username)
        return Identity.from_user(user)

    def verify_email(self, db: Session, token: str) -> Identity:
        """Consume a verification token. Unknown, consumed and expired tokens look the same."""
        if not token:
            raise InvalidTokenError("Invalid or expired verification token")

        users = UserStore(db, self._deadline())
        user = users.find_by_verification_token(token)
        now = self.clock()
        if user is None:
            logger.warning("Email verification attempted with unknown token")
            raise InvalidTokenError("Invalid or expired verification token")
        if user.verification_token_expires_at is not None and user.verification_token_expires_at <= now:
            logger.warning("Email verification attempted with expired token for user id=%s", user.id)
            raise InvalidTokenError("Invalid or expired verification token")

        if not users.mark_verified(user, token, now):
            logger.warning("Verification token for user id=%s was consumed concurrently", user.id)
            raise InvalidTokenError("Invalid or expired verification token")
        logger.info("User email verified id=%s", user.id)
        return Identity.from_user(user)

    def resend_verification(self, db: Session, email: str) -> str:
        """Reissue a verification token for an unverified account.

        Returns the same message whether or not anything was sent.
        """
        email = (email or "").strip()
        users = UserStore(db, self._deadline())
        user = users.find_by_email(email) if email else None
        if user is None:
            logger.warning("Verification resend requested for unknown email %s", email)
            return RESEND_VERIFICATION_MESSAGE
        if user.is_verified:
            logger.info("Verification resend requested for already verified user id=%s", user.id)
            return RESEND_VERIFICATION_MESSAGE

        token = generate_opaque_token()
        users.set_verification_token(user, token, self._verification_expiry(self.clock()))
        self._send_verification(user.email, token)
        logger.info("Verification email reissued for user id=%s", user.id)
        return RESEND_VERIFICATION_MESSAGE

    # --- Password reset ---

    def request_password_reset(self, db: Session, email: str) -> str:
        """Issue a one-hour reset token and email it.

        Unknown emails get the same message. A failed send is raised, since the
        emailed link is the only way to use the token.
        """
        email = (email or "").strip()
        users = UserStore(db, self._deadline())
        user = users.find_by_email(email) if email else None
        if user is None:
            logger.warning("Password reset requested for unknown email %s", email)
            return PASSWORD_RESET_MESSAGE

        token = generate_opaque_token()
        expires_at = self.clock() + timedelta(minutes=self.settings.RESET_TOKEN_TTL_MINUTES)
        users.set_reset_token(user, token, expires_at)

        try:
            self.email_service.send_password_reset_email(user.email, token)
        except DeliveryError as exc:
            logger.error("Failed to send password reset email for user id=%s: %s", user.id, exc.detail)
            raise DeliveryError("Failed to send password reset email. Please try again later.") from exc

        logger.info("Password reset email sent for user id=%s", user.id)
        return PASSWORD_RESET_MESSAGE

    def _find_live_reset_user(self, users: UserStore, token: str) -> User:
        if not token:
            raise InvalidTokenError("Invalid or expired reset token")
        user = users.find_by_reset_token(token)
        if user is None:
            logger.warning("Password reset token not found")
            raise InvalidTokenError("Invalid or expired reset token")
        if user.password_reset_expires_at is None or user.password_reset_expires_at <= self.clock():
            logger.warning("Password reset token expired for user id=%s", user.id)
            raise InvalidTokenError("Invalid or expired reset token")
        return user

    def verify_reset_token(self, db: Session, token: str) -> None:
        """Check a reset token without consuming it."""
        users = UserStore(db, self._deadline())
        user = self._find_live_reset_user(users, token)
        logger.info("Password reset token verified for user id=%s", user.id)

    def reset_password(self, db: Session, token: str, new_password: str) -> Identity:
        """Set a new password, consume the token and sign the user out everywhere."""
        validate_password_policy(new_password)

        deadline = self._deadline()
        users = UserStore(db, deadline)
        user = self._find_live_reset_user(users, token)
        if not users.reset_password(user, token, hash_password(new_password)):
            logger.warning("Password reset token for user id=%s was consumed concurrently", user.id)
            raise InvalidTokenError("Invalid or expired reset token")
        identity = Identity.from_user(user)

        # Password is already changed at this point; revocation is best effort.
        try:
            revoked = SessionStore(db, deadline).delete_all_for_user(identity.user_id)
        except StoreError as exc:
            logger.warning(
                "Failed to invalidate sessions after password reset for user id=%s: %s", identity.user_id, exc
            )
        else:
            logger.info("Password reset for user id=%s, %d session(s) revoked", identity.user_id, revoked)
        return identity

    # --- Profile ---

    def update_profile(
        self,
        db: Session,
        user_id: int,
        first_name: str | None | _Unset = UNSET,
        last_name: str | None | _Unset = UNSET,
    ) -> Identity:
        """Change only the supplied name fields; ``None`` or blank clears a field."""
        changes: dict[str, str | None] = {}
        if not isinstance(first_name, _Unset):
            changes["first_name"] = _clean_name(first_name, "First name")
        if not isinstance(last_name, _Unset):
            changes["last_name"] = _clean_name(last_name, "Last name")

        users = UserStore(db, self._deadline())
        user = users.find_by_id(user_id)
        if user is None:
            raise UnauthenticatedError(detail=f"user id={user_id} no longer exists")
        if changes:
            user = users.update_profile(user, changes)
            logger.info("Profile updated for user id=%s fields=%s", user.id, sorted(changes))
        return Identity.from_user(user)


_account_service: AccountService | None = None


def get_account_service() -> AccountService:
    """Get singleton account service instance."""
    global _account_service
    if _account_service is None:
        _account_service = AccountService()
    return _account_service
