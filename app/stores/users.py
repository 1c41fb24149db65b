"""Account store: durable user records."""

from datetime import datetime

from sqlalchemy import case, update
from sqlalchemy import exc as sa_exc

from app.errors import ConflictError
from app.models.user import USER_STATUS_ACTIVE, USER_STATUS_PENDING, User
from app.stores.base import BaseStore


class UserStore(BaseStore):
    """Create, read and field-level updates for users.

    Uniqueness of email and username is enforced by the database; ``create``
    turns the resulting IntegrityError into a ConflictError whose ``detail``
    names the colliding field.
    """

    def create(
        self,
        email: str,
        username: str,
        password_hash: str,
        first_name: str | None = None,
        last_name: str | None = None,
        verification_token: str | None = None,
        verification_expires_at: datetime | None = None,
    ) -> User:
        user = User(
            email=email,
            username=username,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            status=USER_STATUS_PENDING,
            verification_token=verification_token,
            verification_token_expires_at=verification_expires_at,
        )
        try:
            with self._guard("create user"):
                self.db.add(user)
                self.db.commit()
                self.db.refresh(user)
        except sa_exc.IntegrityError as exc:
            raise ConflictError(detail=self._conflicting_field(email, username)) from exc
        return user

    def _conflicting_field(self, email: str, username: str) -> str:
        if self.find_by_email(email) is not None:
            return f"email already taken: {email}"
        if self.find_by_username(username) is not None:
            return f"username already taken: {username}"
        return "unique constraint violated"

    def find_by_id(self, user_id: int) -> User | None:
        with self._guard("find user by id"):
            return self.db.query(User).filter(User.id == user_id).first()

    def find_by_email(self, email: str) -> User | None:
        with self._guard("find user by email"):
            return self.db.query(User).filter(User.email == email).first()

    def find_by_username(self, username: str) -> User | None:
        with self._guard("find user by username"):
            return self.db.query(User).filter(User.username == username).first()

    def find_by_verification_token(self, token: str) -> User | None:
        """Only unverified users can match; a consumed token is already cleared."""
        with self._guard("find user by verification token"):
            return (
                self.db.query(User)
                .filter(User.verification_token == token, User.verified_at.is_(None))
                .first()
            )

    def find_by_reset_token(self, token: str) -> User | None:
        with self._guard("find user by reset token"):
            return self.db.query(User).filter(User.password_reset_token == token).first()

    def update_profile(self, user: User, fields: dict[str, str | None]) -> User:
        with self._guard("update user profile"):
            for name, value in fields.items():
                setattr(user, name, value)
            self.db.commit()
            self.db.refresh(user)
        return user

    def set_verification_token(self, user: User, token: str, expires_at: datetime | None) -> None:
        """Overwrite any outstanding verification token."""
        with self._guard("set verification token"):
            user.verification_token = token
            user.verification_token_expires_at = expires_at
            self.db.commit()

    def mark_verified(self, user: User, token: str, verified_at: datetime) -> bool:
        """Consume ``token`` and activate a pending user.

        The UPDATE only matches while the token is still outstanding, so of two
        racing calls at most one succeeds. Returns False if the token was gone.
        """
        stmt = (
            update(User)
            .where(User.id == user.id, User.verification_token == token, User.verified_at.is_(None))
            .values(
                verified_at=verified_at,
                verification_token=None,
                verification_token_expires_at=None,
                status=case((User.status == USER_STATUS_PENDING, USER_STATUS_ACTIVE), else_=User.status),
            )
            .execution_options(synchronize_session=False)
        )
        with self._guard("mark user verified"):
            matched = self.db.execute(stmt).rowcount
            self.db.commit()
            self.db.refresh(user)
        return matched > 0

    def set_reset_token(self, user: User, token: str, expires_at: datetime) -> None:
        """Write token and expiry together in one UPDATE, overwriting any previous pair."""
        with self._guard("set password reset token"):
            user.password_reset_token = token
            user.password_reset_expires_at = expires_at
            self.db.commit()

    def reset_password(self, user: User, token: str, password_hash: str) -> bool:
        """Set a new hash and consume ``token`` in one conditional UPDATE.

        Returns False if the token was already consumed or replaced.
        """
        stmt = (
            update(User)
            .where(User.id == user.id, User.password_reset_token == token)
            .values(password_hash=password_hash, password_reset_token=None, password_reset_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        with self._guard("reset password"):
            matched = self.db.execute(stmt).rowcount
            self.db.commit()
        return matched > 0

    def touch_last_login(self, user: User, logged_in_at: datetime) -> None:
        with self._guard("update last login"):
            user.last_login_at = logged_in_at
            self.db.commit()
