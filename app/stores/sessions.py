"""Session store: durable login sessions keyed by opaque token."""

from datetime import datetime, timedelta

from app.models.session import UserSession
from app.services.tokens import generate_opaque_token
from app.stores.base import BaseStore


class SessionStore(BaseStore):
    """Create, look up and delete sessions."""

    def create(self, user_id: int, duration: timedelta, now: datetime) -> UserSession:
        session = UserSession(
            user_id=user_id,
            token=generate_opaque_token(),
            expires_at=now + duration,
            created_at=now,
        )
        with self._guard("create session"):
            self.db.add(session)
            self.db.commit()
            self.db.refresh(session)
        return session

    def find_by_token(self, token: str) -> UserSession | None:
        """Return the session row regardless of expiry; callers decide validity."""
        with self._guard("find session by token"):
            return self.db.query(UserSession).filter(UserSession.token == token).first()

    def delete_by_token(self, token: str) -> int:
        with self._guard("delete session"):
            deleted = self.db.query(UserSession).filter(UserSession.token == token).delete()
            self.db.commit()
        return deleted

    def delete_all_for_user(self, user_id: int) -> int:
        with self._guard("delete user sessions"):
            deleted = self.db.query(UserSession).filter(UserSession.user_id == user_id).delete()
            self.db.commit()
        return deleted

    def delete_expired(self, now: datetime) -> int:
        with self._guard("delete expired sessions"):
            deleted = self.db.query(UserSession).filter(UserSession.expires_at <= now).delete()
            self.db.commit()
        return deleted
