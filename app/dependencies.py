"""Authentication dependencies for FastAPI routes."""

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.services.accounts import Identity
from app.services.sessions import SessionService, get_session_service

# Resolved identity threaded into protected routes via Depends(get_current_user).
CurrentUser = Identity


def get_session_token(request: Request) -> str | None:
    """Read the session token from the Authorization header, falling back to the cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(get_settings().SESSION_COOKIE_NAME)


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
) -> CurrentUser:
    """Resolve the caller's session. Raises UnauthenticatedError (401) if invalid."""
    return sessions.resolve_current_user(db, get_session_token(request))


def set_session_cookie(response: Response, token: str) -> None:
    """Set the session cookie. HttpOnly always, Secure in production."""
    settings = get_settings()
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
        max_age=settings.SESSION_DURATION_HOURS * 60 * 60,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    """Clear the session cookie."""
    settings = get_settings()
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
        path="/",
    )
