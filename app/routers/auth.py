"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import (
    CurrentUser,
    clear_session_cookie,
    get_current_user,
    get_session_token,
    set_session_cookie,
)
from app.rate_limit import limiter
from app.schemas.auth import (
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenRequest,
    UpdateProfileRequest,
    UserResponse,
)
from app.services.accounts import AccountService, Identity, get_account_service
from app.services.sessions import SessionService, get_session_service

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _user_response(identity: Identity) -> UserResponse:
    return UserResponse(
        id=identity.user_id,
        email=identity.email,
        username=identity.username,
        first_name=identity.first_name,
        last_name=identity.last_name,
        full_name=identity.full_name,
        status=identity.status,
        verified=identity.is_verified,
        verified_at=identity.verified_at,
        last_login_at=identity.last_login_at,
    )


# --- Registration & verification ---


@router.post("/register", response_model=RegisterResponse, status_code=201)
@limiter.limit("5/minute")
def register(
    request: Request,
    body: RegisterRequest,
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> RegisterResponse:
    """Register a new account. A verification email is sent to the address."""
    identity = accounts.register(
        db,
        email=body.email,
        username=body.username,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return RegisterResponse(id=identity.user_id, email=identity.email, username=identity.username)


@router.post("/verify-email", response_model=MessageResponse)
@limiter.limit("10/minute")
def verify_email(
    request: Request,
    body: TokenRequest,
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Confirm an email address using the emailed token."""
    accounts.verify_email(db, body.token)
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse)
@limiter.limit("3/minute")
def resend_verification(
    request: Request,
    body: EmailRequest,
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Send a fresh verification email if the account exists and is unverified."""
    return MessageResponse(message=accounts.resend_verification(db, body.email))


# --- Sessions ---


@router.post("/login", response_model=LoginResponse)
@limiter.limit("10/minute")
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
) -> LoginResponse:
    """Authenticate and open a session. The token is also set as an HttpOnly cookie."""
    result = sessions.login(db, body.email, body.password)
    set_session_cookie(response, result.token)
    return LoginResponse(token=result.token, expires_at=result.expires_at, user=_user_response(result.user))


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
) -> MessageResponse:
    """End the current session. Succeeds even without a session."""
    sessions.logout(db, get_session_token(request))
    clear_session_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    sessions: SessionService = Depends(get_session_service),
) -> MessageResponse:
    """End every session of the current user."""
    sessions.logout_everywhere(db, user.user_id)
    clear_session_cookie(response)
    return MessageResponse(message="Logged out of all sessions")


@router.get("/me", response_model=UserResponse)
def me(user: CurrentUser = Depends(get_current_user)) -> UserResponse:
    """Return the current user."""
    return _user_response(user)


@router.patch("/me", response_model=UserResponse)
def update_me(
    body: UpdateProfileRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> UserResponse:
    """Update the current user's name. Omitted fields are left unchanged."""
    changes = body.model_dump(exclude_unset=True)
    identity = accounts.update_profile(db, user.user_id, **changes)
    return _user_response(identity)


# --- Password reset ---


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
def forgot_password(
    request: Request,
    body: EmailRequest,
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Request a password reset link."""
    return MessageResponse(message=accounts.request_password_reset(db, body.email))


@router.post("/verify-reset-token", response_model=MessageResponse)
@limiter.limit("10/minute")
def verify_reset_token(
    request: Request,
    body: TokenRequest,
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Check that a reset token is still usable without consuming it."""
    accounts.verify_reset_token(db, body.token)
    return MessageResponse(message="Reset token is valid")


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit("5/minute")
def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Set a new password with a valid reset token. All sessions are signed out."""
    accounts.reset_password(db, body.token, body.new_password)
    return MessageResponse(message="Password reset successfully")
