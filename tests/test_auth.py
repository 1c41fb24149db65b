"""Tests for authentication endpoints and flows."""

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.user import User
from tests.conftest import TEST_PASSWORD, FakeClock, FakeEmailService


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegistration:
    """Tests for user registration."""

    def test_register_api_success(self, client: TestClient, email_service: FakeEmailService):
        """Register a new user via API."""
        response = client.post(
            "/api/v1/auth/register",
            json={"email": "new@example.com", "username": "newbie", "password": TEST_PASSWORD},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "new@example.com"
        assert data["username"] == "newbie"
        assert "password_hash" not in data
        assert email_service.verification_emails[-1][0] == "new@example.com"

    def test_register_api_duplicate_email(self, client: TestClient, test_user: dict):
        """Reject duplicate email registration with a generic conflict."""
        response = client.post(
            "/api/v1/auth/register",
            json={"email": "a@x.com", "username": "someoneelse", "password": TEST_PASSWORD},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "conflict"
        assert "a@x.com" not in response.text

    def test_register_api_short_password(self, client: TestClient):
        """Policy failures are reported verbatim."""
        response = client.post(
            "/api/v1/auth/register",
            json={"email": "new@example.com", "username": "newbie", "password": "short"},
        )
        assert response.status_code == 400
        assert "at least 8" in response.json()["detail"]

    def test_register_missing_field(self, client: TestClient):
        response = client.post("/api/v1/auth/register", json={"email": "new@example.com"})
        assert response.status_code == 422


class TestEmailVerification:
    """Tests for verification endpoints."""

    def test_verify_email(self, client: TestClient, pending_user: dict):
        response = client.post("/api/v1/auth/verify-email", json={"token": pending_user["verification_token"]})
        assert response.status_code == 200
        assert response.json()["message"] == "Email verified successfully"

    def test_verify_email_wrong_token(self, client: TestClient, pending_user: dict):
        response = client.post("/api/v1/auth/verify-email", json={"token": "bogus"})
        assert response.status_code == 400
        assert "Invalid or expired" in response.json()["detail"]

    def test_resend_is_enumeration_safe(self, client: TestClient, test_user: dict):
        """Unknown and already-verified emails get byte-identical responses."""
        unknown = client.post("/api/v1/auth/resend-verification", json={"email": "nobody@x.com"})
        verified = client.post("/api/v1/auth/resend-verification", json={"email": "a@x.com"})
        assert unknown.status_code == verified.status_code == 200
        assert unknown.content == verified.content


class TestLogin:
    """Tests for user login."""

    def test_login_api_success(self, client: TestClient, test_user: dict):
        """Login via API with valid credentials sets an HttpOnly cookie."""
        response = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": TEST_PASSWORD})
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == "a@x.com"
        assert data["token"]
        set_cookie = response.headers["set-cookie"]
        assert "session_token=" in set_cookie
        assert "HttpOnly" in set_cookie

    def test_login_api_wrong_password(self, client: TestClient, test_user: dict):
        response = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "wrongpassword"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_login_api_nonexistent_email(self, client: TestClient):
        response = client.post("/api/v1/auth/login", json={"email": "nobody@x.com", "password": TEST_PASSWORD})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_login_unverified_is_forbidden(self, client: TestClient, pending_user: dict):
        response = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": TEST_PASSWORD})
        assert response.status_code == 403


class TestCurrentUser:
    """Tests for session-protected endpoints."""

    def test_me_with_bearer(self, client: TestClient, logged_in_user: dict):
        response = client.get("/api/v1/auth/me", headers=_auth(logged_in_user["token"]))
        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "alice"
        assert data["verified"] is True
        assert "password_hash" not in data

    def test_me_with_cookie(self, client: TestClient, test_user: dict):
        client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": TEST_PASSWORD})
        response = client.get("/api/v1/auth/me")
        assert response.status_code == 200

    def test_me_requires_auth(self, client: TestClient):
        response = client.get("/api/v1/auth/me")
        assert response.status_code == 401

    def test_me_expired_session(self, client: TestClient, logged_in_user: dict, clock: FakeClock):
        clock.advance(hours=25)
        response = client.get("/api/v1/auth/me", headers=_auth(logged_in_user["token"]))
        assert response.status_code == 401

    def test_update_profile_partial(self, client: TestClient, logged_in_user: dict):
        client.patch("/api/v1/auth/me", json={"last_name": "Liddell"}, headers=_auth(logged_in_user["token"]))
        response = client.patch(
            "/api/v1/auth/me", json={"first_name": "Alice"}, headers=_auth(logged_in_user["token"])
        )
        assert response.status_code == 200
        data = response.json()
        assert data["first_name"] == "Alice"
        assert data["last_name"] == "Liddell"
        assert data["full_name"] == "Alice Liddell"


class TestLogout:
    """Tests for logout."""

    def test_logout_invalidates_session(self, client: TestClient, logged_in_user: dict):
        response = client.post("/api/v1/auth/logout", headers=_auth(logged_in_user["token"]))
        assert response.status_code == 200
        assert client.get("/api/v1/auth/me", headers=_auth(logged_in_user["token"])).status_code == 401

    def test_logout_without_session(self, client: TestClient):
        """Logout is idempotent."""
        response = client.post("/api/v1/auth/logout")
        assert response.status_code == 200

    def test_logout_all(self, client: TestClient, logged_in_user: dict):
        response = client.post("/api/v1/auth/logout-all", headers=_auth(logged_in_user["token"]))
        assert response.status_code == 200
        assert client.get("/api/v1/auth/me", headers=_auth(logged_in_user["token"])).status_code == 401


class TestForgotPassword:
    """Tests for forgot password flow."""

    def test_forgot_password_existing_email(self, client: TestClient, test_user: dict, db_session: Session):
        """Request reset for existing email generates token."""
        response = client.post("/api/v1/auth/forgot-password", json={"email": "a@x.com"})
        assert response.status_code == 200

        user = db_session.query(User).filter(User.email == "a@x.com").first()
        assert user.password_reset_token is not None
        assert user.password_reset_expires_at is not None

    def test_forgot_password_is_enumeration_safe(self, client: TestClient, test_user: dict):
        """Unknown and existing emails get byte-identical responses."""
        unknown = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@x.com"})
        known = client.post("/api/v1/auth/forgot-password", json={"email": "a@x.com"})
        assert unknown.status_code == known.status_code == 200
        assert unknown.content == known.content

    def test_forgot_password_delivery_failure(
        self, client: TestClient, test_user: dict, email_service: FakeEmailService
    ):
        email_service.fail_reset = True
        response = client.post("/api/v1/auth/forgot-password", json={"email": "a@x.com"})
        assert response.status_code == 503
        assert response.json()["code"] == "delivery_failed"


class TestResetPassword:
    """Tests for password reset flow."""

    def _request_token(self, client: TestClient, email_service: FakeEmailService) -> str:
        client.post("/api/v1/auth/forgot-password", json={"email": "a@x.com"})
        return email_service.last_reset_token()

    def test_verify_reset_token(self, client: TestClient, test_user: dict, email_service: FakeEmailService):
        token = self._request_token(client, email_service)
        response = client.post("/api/v1/auth/verify-reset-token", json={"token": token})
        assert response.status_code == 200

    def test_verify_expired_reset_token(
        self, client: TestClient, test_user: dict, email_service: FakeEmailService, clock: FakeClock
    ):
        token = self._request_token(client, email_service)
        clock.advance(hours=2)
        response = client.post("/api/v1/auth/verify-reset-token", json={"token": token})
        assert response.status_code == 400

    def test_reset_with_valid_token(self, client: TestClient, logged_in_user: dict, email_service: FakeEmailService):
        """Reset changes the password and signs out existing sessions."""
        token = self._request_token(client, email_service)
        response = client.post(
            "/api/v1/auth/reset-password", json={"token": token, "new_password": "newpassword456"}
        )
        assert response.status_code == 200

        assert client.get("/api/v1/auth/me", headers=_auth(logged_in_user["token"])).status_code == 401
        old_login = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": TEST_PASSWORD})
        assert old_login.status_code == 401
        new_login = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "newpassword456"})
        assert new_login.status_code == 200

    def test_reset_with_invalid_token(self, client: TestClient):
        response = client.post(
            "/api/v1/auth/reset-password", json={"token": "totally-bogus-token", "new_password": "newpassword456"}
        )
        assert response.status_code == 400
        assert "Invalid or expired" in response.json()["detail"]

    def test_reset_clears_token(self, client: TestClient, test_user: dict, email_service: FakeEmailService):
        """After reset, the same token cannot be reused."""
        token = self._request_token(client, email_service)
        first = client.post("/api/v1/auth/reset-password", json={"token": token, "new_password": "newpassword456"})
        assert first.status_code == 200
        again = client.post("/api/v1/auth/reset-password", json={"token": token, "new_password": "anotherpass"})
        assert again.status_code == 400


class TestHealthCheck:
    """Tests for health check endpoint."""

    def test_health_check(self, client: TestClient):
        """Health check returns ok status."""
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["app"] == "warden"

    def test_security_headers(self, client: TestClient):
        response = client.get("/api/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
