"""Outbound email for verification and password reset links.

Two providers: ``mock`` logs the link instead of sending it (development and
tests), ``smtp`` delivers through an SMTP relay. Both raise DeliveryError when a
message cannot be handed off; callers decide whether that is fatal.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from app.config import Settings, get_settings
from app.errors import DeliveryError

logger = logging.getLogger("warden")


class EmailService(Protocol):
    def send_verification_email(self, to: str, token: str) -> None: ...

    def send_password_reset_email(self, to: str, token: str) -> None: ...


def verification_url(settings: Settings, token: str) -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}/verify-email?token={token}"


def reset_url(settings: Settings, token: str) -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}/reset-password?token={token}"


class MockEmailService:
    """Logs emails to the server console instead of sending them."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def send_verification_email(self, to: str, token: str) -> None:
        logger.info("MOCK EMAIL verification to=%s url=%s", to, verification_url(self.settings, token))

    def send_password_reset_email(self, to: str, token: str) -> None:
        logger.info("MOCK EMAIL password reset to=%s url=%s", to, reset_url(self.settings, token))


class SmtpEmailService:
    """Sends emails through an SMTP relay."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def send_verification_email(self, to: str, token: str) -> None:
        url = verification_url(self.settings, token)
        self._send(
            to,
            subject="Verify your email address",
            text_body=f"Please verify your email address by opening this link: {url}",
            html_body=f'<p>Please verify your email address.</p><p><a href="{url}">Verify email</a></p>',
        )

    def send_password_reset_email(self, to: str, token: str) -> None:
        url = reset_url(self.settings, token)
        self._send(
            to,
            subject="Reset your password",
            text_body=(
                f"Reset your password by opening this link: {url}\n\n"
                f"The link expires in {self.settings.RESET_TOKEN_TTL_MINUTES} minutes. "
                "If you did not request a reset, you can ignore this email."
            ),
            html_body=(
                f'<p>Reset your password by following <a href="{url}">this link</a>.</p>'
                f"<p>The link expires in {self.settings.RESET_TOKEN_TTL_MINUTES} minutes.</p>"
            ),
        )

    def _send(self, to: str, subject: str, text_body: str, html_body: str) -> None:
        settings = self.settings
        if not settings.SMTP_HOST:
            raise DeliveryError(detail="SMTP_HOST is not configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_ADDRESS}>"
        msg["To"] = to
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as server:
                if settings.SMTP_USE_TLS:
                    server.starttls()
                if settings.SMTP_USERNAME:
                    server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                server.sendmail(settings.EMAIL_FROM_ADDRESS, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(detail=f"SMTP send to {to} failed: {exc}") from exc

        logger.info("Email '%s' sent to %s", subject, to)


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    """Get singleton email service for the configured provider."""
    global _email_service
    if _email_service is None:
        settings = get_settings()
        if settings.EMAIL_PROVIDER == "smtp":
            _email_service = SmtpEmailService(settings)
        else:
            _email_service = MockEmailService(settings)
    return _email_service
