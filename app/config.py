"""Configuration settings for Warden."""

import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./warden.db")
    DB_TIMEOUT_SECONDS: float = float(os.getenv("DB_TIMEOUT_SECONDS", "5"))

    # Sessions
    SESSION_DURATION_HOURS: int = int(os.getenv("SESSION_DURATION_HOURS", "24"))
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "session_token")

    # Tokens
    RESET_TOKEN_TTL_MINUTES: int = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "60"))
    VERIFICATION_TOKEN_TTL_HOURS: int = int(os.getenv("VERIFICATION_TOKEN_TTL_HOURS", "48"))

    # Email
    EMAIL_PROVIDER: str = os.getenv("EMAIL_PROVIDER", "mock")
    EMAIL_FROM_ADDRESS: str = os.getenv("EMAIL_FROM_ADDRESS", "noreply@example.com")
    EMAIL_FROM_NAME: str = os.getenv("EMAIL_FROM_NAME", "Warden")
    APP_BASE_URL: str = os.getenv("APP_BASE_URL", "http://localhost:8000")
    SMTP_HOST: str = os.getenv("SMTP_HOST", "")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_USE_TLS: bool = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    @property
    def SESSION_COOKIE_SECURE(self) -> bool:
        return self.APP_ENV in ("prod", "production")

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        errors = []
        if self.EMAIL_PROVIDER == "smtp" and not self.SMTP_HOST:
            errors.append("EMAIL_PROVIDER is smtp but SMTP_HOST is not set - emails will fail to send")
        if self.EMAIL_PROVIDER not in ("mock", "smtp"):
            errors.append(f"Unknown EMAIL_PROVIDER '{self.EMAIL_PROVIDER}' - falling back to mock")
        if self.SESSION_COOKIE_SECURE is False and self.APP_ENV != "development":
            errors.append("Session cookie is not marked Secure outside development")
        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
