"""Password hashing, verification and policy."""

from functools import lru_cache

import bcrypt

from app.errors import AuthenticationError, ProcessingError, ValidationError

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

# bcrypt only looks at the first 72 bytes; newer releases reject longer input outright.
BCRYPT_MAX_BYTES = 72


def _encode(plaintext: str) -> bytes:
    return plaintext.encode("utf-8")[:BCRYPT_MAX_BYTES]


def validate_password_policy(plaintext: str) -> None:
    """Raise ValidationError with a human-readable reason if the password is out of policy."""
    if plaintext is None or len(plaintext) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(plaintext) > MAX_PASSWORD_LENGTH:
        raise ValidationError(f"Password must not exceed {MAX_PASSWORD_LENGTH} characters")


def hash_password(plaintext: str) -> str:
    """Hash a password with a fresh salt.

    The result embeds algorithm, cost and salt (``$2b$12$...``), so verifying it
    later needs no outside configuration.
    """
    try:
        return bcrypt.hashpw(_encode(plaintext), bcrypt.gensalt()).decode("utf-8")
    except (ValueError, OSError) as exc:
        raise ProcessingError("Failed to process password", detail=str(exc)) from exc


def verify_password(plaintext: str, password_hash: str) -> None:
    """Raise AuthenticationError unless ``plaintext`` matches ``password_hash``."""
    try:
        matched = bcrypt.checkpw(_encode(plaintext), password_hash.encode("utf-8"))
    except ValueError as exc:
        raise AuthenticationError(detail="stored password hash is malformed") from exc
    if not matched:
        raise AuthenticationError()


@lru_cache
def _dummy_hash() -> bytes:
    return bcrypt.hashpw(b"warden-timing-equalizer", bcrypt.gensalt())


def burn_password_check(plaintext: str) -> None:
    """Spend one bcrypt verification so unknown accounts cost as much as wrong passwords."""
    bcrypt.checkpw(_encode(plaintext), _dummy_hash())
