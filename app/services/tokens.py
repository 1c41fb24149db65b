"""Opaque token generation."""

import secrets

# 32 random bytes -> 256 bits of entropy, 43 URL-safe characters.
TOKEN_BYTES = 32


def generate_opaque_token() -> str:
    """Generate an unguessable URL-safe token for sessions, verification and reset links."""
    return secrets.token_urlsafe(TOKEN_BYTES)
