"""Security utilities for the login flow and the auth gate."""

import base64
import hmac
import secrets


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token.

    Args:
        length: Number of random bytes to generate (default 32)

    Returns:
        URL-safe base64 encoded token
    """
    return (
        base64.urlsafe_b64encode(secrets.token_bytes(length))
        .decode("utf-8")
        .rstrip("=")
    )


def generate_state() -> str:
    """Generate a state parameter for CSRF protection (256 bits of entropy)."""
    return generate_secure_token(32)


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier (43 characters)."""
    return generate_secure_token(32)


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


def tokens_match(presented: str | None, expected: str | None) -> bool:
    """Constant-time comparison that never matches an unset or empty secret."""
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))
