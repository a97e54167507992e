"""Shared-secret helpers for the hook endpoint and paired client tokens."""

import hmac
import secrets


def generate_token(nbytes: int = 32) -> str:
    """Generate a cryptographically secure, URL-safe auth token."""
    return secrets.token_urlsafe(nbytes)


def secure_compare(a: str, b: str) -> bool:
    """Constant-time string comparison."""
    return hmac.compare_digest(a.encode(), b.encode())
