"""Session tokens and request signatures."""

import base64
import binascii
import hashlib
import hmac
import secrets
import time

from core.config import settings


def generate_token(length: int = 32) -> str:
    """Generate a secure random token."""
    return secrets.token_urlsafe(length)


def _b64u_encode(data: bytes) -> str:
    """Base64-URL encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64u_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def sign(message: bytes, secret: str) -> str:
    """Return the base64-URL encoded HMAC-SHA256 of `message`."""
    mac = hmac.new(secret.encode(), message, hashlib.sha256).digest()
    return _b64u_encode(mac)


def verify_signature(message: bytes, signature: str, secret: str) -> bool:
    """Constant-time check of a signature produced by `sign`."""
    return hmac.compare_digest(sign(message, secret), signature or "")


def issue_session_token(user_id: int, ttl_seconds: int | None = None, now: float | None = None) -> str:
    """
    Issue a signed session token for a staff user.

    Format: ``<b64u(user_id:expires_at)>.<b64u(hmac)>``

    Args:
        user_id: Internal user ID
        ttl_seconds: Lifetime of the token (defaults to settings.session_ttl_hours)
        now: Current UNIX time, for tests

    Returns:
        Token string
    """
    if ttl_seconds is None:
        ttl_seconds = settings.session_ttl_hours * 3600
    issued = int(now if now is not None else time.time())
    payload = f"{user_id}:{issued + ttl_seconds}".encode()
    return f"{_b64u_encode(payload)}.{sign(payload, settings.secret_key)}"


def read_session_token(token: str, now: float | None = None) -> int | None:
    """
    Validate a session token.

    Returns:
        The user ID, or None if the token is malformed, tampered with or expired
    """
    try:
        encoded, signature = token.split(".", 1)
        payload = _b64u_decode(encoded)
    except (ValueError, binascii.Error):
        return None

    if not verify_signature(payload, signature, settings.secret_key):
        return None

    try:
        user_id_str, expires_str = payload.decode().split(":", 1)
        user_id, expires_at = int(user_id_str), int(expires_str)
    except (UnicodeDecodeError, ValueError):
        return None

    if expires_at < int(now if now is not None else time.time()):
        return None
    return user_id
