"""Authentication utilities for the API."""

import hmac

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.db import get_db
from core.guard import ANONYMOUS, Actor
from core.security import read_session_token, verify_signature
from models.user import User

SESSION_COOKIE = "auth_token"


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User | None:
    """
    Resolve the staff user behind the session token, if any.

    A missing, invalid or expired token yields None rather than an error so
    public endpoints can serve both anonymous and signed-in callers.
    """
    token = _extract_token(request)
    if not token:
        return None
    user_id = read_session_token(token)
    if user_id is None:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_current_actor(user: User | None = Depends(get_current_user)) -> Actor:
    """Actor for the request; `ANONYMOUS` when nobody is signed in."""
    if user is None:
        return ANONYMOUS
    return Actor.from_user(user)


async def require_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Same as `get_current_actor` but rejects anonymous callers with 401."""
    if not actor.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


async def relay_auth(request: Request) -> str:
    """
    Authenticate login requests forwarded by the identity relay.

    Expects headers:
    - X-External-Id: external platform ID of the user logging in
    - X-Relay-Signature: HMAC-SHA256 of the raw request body

    Returns:
        The external ID

    Raises:
        HTTPException: If authentication fails
    """
    external_id = request.headers.get("X-External-Id")
    signature = request.headers.get("X-Relay-Signature")

    if not external_id or not signature:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing auth headers (X-External-Id, X-Relay-Signature)"
        )

    body = await request.body()
    if not verify_signature(body, signature, settings.relay_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    return external_id


async def game_api_key_auth(request: Request) -> None:
    """Authenticate submissions from the game server via the X-Api-Key header."""
    if not settings.game_api_key:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="API key not configured")

    api_key = request.headers.get("X-Api-Key") or ""
    if not hmac.compare_digest(api_key, settings.game_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
