"""Staff sign-in and account management endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_audit_context, get_db
from core.auth import SESSION_COOKIE, relay_auth, require_actor
from core.config import settings
from core.errors import NotFound
from core.guard import Actor
from core.roles import Role
from core.security import issue_session_token
from models.user import User
from services import audit, staff
from services.audit import AuditContext

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


class LoginIn(BaseModel):
    username: str = Field(min_length=1, max_length=64)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    external_id: str
    username: str
    role: Role
    created_at: datetime
    last_login: datetime | None


class LoginOut(BaseModel):
    token: str
    user: UserOut


class RoleUpdateIn(BaseModel):
    role: Role


@router.post("/login")
async def login(
    body: LoginIn,
    response: Response,
    external_id: str = Depends(relay_auth),
    db: AsyncSession = Depends(get_db),
    ctx: AuditContext = Depends(get_audit_context),
) -> LoginOut:
    """
    Exchange a relay-signed external identity for a session token.

    The token is returned in the body and also set as an HTTP-only cookie.
    """
    user = await staff.login(db, external_id, body.username, ctx)
    token = issue_session_token(user.id)
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    logger.info(f"User {user.id} logged in")
    return LoginOut(token=token, user=UserOut.model_validate(user))


@router.post("/logout")
async def logout(
    response: Response,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
    ctx: AuditContext = Depends(get_audit_context),
) -> dict[str, bool]:
    audit.record(db, audit.USER_LOGOUT, actor, ctx)
    await db.commit()
    response.delete_cookie(SESSION_COOKIE)
    return {"ok": True}


@router.get("/me")
async def me(actor: Actor = Depends(require_actor), db: AsyncSession = Depends(get_db)) -> UserOut:
    user = await db.get(User, actor.id)
    if user is None:
        raise NotFound("User not found")
    return UserOut.model_validate(user)


@router.get("/users")
async def list_users(actor: Actor = Depends(require_actor), db: AsyncSession = Depends(get_db)) -> list[UserOut]:
    """All staff accounts (admin+)."""
    return [UserOut.model_validate(u) for u in await staff.list_users(db, actor)]


@router.patch("/users/{user_id}/role")
async def update_user_role(
    user_id: int,
    body: RoleUpdateIn,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
    ctx: AuditContext = Depends(get_audit_context),
) -> UserOut:
    user = await staff.change_role(db, actor, user_id, body.role, ctx)
    return UserOut.model_validate(user)


@router.delete("/users/{user_id}", status_code=204)
async def delete_user(
    user_id: int,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
    ctx: AuditContext = Depends(get_audit_context),
) -> None:
    """Delete a staff account (owner only)."""
    await staff.delete_user(db, actor, user_id, ctx)
