"""Staff accounts: login upsert, role changes and removal."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core import guard
from core.db import utcnow
from core.guard import Actor
from core.roles import Role
from models.user import User
from services import audit
from services.audit import AuditContext

logger = logging.getLogger(__name__)


async def login(db: AsyncSession, external_id: str, username: str, ctx: AuditContext) -> User:
    """
    Find or create the user behind an external identity and stamp the login.

    New users start with the lowest role.
    """
    result = await db.execute(select(User).where(User.external_id == external_id))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(external_id=external_id, username=username, role=Role.SUPPORT.value)
        db.add(user)
        logger.info(f"New user created: external_id={external_id}")
    else:
        user.username = username
    user.last_login = utcnow()
    await db.flush()

    audit.record(db, audit.USER_LOGIN, Actor.from_user(user), ctx)
    await db.commit()
    return user


async def list_users(db: AsyncSession, actor: Actor) -> list[User]:
    guard.require_role(actor, Role.ADMIN).enforce()
    result = await db.execute(select(User).order_by(User.id))
    return list(result.scalars().all())


async def change_role(db: AsyncSession, actor: Actor, user_id: int, new_role: Role, ctx: AuditContext) -> User:
    """
    Change a staff member's role.

    Raises:
        Forbidden: Unless the actor outranks or equals the target, only owners
            grant owner, and nobody changes their own role (owners granting
            owner excepted)
        NotFound: If the user does not exist
    """
    target = await db.get(User, user_id)
    guard.can_change_role(actor, target, Role(new_role)).enforce()

    old_role = target.role
    target.role = Role(new_role).value
    audit.record(
        db,
        audit.USER_ROLE_UPDATE,
        actor,
        ctx,
        details={"user_id": target.id, "old_role": old_role, "new_role": target.role},
    )
    await db.commit()

    logger.info(f"User {target.id} role {old_role} -> {target.role} by user {actor.id}")
    return target


async def delete_user(db: AsyncSession, actor: Actor, user_id: int, ctx: AuditContext) -> None:
    """Remove a staff account (owner only, never oneself). Their reports stay, unassigned."""
    target = await db.get(User, user_id)
    guard.can_delete_user(actor, target).enforce()

    details = {"user_id": target.id, "external_id": target.external_id, "role": target.role}
    await db.delete(target)
    audit.record(db, audit.USER_DELETE, actor, ctx, details=details)
    await db.commit()
    logger.info(f"User {user_id} deleted by user {actor.id}")
