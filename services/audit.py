"""Audit trail for state-changing actions."""

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.guard import Actor
from models.audit import AuditLog

logger = logging.getLogger(__name__)

REPORT_SUBMIT = "report_submit"
REPORT_SUBMIT_GAME = "report_submit_game"
REPORT_CREATE_STAFF = "report_create_staff"
REPORT_STATUS_UPDATE = "report_status_update"
REPORT_UPDATE = "report_update"
REPORT_ASSIGN = "report_assign"
REPORT_AUTO_ASSIGN = "report_auto_assign"
REPORT_REOPEN = "report_reopen"
REPORT_DELETE = "report_delete"
REPORT_ATTACHMENT_ADD = "report_attachment_add"
USER_LOGIN = "user_login"
USER_LOGOUT = "user_logout"
USER_ROLE_UPDATE = "user_role_update"
USER_DELETE = "user_delete"


@dataclass(frozen=True)
class AuditContext:
    """Where a request came from."""

    ip_address: str | None = None
    user_agent: str | None = None
    endpoint: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> "AuditContext":
        return cls(
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("User-Agent"),
            endpoint=f"{request.method} {request.url.path}"[:200],
        )


SYSTEM_CONTEXT = AuditContext(endpoint="scheduler")


def record(
    db: AsyncSession,
    action: str,
    actor: Actor | None,
    ctx: AuditContext,
    report_id: int | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLog:
    """
    Add an audit entry to the current transaction.

    The entry commits together with the change it describes; nothing is
    written if the surrounding transaction rolls back.
    """
    entry = AuditLog(
        action=action,
        user_id=actor.id if actor else None,
        user_external_id=actor.external_id if actor else None,
        user_role=actor.role.value if actor and actor.role else None,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
        endpoint=ctx.endpoint,
        report_id=report_id,
        details=details,
    )
    db.add(entry)
    logger.info(f"Audit: action={action}, user={entry.user_id}, report={report_id}, ip={ctx.ip_address}")
    return entry
