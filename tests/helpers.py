"""Shared builders and fakes for the test suite."""

import itertools
from typing import Any

from core.guard import Actor
from core.roles import ReportType, Role
from core.security import issue_session_token
from models.report import Priority, Report
from models.user import User
from services.audit import AuditContext
from services.lifecycle import NewReport
from services.notifications import Notifier, TransitionEvent

_ids = itertools.count(1)

CTX = AuditContext(ip_address="127.0.0.1", user_agent="pytest", endpoint="test")


class RecordingNotifier(Notifier):
    """Notifier that remembers every event it receives."""

    def __init__(self) -> None:
        self.created: list[Report] = []
        self.transitions: list[TransitionEvent] = []
        self.escalations: list[tuple[Report, str]] = []
        self.digests: list[dict[str, Any]] = []

    async def report_created(self, report: Report) -> None:
        self.created.append(report)

    async def status_changed(self, event: TransitionEvent) -> None:
        self.transitions.append(event)

    async def escalation(self, report: Report, reason: str) -> None:
        self.escalations.append((report, reason))

    async def digest(self, summary: dict[str, Any]) -> None:
        self.digests.append(summary)


async def make_user(db, role: Role, external_id: str | None = None, username: str | None = None) -> User:
    """Insert a staff user and return it."""
    user = User(
        external_id=external_id or f"ext-{role.value}-{next(_ids)}",
        username=username or f"{role.value}-user",
        role=role.value,
    )
    db.add(user)
    await db.commit()
    return user


def actor_for(user: User) -> Actor:
    return Actor.from_user(user)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_session_token(user.id)}"}


def new_report(
    type: ReportType = ReportType.BUG_REPORT,
    priority: Priority = Priority.MEDIUM,
    anonymous: bool = False,
    **kwargs: Any,
) -> NewReport:
    return NewReport(
        type=type,
        category=kwargs.pop("category", "gameplay"),
        description=kwargs.pop("description", "Something is broken in the arena"),
        priority=priority,
        anonymous=anonymous,
        **kwargs,
    )


async def make_reporter(db, external_id: str) -> Actor:
    """Signed-in player whose identity a report can reference."""
    return actor_for(await make_user(db, Role.SUPPORT, external_id=external_id, username=external_id))
