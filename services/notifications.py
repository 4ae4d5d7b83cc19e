"""Report event interface. Delivery channels live in apps.workers.notifier."""

from dataclasses import dataclass
from typing import Any

from core.guard import Actor
from models.report import Report


@dataclass(frozen=True)
class TransitionEvent:
    """A report moved from one status to another."""

    report: Report
    old_status: str
    new_status: str
    actor: Actor | None = None


class Notifier:
    """Receives report events. The base class drops everything."""

    async def report_created(self, report: Report) -> None:
        return None

    async def status_changed(self, event: TransitionEvent) -> None:
        return None

    async def escalation(self, report: Report, reason: str) -> None:
        return None

    async def digest(self, summary: dict[str, Any]) -> None:
        return None

    async def close(self) -> None:
        return None
