"""Auto-assignment: hand unassigned reports to the least-loaded eligible staff member."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.metrics import auto_assign_total
from core.roles import ReportType, can_access_type, eligible_roles, rank
from models.report import TERMINAL_STATUSES, Report, ReportStatus
from models.user import User

if TYPE_CHECKING:
    from services.lifecycle import ReportLifecycle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaffWorkload:
    """A staff member and the number of reports they currently have in progress."""

    user: User
    active_count: int

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def role(self) -> str:
        return self.user.role


def select_assignee(report_type: ReportType | str, workloads: Sequence[StaffWorkload]) -> StaffWorkload | None:
    """
    Pick who should handle a report of `report_type`.

    Staff who cannot access the type are ignored. The lowest workload wins;
    on equal workload the higher-ranked role wins, then the lower user id.

    Returns:
        The chosen entry, or None if nobody is eligible
    """
    eligible = [w for w in workloads if can_access_type(w.role, report_type)]
    if not eligible:
        return None
    return min(eligible, key=lambda w: (w.active_count, -rank(w.role), w.user_id))


async def load_workloads(db: AsyncSession, report_type: ReportType | str) -> list[StaffWorkload]:
    """Eligible staff for `report_type` with their count of in-progress reports."""
    roles = [role.value for role in eligible_roles(report_type)]
    active = (
        select(Report.handled_by.label("user_id"), func.count(Report.id).label("active_count"))
        .where(Report.status == ReportStatus.IN_PROGRESS.value, Report.handled_by.is_not(None))
        .group_by(Report.handled_by)
        .subquery()
    )
    stmt = (
        select(User, func.coalesce(active.c.active_count, 0))
        .outerjoin(active, active.c.user_id == User.id)
        .where(User.role.in_(roles))
        .order_by(User.id)
    )
    result = await db.execute(stmt)
    return [StaffWorkload(user=user, active_count=int(count)) for user, count in result.all()]


async def auto_assign(db: AsyncSession, lifecycle: "ReportLifecycle", report: Report) -> User | None:
    """
    Best-effort assignment of a single report.

    Never raises: failures are logged and the report simply stays unassigned.

    Returns:
        The assignee, or None if the report was not assigned
    """
    report_id = report.id
    try:
        workloads = await load_workloads(db, report.type)
        choice = select_assignee(report.type, workloads)
        if choice is None:
            logger.info(f"No eligible staff for report {report_id} ({report.type}), leaving unassigned")
            auto_assign_total.labels(outcome="no_staff").inc()
            return None

        if not await lifecycle.assign_automatically(db, report, choice.user):
            auto_assign_total.labels(outcome="skipped").inc()
            return None

        auto_assign_total.labels(outcome="assigned").inc()
        return choice.user
    except Exception:
        logger.exception(f"Auto-assignment failed for report {report_id}")
        auto_assign_total.labels(outcome="error").inc()
        try:
            await db.rollback()
        except Exception:
            logger.exception("Rollback after failed auto-assignment also failed")
        return None


async def sweep_unassigned(session_factory: async_sessionmaker[AsyncSession], lifecycle: "ReportLifecycle") -> int:
    """
    Run auto-assignment over every unassigned open report.

    Returns:
        Number of reports assigned
    """
    async with session_factory() as db:
        result = await db.scalars(
            select(Report.id)
            .where(Report.handled_by.is_(None), Report.status.not_in(TERMINAL_STATUSES))
            .order_by(Report.created_at, Report.id)
        )
        report_ids = list(result.all())
        logger.debug(f"Got {len(report_ids)} unassigned reports from DB.")

        assigned = 0
        for report_id in report_ids:
            # Fresh load per report: a failed assignment rolls back and expires the session
            report = await db.get(Report, report_id, populate_existing=True)
            if report is None:
                continue
            if await auto_assign(db, lifecycle, report):
                assigned += 1

    logger.info(f"Auto-assigned {assigned} of {len(report_ids)} unassigned reports")
    return assigned
