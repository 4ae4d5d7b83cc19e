"""Aggregate report statistics for the dashboard, public page and digests."""

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.report import TERMINAL_STATUSES, Report, ReportStatus, ReportStatusHistory
from models.user import User


def _period(stmt: Any, column: Any, date_from: datetime | None, date_to: datetime | None) -> Any:
    if date_from is not None:
        stmt = stmt.where(column >= date_from)
    if date_to is not None:
        stmt = stmt.where(column <= date_to)
    return stmt


async def _count_by(
    db: AsyncSession, column: Any, date_from: datetime | None, date_to: datetime | None
) -> dict[str, int]:
    stmt = _period(select(column, func.count(Report.id)).group_by(column), Report.created_at, date_from, date_to)
    result = await db.execute(stmt)
    return {key: int(count) for key, count in result.all()}


async def report_stats(
    db: AsyncSession, date_from: datetime | None = None, date_to: datetime | None = None
) -> dict[str, Any]:
    """Report counts by status, type and priority, plus the ten busiest categories."""
    categories_stmt = _period(
        select(Report.category, func.count(Report.id).label("count"))
        .group_by(Report.category)
        .order_by(func.count(Report.id).desc(), Report.category)
        .limit(10),
        Report.created_at,
        date_from,
        date_to,
    )
    categories = await db.execute(categories_stmt)
    return {
        "by_status": await _count_by(db, Report.status, date_from, date_to),
        "by_type": await _count_by(db, Report.type, date_from, date_to),
        "by_priority": await _count_by(db, Report.priority, date_from, date_to),
        "top_categories": [{"category": c, "count": int(n)} for c, n in categories.all()],
    }


async def staff_performance(
    db: AsyncSession, date_from: datetime | None = None, date_to: datetime | None = None
) -> list[dict[str, Any]]:
    """Per staff member: reports currently handled and reports they resolved."""
    handled_stmt = _period(
        select(User.id, User.username, User.role, func.count(Report.id))
        .join(Report, Report.handled_by == User.id)
        .group_by(User.id, User.username, User.role),
        Report.created_at,
        date_from,
        date_to,
    )
    resolved_stmt = _period(
        select(ReportStatusHistory.changed_by, func.count(ReportStatusHistory.id))
        .where(
            ReportStatusHistory.new_status == ReportStatus.RESOLVED.value,
            ReportStatusHistory.changed_by.is_not(None),
        )
        .group_by(ReportStatusHistory.changed_by),
        ReportStatusHistory.changed_at,
        date_from,
        date_to,
    )
    resolved = {user_id: int(n) for user_id, n in (await db.execute(resolved_stmt)).all()}
    rows = [
        {
            "user_id": user_id,
            "username": username,
            "role": role,
            "handled": int(handled),
            "resolved": resolved.get(user_id, 0),
        }
        for user_id, username, role, handled in (await db.execute(handled_stmt)).all()
    ]
    rows.sort(key=lambda r: (-r["handled"], r["user_id"]))
    return rows


async def _count(db: AsyncSession, *conditions: Any) -> int:
    return int((await db.execute(select(func.count(Report.id)).where(*conditions))).scalar_one())


async def _resolved_since(db: AsyncSession, since: datetime) -> int:
    stmt = select(func.count(func.distinct(ReportStatusHistory.report_id))).where(
        ReportStatusHistory.new_status == ReportStatus.RESOLVED.value,
        ReportStatusHistory.changed_at >= since,
    )
    return int((await db.execute(stmt)).scalar_one())


async def dashboard_summary(db: AsyncSession, now: datetime | None = None) -> dict[str, int]:
    now = now or datetime.now(timezone.utc)
    return {
        "total": await _count(db),
        "pending": await _count(db, Report.status == ReportStatus.PENDING.value),
        "in_progress": await _count(db, Report.status == ReportStatus.IN_PROGRESS.value),
        "unassigned": await _count(db, Report.handled_by.is_(None), Report.status.not_in(TERMINAL_STATUSES)),
        "resolved_last_24h": await _resolved_since(db, now - timedelta(hours=24)),
    }


def _rate(part: int, whole: int) -> float:
    return round(part * 100 / whole, 1) if whole else 0.0


async def public_stats(db: AsyncSession) -> dict[str, Any]:
    """Totals safe to show without authentication."""
    total = await _count(db)
    resolved = await _count(db, Report.status == ReportStatus.RESOLVED.value)
    return {"total_reports": total, "resolved_reports": resolved, "resolution_rate": _rate(resolved, total)}


async def generate_digest(db: AsyncSession, days: int = 7, now: datetime | None = None) -> dict[str, Any]:
    """Summary of the last `days` days, sent to staff by the scheduler."""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=days)
    new_reports = await _count(db, Report.created_at >= since)
    resolved_reports = await _resolved_since(db, since)
    performance = await staff_performance(db, date_from=since)
    return {
        "days": days,
        "since": since.isoformat(),
        "new_reports": new_reports,
        "resolved_reports": resolved_reports,
        "pending_reports": await _count(db, Report.status == ReportStatus.PENDING.value),
        "resolution_rate": _rate(resolved_reports, new_reports),
        "top_staff": performance[:3],
    }
