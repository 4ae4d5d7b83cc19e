"""Report statistics endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db
from core import guard
from core.auth import require_actor
from core.guard import Actor
from core.roles import Role
from services import analytics

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/public")
async def public_stats(db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """Totals shown on the public report page."""
    return await analytics.public_stats(db)


@router.get("/dashboard")
async def dashboard(
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Queue summary and breakdowns for the staff dashboard (support+)."""
    guard.require_role(actor, Role.SUPPORT).enforce()
    return {
        "summary": await analytics.dashboard_summary(db),
        "stats": await analytics.report_stats(db, date_from, date_to),
    }


@router.get("/staff")
async def staff_performance(
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    actor: Actor = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
) -> list[dict[str, Any]]:
    """Per-staff workload and resolutions (admin+)."""
    guard.require_role(actor, Role.ADMIN).enforce()
    return await analytics.staff_performance(db, date_from, date_to)
