"""Background tasks: stale-report escalation, auto-assignment sweep, digest, upload retention."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from apps.workers.notifier import build_notifier
from core.config import Settings, settings
from core.db import AsyncSessionLocal
from core.metrics import scheduled_task_runs_total
from models.report import Report, ReportStatus
from services.analytics import generate_digest
from services.assignment import sweep_unassigned
from services.attachments import AttachmentStore
from services.lifecycle import ReportLifecycle
from services.notifications import Notifier

logger = logging.getLogger(__name__)


class ScheduledTasks:
    """Runs each task on its own fixed interval; a failed run never affects the next one."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lifecycle: ReportLifecycle,
        notifier: Notifier,
        config: Settings,
    ) -> None:
        self.session_factory = session_factory
        self.lifecycle = lifecycle
        self.notifier = notifier
        self.config = config
        self.running = False

    async def escalate_stale_reports(self, now: datetime | None = None) -> int:
        """Escalate reports still pending after `stale_report_hours`."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=self.config.stale_report_hours)
        async with self.session_factory() as db:
            result = await db.scalars(
                select(Report)
                .where(Report.status == ReportStatus.PENDING.value, Report.created_at < cutoff)
                .order_by(Report.created_at)
            )
            stale = result.all()

        reason = f"Report has been pending for more than {self.config.stale_report_hours} hours"
        for report in stale:
            try:
                await self.notifier.escalation(report, reason)
            except Exception:
                logger.exception(f"Escalation notification failed for report {report.id}")

        logger.info(f"Found {len(stale)} stale reports")
        return len(stale)

    async def auto_assign_unassigned(self) -> int:
        return await sweep_unassigned(self.session_factory, self.lifecycle)

    async def send_digest(self, days: int = 7) -> dict[str, Any]:
        async with self.session_factory() as db:
            summary = await generate_digest(db, days=days)
        await self.notifier.digest(summary)
        logger.info(f"Digest sent: {summary['new_reports']} new, {summary['resolved_reports']} resolved")
        return summary

    async def cleanup_uploads(self, now: float | None = None) -> int:
        """Delete stored upload files older than `retention_days`."""
        now = now if now is not None else time.time()
        cutoff = now - self.config.retention_days * 24 * 60 * 60
        deleted = await asyncio.to_thread(self.lifecycle.store.remove_older_than, cutoff)
        logger.info(f"File cleanup completed. Deleted {deleted} old files.")
        return deleted

    async def run_once(self, name: str, job: Callable[[], Awaitable[Any]]) -> bool:
        """Run one tick of a task, logging and counting the outcome."""
        try:
            await job()
        except Exception:
            logger.exception(f"Scheduled task {name} failed")
            scheduled_task_runs_total.labels(task=name, outcome="error").inc()
            return False
        scheduled_task_runs_total.labels(task=name, outcome="ok").inc()
        return True

    async def _loop(self, name: str, interval: int, job: Callable[[], Awaitable[Any]]) -> None:
        logger.info(f"Scheduled task {name} every {interval}s")
        while self.running:
            await self.run_once(name, job)
            await asyncio.sleep(interval)

    async def start(self) -> None:
        """Start all task loops and wait until they stop."""
        self.running = True
        await asyncio.gather(
            self._loop("stale_sweep", self.config.stale_sweep_interval_seconds, self.escalate_stale_reports),
            self._loop("auto_assign", self.config.auto_assign_interval_seconds, self.auto_assign_unassigned),
            self._loop("digest", self.config.digest_interval_seconds, self.send_digest),
            self._loop("retention", self.config.retention_interval_seconds, self.cleanup_uploads),
        )

    async def stop(self) -> None:
        """Stop the task loops after their current sleep."""
        self.running = False


async def main() -> None:
    """Run scheduled tasks."""
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    notifier = build_notifier(settings)
    lifecycle = ReportLifecycle(
        notifier,
        AttachmentStore(settings.upload_dir),
        max_file_size=settings.max_file_size,
        max_files_per_report=settings.max_files_per_report,
    )
    tasks = ScheduledTasks(AsyncSessionLocal, lifecycle, notifier, settings)
    try:
        await tasks.start()
    finally:
        await tasks.stop()
        await notifier.close()


if __name__ == "__main__":
    asyncio.run(main())
