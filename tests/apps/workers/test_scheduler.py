"""Tests for the scheduled tasks."""

import os
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from apps.workers.scheduler import ScheduledTasks
from core.config import Settings
from core.guard import ANONYMOUS
from core.roles import Role
from tests.helpers import CTX, make_user, new_report


@pytest.fixture
def tasks(session_factory, manual_lifecycle, notifier):
    config = Settings(stale_report_hours=24, retention_days=90)
    return ScheduledTasks(session_factory, manual_lifecycle, notifier, config)


class TestScheduledTasks:
    @pytest.mark.asyncio
    async def test_escalates_only_stale_pending(self, db, tasks, manual_lifecycle, notifier):
        stale = await manual_lifecycle.create_report(db, new_report(), ANONYMOUS, CTX)
        await manual_lifecycle.create_report(db, new_report(), ANONYMOUS, CTX)

        # Only reports created more than a day before "now" count as stale
        now = datetime.now(timezone.utc) + timedelta(hours=25)
        assert await tasks.escalate_stale_reports(now=now) == 2
        assert await tasks.escalate_stale_reports() == 0

        assert stale.id in {report.id for report, _ in notifier.escalations}
        assert "24 hours" in notifier.escalations[0][1]

    @pytest.mark.asyncio
    async def test_auto_assign_sweep(self, db, tasks, manual_lifecycle):
        await make_user(db, Role.SUPPORT)
        await manual_lifecycle.create_report(db, new_report(), ANONYMOUS, CTX)

        assert await tasks.auto_assign_unassigned() == 1
        assert await tasks.auto_assign_unassigned() == 0

    @pytest.mark.asyncio
    async def test_digest_sent(self, db, tasks, manual_lifecycle, notifier):
        await manual_lifecycle.create_report(db, new_report(), ANONYMOUS, CTX)
        summary = await tasks.send_digest(days=7)
        assert summary["new_reports"] == 1
        assert notifier.digests == [summary]

    @pytest.mark.asyncio
    async def test_cleanup_uploads(self, tasks, store):
        store.upload_dir.mkdir(parents=True)
        old = store.upload_dir / "attachment-old.png"
        old.write_bytes(b"x")
        long_ago = time.time() - 100 * 24 * 3600
        os.utime(old, (long_ago, long_ago))
        (store.upload_dir / "attachment-new.png").write_bytes(b"y")

        assert await tasks.cleanup_uploads() == 1
        assert not old.exists()

    @pytest.mark.asyncio
    async def test_failed_run_is_contained(self, tasks):
        failing = AsyncMock(side_effect=RuntimeError("db down"))
        assert await tasks.run_once("stale_sweep", failing) is False
        assert await tasks.run_once("stale_sweep", AsyncMock()) is True
