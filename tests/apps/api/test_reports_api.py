"""API tests for the report endpoints."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from apps.api.deps import get_redis_client, submit_rate_limit
from apps.api.main import app
from core.guard import ANONYMOUS
from core.roles import ReportType, Role
from models.report import Report
from tests.helpers import CTX, auth_headers, make_user, new_report

FORM = {
    "type": "bug_report",
    "category": "crash",
    "description": "The client crashes when I open the <b>inventory</b>",
    "priority": "high",
}


class TestSubmit:
    @pytest.mark.asyncio
    async def test_public_submission_with_file(self, client, db):
        response = await client.post(
            "/reports/submit",
            data=FORM,
            files=[("files", ("crash.txt", b"stack trace here", "text/plain"))],
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"

        report = (await db.scalars(select(Report).where(Report.id == body["id"]))).one()
        assert report.description == "The client crashes when I open the inventory"
        assert report.reporter_external_id is None

    @pytest.mark.asyncio
    async def test_validation_error(self, client):
        response = await client.post("/reports/submit", data=dict(FORM, description="too short"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, client):
        response = await client.post("/reports/submit", data=dict(FORM, type="suggestion"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_disallowed_file_type(self, client):
        response = await client.post(
            "/reports/submit",
            data=FORM,
            files=[("files", ("evil.html", b"<script>", "text/html"))],
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_signed_in_submission_records_reporter(self, client, db):
        user = await make_user(db, Role.SUPPORT, external_id="discord-42")
        response = await client.post("/reports/submit", data=FORM, headers=auth_headers(user))
        report = (await db.scalars(select(Report).where(Report.id == response.json()["id"]))).one()
        assert report.reporter_external_id == "discord-42"

    @pytest.mark.asyncio
    async def test_rate_limited(self, client):
        redis_client = AsyncMock()
        redis_client.incr = AsyncMock(return_value=6)
        del app.dependency_overrides[submit_rate_limit]
        app.dependency_overrides[get_redis_client] = lambda: redis_client

        response = await client.post("/reports/submit", data=FORM)

        assert response.status_code == 429
        redis_client.incr.assert_awaited_once_with("rl:report:127.0.0.1")

    @pytest.mark.asyncio
    async def test_game_submission(self, client):
        payload = dict(FORM, reporter_player_id="steam:1100001")
        response = await client.post("/reports/submit/game", json=payload, headers={"X-Api-Key": "test-game-key"})
        assert response.status_code == 201

        denied = await client.post("/reports/submit/game", json=payload, headers={"X-Api-Key": "wrong"})
        assert denied.status_code == 401


class TestStaffEndpoints:
    @pytest.mark.asyncio
    async def test_list_requires_auth(self, client):
        response = await client.get("/reports")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_support_cannot_read_player_report(self, client, db, manual_lifecycle):
        support = await make_user(db, Role.SUPPORT)
        report = await manual_lifecycle.create_report(db, new_report(type=ReportType.PLAYER_REPORT), ANONYMOUS, CTX)

        response = await client.get(f"/reports/{report.id}", headers=auth_headers(support))

        assert response.status_code == 403
        assert response.json()["reason"] == "FORBIDDEN_TYPE"

    @pytest.mark.asyncio
    async def test_missing_report_is_404(self, client, db):
        admin = await make_user(db, Role.ADMIN)
        response = await client.get("/reports/999", headers=auth_headers(admin))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_filters_by_role(self, client, db, manual_lifecycle):
        support = await make_user(db, Role.SUPPORT)
        await manual_lifecycle.create_report(db, new_report(type=ReportType.PLAYER_REPORT), ANONYMOUS, CTX)
        await manual_lifecycle.create_report(db, new_report(type=ReportType.BUG_REPORT), ANONYMOUS, CTX)

        response = await client.get("/reports", headers=auth_headers(support))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["reports"][0]["type"] == "bug_report"

    @pytest.mark.asyncio
    async def test_assign_then_resolve(self, client, db, manual_lifecycle):
        moderator = await make_user(db, Role.MODERATOR)
        other = await make_user(db, Role.MODERATOR)
        report = await manual_lifecycle.create_report(db, new_report(type=ReportType.PLAYER_REPORT), ANONYMOUS, CTX)

        response = await client.patch(
            f"/reports/{report.id}/assign", json={"assignee_id": other.id}, headers=auth_headers(moderator)
        )
        assert response.status_code == 200
        assert response.json()["handled_by"] == other.id
        assert response.json()["status"] == "in_progress"

        # The original moderator no longer handles it
        blocked = await client.patch(
            f"/reports/{report.id}/status", json={"status": "resolved"}, headers=auth_headers(moderator)
        )
        assert blocked.status_code == 403
        assert blocked.json()["reason"] == "FORBIDDEN_ASSIGNED_TO_OTHER"

        resolved = await client.patch(
            f"/reports/{report.id}/status",
            json={"status": "resolved", "notes": "banned"},
            headers=auth_headers(other),
        )
        assert resolved.status_code == 200
        history = resolved.json()["status_history"]
        assert [(h["old_status"], h["new_status"]) for h in history] == [
            ("pending", "in_progress"),
            ("in_progress", "resolved"),
        ]

    @pytest.mark.asyncio
    async def test_type_cannot_be_edited(self, client, db, manual_lifecycle):
        admin = await make_user(db, Role.ADMIN)
        report = await manual_lifecycle.create_report(db, new_report(), ANONYMOUS, CTX)

        response = await client.patch(f"/reports/{report.id}", json={"type": "feedback"}, headers=auth_headers(admin))
        assert response.status_code == 422

        response = await client.patch(f"/reports/{report.id}", json={"priority": "low"}, headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["priority"] == "low"

    @pytest.mark.asyncio
    async def test_delete_requires_admin(self, client, db, manual_lifecycle):
        moderator = await make_user(db, Role.MODERATOR)
        admin = await make_user(db, Role.ADMIN)
        report = await manual_lifecycle.create_report(db, new_report(), ANONYMOUS, CTX)

        denied = await client.delete(f"/reports/{report.id}", headers=auth_headers(moderator))
        assert denied.status_code == 403
        assert denied.json()["reason"] == "FORBIDDEN_ROLE"

        deleted = await client.delete(f"/reports/{report.id}", headers=auth_headers(admin))
        assert deleted.status_code == 204

    @pytest.mark.asyncio
    async def test_attachment_upload_and_download(self, client, db, manual_lifecycle):
        admin = await make_user(db, Role.ADMIN)
        report = await manual_lifecycle.create_report(db, new_report(), ANONYMOUS, CTX)

        uploaded = await client.post(
            f"/reports/{report.id}/attachments",
            files=[("files", ("notes.txt", b"repro steps", "text/plain"))],
            headers=auth_headers(admin),
        )
        assert uploaded.status_code == 201
        attachment_id = uploaded.json()[0]["id"]

        downloaded = await client.get(
            f"/reports/{report.id}/attachments/{attachment_id}", headers=auth_headers(admin)
        )
        assert downloaded.status_code == 200
        assert downloaded.content == b"repro steps"


class TestReporterEndpoints:
    @pytest.mark.asyncio
    async def test_mine_and_reopen(self, client, db, manual_lifecycle):
        player = await make_user(db, Role.SUPPORT, external_id="discord-7")
        admin = await make_user(db, Role.ADMIN)
        created = await client.post("/reports/submit", data=FORM, headers=auth_headers(player))
        report_id = created.json()["id"]

        mine = await client.get("/reports/mine", headers=auth_headers(player))
        assert [r["id"] for r in mine.json()["reports"]] == [report_id]

        await client.patch(f"/reports/{report_id}/status", json={"status": "resolved"}, headers=auth_headers(admin))

        short = await client.post(f"/reports/{report_id}/reopen", json={"reason": "nope"}, headers=auth_headers(player))
        assert short.status_code == 400

        reopened = await client.post(
            f"/reports/{report_id}/reopen",
            json={"reason": "the crash still happens"},
            headers=auth_headers(player),
        )
        assert reopened.status_code == 200
        assert reopened.json()["status"] == "pending"
        assert reopened.json()["handled_by"] is None

    @pytest.mark.asyncio
    async def test_anonymous_report_cannot_be_reopened(self, client, db, manual_lifecycle):
        player = await make_user(db, Role.SUPPORT, external_id="discord-9")
        admin = await make_user(db, Role.ADMIN)
        created = await client.post(
            "/reports/submit", data=dict(FORM, anonymous="true"), headers=auth_headers(player)
        )
        report_id = created.json()["id"]
        await client.patch(f"/reports/{report_id}/status", json={"status": "resolved"}, headers=auth_headers(admin))

        response = await client.post(
            f"/reports/{report_id}/reopen",
            json={"reason": "it was me who reported this"},
            headers=auth_headers(player),
        )
        assert response.status_code == 403
        assert response.json()["reason"] == "FORBIDDEN_NOT_REPORTER"
