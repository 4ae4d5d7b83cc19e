"""Report lifecycle: creation, status transitions, assignment and reopening.

Every operation checks the access-control guard before it mutates anything,
writes the change, its status-history row and its audit entry in one
transaction, then notifies on a best-effort basis.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core import guard
from core.errors import DenyReason, InvalidInput, InvalidTransition, NotFound
from core.guard import Actor
from core.metrics import report_transitions_total, reports_created_total, reports_deleted_total
from core.roles import ReportType, Role, allowed_types, can_access_type
from models.report import TERMINAL_STATUSES, Priority, Report, ReportAttachment, ReportStatus, ReportStatusHistory
from models.user import User
from services import audit
from services.assignment import auto_assign
from services.attachments import AttachmentStore, StoredFile, Upload, check_upload
from services.audit import AuditContext
from services.notifications import Notifier, TransitionEvent

logger = logging.getLogger(__name__)

ASSIGNED_NOTE = "Report assigned"
REOPEN_MIN_REASON = 10

SOURCE_WEB = "web"
SOURCE_GAME = "game"
SOURCE_STAFF = "staff"

_SUBMIT_ACTIONS = {
    SOURCE_WEB: audit.REPORT_SUBMIT,
    SOURCE_GAME: audit.REPORT_SUBMIT_GAME,
    SOURCE_STAFF: audit.REPORT_CREATE_STAFF,
}

# Fields staff may edit after creation; type is deliberately absent
EDITABLE_FIELDS = ("priority", "category", "subcategory", "target_player_id")


@dataclass(frozen=True)
class NewReport:
    type: ReportType
    category: str
    description: str
    priority: Priority = Priority.MEDIUM
    subcategory: str | None = None
    target_player_id: str | None = None
    reporter_player_id: str | None = None
    anonymous: bool = False


@dataclass(frozen=True)
class ReportFilters:
    type: ReportType | None = None
    status: ReportStatus | None = None
    priority: Priority | None = None
    category: str | None = None
    handled_by: int | None = None
    reporter_external_id: str | None = None
    target_player_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    search: str | None = None


@dataclass
class ReportPage:
    reports: list[Report]
    total: int
    page: int
    pages: int
    limit: int = field(default=20)


class ReportLifecycle:
    """Report operations bound to a notifier and an attachment store."""

    def __init__(
        self,
        notifier: Notifier,
        store: AttachmentStore,
        max_file_size: int = 10 * 1024 * 1024,
        max_files_per_report: int = 5,
        auto_assign_on_create: bool = True,
    ) -> None:
        self.notifier = notifier
        self.store = store
        self.max_file_size = max_file_size
        self.max_files_per_report = max_files_per_report
        self.auto_assign_on_create = auto_assign_on_create

    # Loading

    async def load(self, db: AsyncSession, report_id: int) -> Report | None:
        """Fetch a report with its attachments and status history."""
        stmt = (
            select(Report)
            .where(Report.id == report_id)
            .options(selectinload(Report.attachments), selectinload(Report.status_history))
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def _require(self, db: AsyncSession, report_id: int) -> Report:
        report = await self.load(db, report_id)
        if report is None:
            raise NotFound(f"Report {report_id} not found")
        return report

    # Side effects

    def _transition(
        self,
        db: AsyncSession,
        report: Report,
        new_status: ReportStatus,
        handled_by: int | None,
        changed_by: int | None,
        notes: str | None,
    ) -> str:
        """Apply a status change and append its history row. Returns the old status."""
        old_status = report.status
        report.status = new_status.value
        report.handled_by = handled_by
        db.add(
            ReportStatusHistory(
                report_id=report.id,
                old_status=old_status,
                new_status=new_status.value,
                changed_by=changed_by,
                notes=notes,
            )
        )
        return old_status

    async def _emit(self, event: TransitionEvent) -> None:
        report_transitions_total.labels(old_status=event.old_status, new_status=event.new_status).inc()
        try:
            await self.notifier.status_changed(event)
        except Exception:
            logger.exception(f"Status notification failed for report {event.report.id}")

    async def _save_files(self, uploads: list[Upload]) -> list[StoredFile]:
        stored: list[StoredFile] = []
        try:
            for upload in uploads:
                stored.append(await self.store.save(upload))
        except Exception:
            await self._discard_files(stored)
            raise
        return stored

    async def _commit_with_files(self, db: AsyncSession, stored: list[StoredFile]) -> None:
        """Commit, removing freshly written files if the rows referencing them never land."""
        try:
            await db.commit()
        except Exception:
            logger.exception(f"Commit failed, discarding {len(stored)} stored attachment file(s)")
            await db.rollback()
            await self._discard_files(stored)
            raise

    async def _discard_files(self, stored: list[StoredFile]) -> None:
        for item in stored:
            await self.store.remove(item.filename)

    # Creation

    async def create_report(
        self,
        db: AsyncSession,
        data: NewReport,
        actor: Actor,
        ctx: AuditContext,
        source: str = SOURCE_WEB,
        uploads: list[Upload] | None = None,
    ) -> Report:
        """
        Create a pending report.

        The submitter's external identity is kept only for authenticated,
        non-anonymous submissions. Staff creation (`source="staff"`) requires
        moderator rank and access to the report type.

        Returns:
            The stored report, possibly already assigned by auto-assignment
        """
        uploads = uploads or []
        if source == SOURCE_STAFF:
            guard.require_role(actor, Role.MODERATOR).enforce()
            if not can_access_type(actor.role, data.type):
                guard.deny(DenyReason.FORBIDDEN_TYPE).enforce()
        if len(uploads) > self.max_files_per_report:
            raise InvalidInput(f"Too many files: maximum {self.max_files_per_report} per report")
        for upload in uploads:
            check_upload(upload, self.max_file_size)

        reporter = None if data.anonymous else actor.external_id
        report = Report(
            type=ReportType(data.type).value,
            category=data.category,
            subcategory=data.subcategory,
            priority=Priority(data.priority).value,
            description=data.description,
            target_player_id=data.target_player_id,
            reporter_external_id=reporter,
            reporter_player_id=data.reporter_player_id,
            anonymous=data.anonymous,
            status=ReportStatus.PENDING.value,
        )
        db.add(report)
        await db.flush()

        stored = await self._save_files(uploads)
        for item in stored:
            db.add(
                ReportAttachment(
                    report_id=report.id,
                    filename=item.filename,
                    original_name=item.original_name,
                    file_size=item.file_size,
                    mime_type=item.mime_type,
                )
            )

        # Anonymous submissions leave no identity behind, not even in the audit trail
        audit.record(
            db,
            _SUBMIT_ACTIONS.get(source, audit.REPORT_SUBMIT),
            actor if actor.is_authenticated and not data.anonymous else None,
            ctx,
            report_id=report.id,
            details={"type": report.type, "priority": report.priority, "anonymous": report.anonymous},
        )
        await self._commit_with_files(db, stored)

        reports_created_total.labels(type=report.type, source=source).inc()
        logger.info(f"Report created: id={report.id}, type={report.type}, source={source}")

        try:
            await self.notifier.report_created(report)
        except Exception:
            logger.exception(f"Creation notification failed for report {report.id}")

        report_id = report.id
        if self.auto_assign_on_create:
            await auto_assign(db, self, report)

        return await self._require(db, report_id)

    # Reading

    async def get_report(self, db: AsyncSession, actor: Actor, report_id: int) -> Report:
        report = await self.load(db, report_id)
        guard.can_read(actor, report).enforce()
        return report

    async def list_reports(
        self, db: AsyncSession, actor: Actor, filters: ReportFilters, page: int = 1, limit: int = 20
    ) -> ReportPage:
        """List reports of the types the actor may read, newest first."""
        guard.require_role(actor, Role.SUPPORT).enforce()
        conditions: list[Any] = [Report.type.in_([t.value for t in allowed_types(actor.role)])]
        conditions.extend(_filter_conditions(filters))
        return await self._page(db, conditions, page, limit)

    async def list_own_reports(self, db: AsyncSession, actor: Actor, page: int = 1, limit: int = 20) -> ReportPage:
        if actor.external_id is None:
            guard.deny(DenyReason.UNAUTHENTICATED).enforce()
        return await self._page(db, [Report.reporter_external_id == actor.external_id], page, limit)

    async def _page(self, db: AsyncSession, conditions: list[Any], page: int, limit: int) -> ReportPage:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        total = (await db.execute(select(func.count(Report.id)).where(*conditions))).scalar_one()
        result = await db.execute(
            select(Report)
            .where(*conditions)
            .order_by(Report.created_at.desc(), Report.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        return ReportPage(
            reports=list(result.scalars().all()),
            total=total,
            page=page,
            pages=math.ceil(total / limit) if total else 0,
            limit=limit,
        )

    # Transitions

    async def update_status(
        self,
        db: AsyncSession,
        actor: Actor,
        report_id: int,
        status: ReportStatus,
        notes: str | None,
        ctx: AuditContext,
    ) -> Report:
        """Explicit status change by staff. The updater becomes the handler."""
        report = await self.load(db, report_id)
        guard.can_modify(actor, report).enforce()
        new_status = ReportStatus(status)

        old_status = self._transition(db, report, new_status, actor.id, actor.id, notes)
        audit.record(
            db,
            audit.REPORT_STATUS_UPDATE,
            actor,
            ctx,
            report_id=report.id,
            details={"old_status": old_status, "new_status": new_status.value},
        )
        await db.commit()

        logger.info(f"Report {report.id} status {old_status} -> {new_status.value} by user {actor.id}")
        await self._emit(TransitionEvent(report, old_status, new_status.value, actor))
        return await self._require(db, report.id)

    async def assign(
        self, db: AsyncSession, actor: Actor, report_id: int, assignee_id: int, ctx: AuditContext
    ) -> Report:
        """Assign a pending (or reassign an in-progress) report to a staff member."""
        report = await self.load(db, report_id)
        assignee = await db.get(User, assignee_id)
        guard.can_assign(actor, report, assignee).enforce()
        if report.status not in (ReportStatus.PENDING.value, ReportStatus.IN_PROGRESS.value):
            raise InvalidTransition(f"Cannot assign a {report.status} report")

        old_status = self._transition(db, report, ReportStatus.IN_PROGRESS, assignee.id, actor.id, ASSIGNED_NOTE)
        audit.record(db, audit.REPORT_ASSIGN, actor, ctx, report_id=report.id, details={"assignee_id": assignee.id})
        await db.commit()

        logger.info(f"Report {report.id} assigned to user {assignee.id} by user {actor.id}")
        await self._emit(TransitionEvent(report, old_status, ReportStatus.IN_PROGRESS.value, actor))
        return await self._require(db, report.id)

    async def assign_automatically(self, db: AsyncSession, report: Report, assignee: User) -> bool:
        """
        System assignment used by the balancer.

        Takes pending reports and in-progress reports whose handler account
        was deleted.

        Returns:
            False if the report was picked up in the meantime, is closed, or the
            assignee cannot handle its type
        """
        if report.handled_by is not None or report.status in TERMINAL_STATUSES:
            return False
        if not can_access_type(assignee.role, report.type):
            return False

        old_status = self._transition(db, report, ReportStatus.IN_PROGRESS, assignee.id, None, ASSIGNED_NOTE)
        audit.record(
            db,
            audit.REPORT_AUTO_ASSIGN,
            None,
            audit.SYSTEM_CONTEXT,
            report_id=report.id,
            details={"assignee_id": assignee.id},
        )
        await db.commit()

        logger.info(f"Report {report.id} auto-assigned to user {assignee.id}")
        await self._emit(TransitionEvent(report, old_status, ReportStatus.IN_PROGRESS.value, None))
        return True

    async def reopen(self, db: AsyncSession, actor: Actor, report_id: int, reason: str, ctx: AuditContext) -> Report:
        """Reopen a resolved report on behalf of its original reporter."""
        report = await self.load(db, report_id)
        decision = guard.can_reopen(actor, report)
        if decision.reason == DenyReason.INVALID_STATE:
            raise InvalidTransition("Only resolved reports can be reopened")
        decision.enforce()
        reason = (reason or "").strip()
        if len(reason) < REOPEN_MIN_REASON:
            raise InvalidTransition(f"Reason for reopening must be at least {REOPEN_MIN_REASON} characters")

        old_status = self._transition(
            db, report, ReportStatus.PENDING, None, actor.id, f"Report reopened: {reason}"
        )
        audit.record(db, audit.REPORT_REOPEN, actor, ctx, report_id=report.id, details={"reason": reason})
        await db.commit()

        logger.info(f"Report {report.id} reopened by {actor.external_id}")
        await self._emit(TransitionEvent(report, old_status, ReportStatus.PENDING.value, actor))
        return await self._require(db, report.id)

    # Other mutations

    async def update_details(
        self, db: AsyncSession, actor: Actor, report_id: int, changes: dict[str, Any], ctx: AuditContext
    ) -> Report:
        """Edit priority/category/subcategory/target. Not a status transition, so no history row."""
        guard.require_role(actor, Role.MODERATOR).enforce()
        report = await self.load(db, report_id)
        guard.can_modify(actor, report).enforce()

        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidInput(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

        applied: dict[str, Any] = {}
        for name, value in changes.items():
            if name == "priority" and value is not None:
                value = Priority(value).value
            if name in ("priority", "category") and value is None:
                continue
            if getattr(report, name) != value:
                setattr(report, name, value)
                applied[name] = value

        if applied:
            audit.record(db, audit.REPORT_UPDATE, actor, ctx, report_id=report.id, details=applied)
            await db.commit()
        return await self._require(db, report.id)

    async def add_attachments(
        self, db: AsyncSession, actor: Actor, report_id: int, uploads: list[Upload], ctx: AuditContext
    ) -> list[ReportAttachment]:
        report = await self.load(db, report_id)
        guard.can_modify(actor, report).enforce()
        if not uploads:
            raise InvalidInput("No file uploaded")
        if len(report.attachments) + len(uploads) > self.max_files_per_report:
            raise InvalidInput(f"Too many files: maximum {self.max_files_per_report} per report")
        for upload in uploads:
            check_upload(upload, self.max_file_size)

        stored = await self._save_files(uploads)
        added = []
        for item in stored:
            attachment = ReportAttachment(
                report_id=report.id,
                filename=item.filename,
                original_name=item.original_name,
                file_size=item.file_size,
                mime_type=item.mime_type,
            )
            db.add(attachment)
            added.append(attachment)

        audit.record(
            db,
            audit.REPORT_ATTACHMENT_ADD,
            actor,
            ctx,
            report_id=report.id,
            details={"files": [a.original_name for a in added]},
        )
        await self._commit_with_files(db, stored)
        return added

    async def get_attachment(
        self, db: AsyncSession, actor: Actor, report_id: int, attachment_id: int
    ) -> tuple[ReportAttachment, Path]:
        report = await self.get_report(db, actor, report_id)
        attachment = next((a for a in report.attachments if a.id == attachment_id), None)
        if attachment is None:
            raise NotFound("Attachment not found")
        path = self.store.path_for(attachment.filename)
        if not path.is_file():
            raise NotFound("File not found on server")
        return attachment, path

    async def delete_report(self, db: AsyncSession, actor: Actor, report_id: int, ctx: AuditContext) -> None:
        """Delete a report with its attachments and history (admin+)."""
        guard.can_delete(actor).enforce()
        report = await self._require(db, report_id)
        filenames = [a.filename for a in report.attachments]

        await db.delete(report)
        audit.record(db, audit.REPORT_DELETE, actor, ctx, report_id=report_id, details={"type": report.type})
        await db.commit()

        reports_deleted_total.inc()
        logger.info(f"Report {report_id} deleted by user {actor.id}")
        for filename in filenames:
            await self.store.remove(filename)


def _filter_conditions(filters: ReportFilters) -> list[Any]:
    conditions: list[Any] = []
    if filters.type:
        conditions.append(Report.type == ReportType(filters.type).value)
    if filters.status:
        conditions.append(Report.status == ReportStatus(filters.status).value)
    if filters.priority:
        conditions.append(Report.priority == Priority(filters.priority).value)
    if filters.category:
        conditions.append(Report.category == filters.category)
    if filters.handled_by is not None:
        conditions.append(Report.handled_by == filters.handled_by)
    if filters.reporter_external_id:
        conditions.append(Report.reporter_external_id == filters.reporter_external_id)
    if filters.target_player_id:
        conditions.append(Report.target_player_id.contains(filters.target_player_id, autoescape=True))
    if filters.date_from:
        conditions.append(Report.created_at >= filters.date_from)
    if filters.date_to:
        conditions.append(Report.created_at <= filters.date_to)
    if filters.search:
        conditions.append(
            or_(
                Report.description.contains(filters.search, autoescape=True),
                Report.target_player_id.contains(filters.search, autoescape=True),
                Report.category.contains(filters.search, autoescape=True),
            )
        )
    return conditions
