"""Report submission, triage and lifecycle endpoints."""

import logging
import re
import time
from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_audit_context, get_db, get_lifecycle, submit_rate_limit
from core.auth import game_api_key_auth, get_current_actor, require_actor
from core.guard import ANONYMOUS, Actor
from core.metrics import report_submit_latency_seconds
from core.roles import ReportType
from models.report import Priority, ReportStatus
from services.attachments import Upload
from services.audit import AuditContext
from services.lifecycle import (
    SOURCE_GAME,
    SOURCE_STAFF,
    SOURCE_WEB,
    NewReport,
    ReportFilters,
    ReportLifecycle,
    ReportPage,
)

router = APIRouter(prefix="/reports", tags=["reports"])
logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")


def strip_html(value: str | None) -> str | None:
    """Remove HTML tags and surrounding whitespace from free-text input."""
    if value is None:
        return None
    return _TAG_RE.sub("", value).strip()


class ReportIn(BaseModel):
    """Input model for creating a report."""

    type: ReportType
    category: str = Field(min_length=1, max_length=50)
    subcategory: str | None = Field(default=None, max_length=50)
    priority: Priority = Priority.MEDIUM
    description: str = Field(min_length=10, max_length=2000)
    target_player_id: str | None = Field(default=None, max_length=100)
    anonymous: bool = False

    @field_validator("category", "description", mode="before")
    @classmethod
    def _strip_required(cls, value: object) -> object:
        return strip_html(value) if isinstance(value, str) else value

    @field_validator("subcategory", "target_player_id", mode="before")
    @classmethod
    def _strip_optional(cls, value: object) -> object:
        # Empty form fields arrive as ""
        return (strip_html(value) or None) if isinstance(value, str) else value

    def to_new_report(self, reporter_player_id: str | None = None) -> NewReport:
        return NewReport(
            type=self.type,
            category=self.category,
            subcategory=self.subcategory,
            priority=self.priority,
            description=self.description,
            target_player_id=self.target_player_id,
            reporter_player_id=reporter_player_id,
            anonymous=self.anonymous,
        )


class GameReportIn(ReportIn):
    """Report forwarded by the game server on behalf of a player."""

    reporter_player_id: str | None = Field(default=None, max_length=100)


class StatusUpdateIn(BaseModel):
    status: ReportStatus
    notes: str | None = Field(default=None, max_length=1000)


class AssignIn(BaseModel):
    assignee_id: int


class ReopenIn(BaseModel):
    reason: str = Field(max_length=1000)


class ReportDetailsIn(BaseModel):
    """Editable report fields. Unknown fields (including `type`) are rejected."""

    model_config = ConfigDict(extra="forbid")

    priority: Priority | None = None
    category: str | None = Field(default=None, min_length=1, max_length=50)
    subcategory: str | None = Field(default=None, max_length=50)
    target_player_id: str | None = Field(default=None, max_length=100)


class AttachmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    original_name: str
    file_size: int
    mime_type: str
    uploaded_at: datetime


class StatusHistoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    old_status: str | None
    new_status: str
    changed_by: int | None
    notes: str | None
    changed_at: datetime


class ReportSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    category: str
    subcategory: str | None
    priority: str
    status: str
    target_player_id: str | None
    anonymous: bool
    handled_by: int | None
    created_at: datetime
    updated_at: datetime


class ReportOut(ReportSummaryOut):
    description: str
    reporter_external_id: str | None
    reporter_player_id: str | None
    attachments: list[AttachmentOut] = []
    status_history: list[StatusHistoryOut] = []


class ReportPageOut(BaseModel):
    reports: list[ReportSummaryOut]
    total: int
    page: int
    pages: int
    limit: int


class SubmittedOut(BaseModel):
    id: int
    status: str


def _page_out(page: ReportPage) -> ReportPageOut:
    return ReportPageOut(
        reports=[ReportSummaryOut.model_validate(r) for r in page.reports],
        total=page.total,
        page=page.page,
        pages=page.pages,
        limit=page.limit,
    )


async def _read_uploads(files: list[UploadFile] | None) -> list[Upload]:
    uploads = []
    for file in files or []:
        if not file.filename:
            continue
        uploads.append(
            Upload(
                original_name=file.filename,
                content=await file.read(),
                mime_type=file.content_type or "application/octet-stream",
            )
        )
    return uploads


def report_form(
    type: ReportType = Form(...),
    category: str = Form(...),
    description: str = Form(...),
    subcategory: str | None = Form(None),
    priority: Priority = Form(Priority.MEDIUM),
    target_player_id: str | None = Form(None),
    anonymous: bool = Form(False),
) -> ReportIn:
    """Validate the multipart submission form with the same rules as JSON input."""
    try:
        return ReportIn(
            type=type,
            category=category,
            subcategory=subcategory,
            priority=priority,
            description=description,
            target_player_id=target_player_id,
            anonymous=anonymous,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e


@router.post("/submit", status_code=201, dependencies=[Depends(submit_rate_limit)])
async def submit_report(
    body: ReportIn = Depends(report_form),
    files: list[UploadFile] | None = File(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    ctx: AuditContext = Depends(get_audit_context),
) -> SubmittedOut:
    """
    Submit a report from the public web form.

    Signed-in submitters are recorded as the reporter unless they ask to stay
    anonymous; signed-out submissions are always anonymous to staff.

    Returns:
        Report ID and initial status
    """
    t0 = time.perf_counter()
    try:
        uploads = await _read_uploads(files)
        report = await lifecycle.create_report(db, body.to_new_report(), actor, ctx, SOURCE_WEB, uploads)
        return SubmittedOut(id=report.id, status=report.status)
    finally:
        report_submit_latency_seconds.observe(time.perf_counter() - t0)


@router.post("/submit/game", status_code=201, dependencies=[Depends(game_api_key_auth)])
async def submit_game_report(
    body: GameReportIn,
    db: AsyncSession = Depends(get_db),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    ctx: AuditContext = Depends(get_audit_context),
) -> SubmittedOut:
    """Submit a report from the game server (authenticated by API key)."""
    t0 = time.perf_counter()
    try:
        data = body.to_new_report(reporter_player_id=body.reporter_player_id)
        report = await lifecycle.create_report(db, data, ANONYMOUS, ctx, SOURCE_GAME)
        return SubmittedOut(id=report.id, status=report.status)
    finally:
        report_submit_latency_seconds.observe(time.perf_counter() - t0)


@router.post("", status_code=201)
async def create_staff_report(
    body: ReportIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    ctx: AuditContext = Depends(get_audit_context),
) -> ReportOut:
    """Create a report on behalf of a player (moderator+)."""
    report = await lifecycle.create_report(db, body.to_new_report(), actor, ctx, SOURCE_STAFF)
    return ReportOut.model_validate(report)


@router.get("")
async def list_reports(
    type: ReportType | None = None,
    status: ReportStatus | None = None,
    priority: Priority | None = None,
    category: str | None = None,
    handled_by: int | None = None,
    target_player_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
) -> ReportPageOut:
    """List reports visible to the caller's role, newest first."""
    filters = ReportFilters(
        type=type,
        status=status,
        priority=priority,
        category=category,
        handled_by=handled_by,
        target_player_id=target_player_id,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )
    return _page_out(await lifecycle.list_reports(db, actor, filters, page=page, limit=limit))


@router.get("/mine")
async def list_my_reports(
    page: int = 1,
    limit: int = 20,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
) -> ReportPageOut:
    """Reports submitted by the caller under their own identity."""
    return _page_out(await lifecycle.list_own_reports(db, actor, page=page, limit=limit))


@router.get("/{report_id}")
async def get_report(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
) -> ReportOut:
    report = await lifecycle.get_report(db, actor, report_id)
    return ReportOut.model_validate(report)


@router.patch("/{report_id}/status")
async def update_report_status(
    report_id: int,
    body: StatusUpdateIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    ctx: AuditContext = Depends(get_audit_context),
) -> ReportOut:
    report = await lifecycle.update_status(db, actor, report_id, body.status, strip_html(body.notes), ctx)
    return ReportOut.model_validate(report)


@router.patch("/{report_id}/assign")
async def assign_report(
    report_id: int,
    body: AssignIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    ctx: AuditContext = Depends(get_audit_context),
) -> ReportOut:
    """Assign the report to a staff member (moderator+)."""
    report = await lifecycle.assign(db, actor, report_id, body.assignee_id, ctx)
    return ReportOut.model_validate(report)


@router.patch("/{report_id}")
async def update_report_details(
    report_id: int,
    body: ReportDetailsIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    ctx: AuditContext = Depends(get_audit_context),
) -> ReportOut:
    changes = body.model_dump(exclude_unset=True)
    for name in ("category", "subcategory", "target_player_id"):
        if name in changes:
            changes[name] = strip_html(changes[name])
    report = await lifecycle.update_details(db, actor, report_id, changes, ctx)
    return ReportOut.model_validate(report)


@router.post("/{report_id}/attachments", status_code=201)
async def add_attachments(
    report_id: int,
    files: list[UploadFile] = File(...),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    ctx: AuditContext = Depends(get_audit_context),
) -> list[AttachmentOut]:
    added = await lifecycle.add_attachments(db, actor, report_id, await _read_uploads(files), ctx)
    return [AttachmentOut.model_validate(a) for a in added]


@router.get("/{report_id}/attachments/{attachment_id}")
async def download_attachment(
    report_id: int,
    attachment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
) -> FileResponse:
    attachment, path = await lifecycle.get_attachment(db, actor, report_id, attachment_id)
    return FileResponse(path, media_type=attachment.mime_type, filename=attachment.original_name)


@router.post("/{report_id}/reopen")
async def reopen_report(
    report_id: int,
    body: ReopenIn,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    ctx: AuditContext = Depends(get_audit_context),
) -> ReportOut:
    """Reopen a resolved report. Only its original reporter may do this."""
    report = await lifecycle.reopen(db, actor, report_id, strip_html(body.reason) or "", ctx)
    return ReportOut.model_validate(report)


@router.delete("/{report_id}", status_code=204)
async def delete_report(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
    lifecycle: ReportLifecycle = Depends(get_lifecycle),
    ctx: AuditContext = Depends(get_audit_context),
) -> None:
    """Delete a report with its history and attachments (admin+)."""
    await lifecycle.delete_report(db, actor, report_id, ctx)
