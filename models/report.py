"""Report, attachment and status-history models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, utcnow
from core.roles import ReportType


class ReportStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Reports in these states are never picked up by auto-assignment
TERMINAL_STATUSES = (ReportStatus.RESOLVED.value, ReportStatus.REJECTED.value)


class Report(Base):
    """Report submitted from the web form, the game client or by staff."""

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    subcategory: Mapped[str | None] = mapped_column(String(50), nullable=True)
    priority: Mapped[str] = mapped_column(String(8), nullable=False, default=Priority.MEDIUM.value, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    target_player_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reporter_external_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("users.external_id", ondelete="SET NULL"), nullable=True, index=True
    )
    reporter_player_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ReportStatus.PENDING.value, index=True)
    handled_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    attachments: Mapped[list["ReportAttachment"]] = relationship(
        "ReportAttachment", back_populates="report", cascade="all, delete-orphan", order_by="ReportAttachment.id"
    )
    status_history: Mapped[list["ReportStatusHistory"]] = relationship(
        "ReportStatusHistory",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="ReportStatusHistory.id",
    )

    __table_args__ = (
        CheckConstraint("type IN ('player_report','bug_report','feedback')", name="chk_report_type"),
        CheckConstraint("priority IN ('low','medium','high')", name="chk_report_priority"),
        CheckConstraint(
            "status IN ('pending','in_progress','resolved','rejected')", name="chk_report_status"
        ),
        # An anonymous report never keeps the submitter's identity
        CheckConstraint("NOT (anonymous AND reporter_external_id IS NOT NULL)", name="chk_report_anonymous"),
        # Auto-assignment scans for unassigned open reports
        Index(
            "idx_reports_unassigned_open",
            "status",
            postgresql_where=text("handled_by IS NULL AND status IN ('pending','in_progress')"),
        ),
    )

    @property
    def report_type(self) -> ReportType:
        return ReportType(self.type)

    def __repr__(self) -> str:
        return f"<Report(id={self.id}, type={self.type}, status={self.status}, handled_by={self.handled_by})>"


class ReportAttachment(Base):
    """File uploaded with a report; stored on disk under `settings.upload_dir`."""

    __tablename__ = "report_attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    report_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    report: Mapped[Report] = relationship("Report", back_populates="attachments")

    def __repr__(self) -> str:
        return f"<ReportAttachment(id={self.id}, report={self.report_id}, name={self.original_name})>"


class ReportStatusHistory(Base):
    """Append-only log of status transitions."""

    __tablename__ = "report_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    report_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    old_status: Mapped[str] = mapped_column(String(16), nullable=False)
    new_status: Mapped[str] = mapped_column(String(16), nullable=False)
    changed_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    report: Mapped[Report] = relationship("Report", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<ReportStatusHistory(report={self.report_id}, {self.old_status}->{self.new_status})>"
