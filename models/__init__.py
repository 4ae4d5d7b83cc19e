"""Database models."""

from models.audit import AuditLog
from models.report import Priority, Report, ReportAttachment, ReportStatus, ReportStatusHistory
from models.user import User

__all__ = [
    "User",
    "Report",
    "ReportAttachment",
    "ReportStatusHistory",
    "ReportStatus",
    "Priority",
    "AuditLog",
]
