"""Domain errors raised by the report services."""

from enum import Enum


class DenyReason(str, Enum):
    """Stable reason codes for access-control denials."""

    UNAUTHENTICATED = "UNAUTHENTICATED"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN_TYPE = "FORBIDDEN_TYPE"
    FORBIDDEN_ASSIGNED_TO_OTHER = "FORBIDDEN_ASSIGNED_TO_OTHER"
    FORBIDDEN_ROLE = "FORBIDDEN_ROLE"
    FORBIDDEN_NOT_REPORTER = "FORBIDDEN_NOT_REPORTER"
    FORBIDDEN_ASSIGNEE_TYPE = "FORBIDDEN_ASSIGNEE_TYPE"
    FORBIDDEN_SELF = "FORBIDDEN_SELF"
    INVALID_STATE = "INVALID_STATE"


class ReportDeskError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(ReportDeskError):
    """Referenced report, user or attachment does not exist."""

    status_code = 404


class Forbidden(ReportDeskError):
    """The access-control guard denied the operation."""

    status_code = 403

    def __init__(self, reason: DenyReason, message: str | None = None) -> None:
        super().__init__(message or reason.value)
        self.reason = reason
        if reason == DenyReason.UNAUTHENTICATED:
            self.status_code = 401


class InvalidTransition(ReportDeskError):
    """The requested status change is not valid for the report's current state."""

    status_code = 400


class InvalidInput(ReportDeskError):
    """Request data rejected by a service-level check (uploads, limits)."""

    status_code = 400
