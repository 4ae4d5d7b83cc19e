"""Staff roles, their ordering and the report types each role may handle."""

from enum import Enum


class Role(str, Enum):
    """Staff role. Declaration order is the authorization order."""

    SUPPORT = "support"
    MODERATOR = "moderator"
    ADMIN = "admin"
    OWNER = "owner"


class ReportType(str, Enum):
    """Kind of report; fixed when the report is created."""

    PLAYER_REPORT = "player_report"
    BUG_REPORT = "bug_report"
    FEEDBACK = "feedback"


ROLE_RANK: dict[Role, int] = {
    Role.SUPPORT: 1,
    Role.MODERATOR: 2,
    Role.ADMIN: 3,
    Role.OWNER: 4,
}

# Report types each role may read and handle
TYPE_PERMISSIONS: dict[Role, frozenset[ReportType]] = {
    Role.SUPPORT: frozenset({ReportType.BUG_REPORT, ReportType.FEEDBACK}),
    Role.MODERATOR: frozenset(ReportType),
    Role.ADMIN: frozenset(ReportType),
    Role.OWNER: frozenset(ReportType),
}


def rank(role: Role | str) -> int:
    """Return the numeric rank of a role (support=1 ... owner=4)."""
    return ROLE_RANK[Role(role)]


def dominates(actor_role: Role | str, required_role: Role | str) -> bool:
    """Return True if `actor_role` is at least `required_role`."""
    return rank(actor_role) >= rank(required_role)


def allowed_types(role: Role | str) -> frozenset[ReportType]:
    """Return the report types a role may access."""
    return TYPE_PERMISSIONS[Role(role)]


def can_access_type(role: Role | str | None, report_type: ReportType | str) -> bool:
    """Return True if `role` may access reports of `report_type`."""
    if role is None:
        return False
    return ReportType(report_type) in allowed_types(role)


def eligible_roles(report_type: ReportType | str) -> list[Role]:
    """Return the roles allowed to handle `report_type`, lowest rank first."""
    return [role for role in Role if can_access_type(role, report_type)]
