"""Access-control decisions for reports and staff accounts.

Every function here is pure: it looks only at the actor and the objects
passed in and returns a `Decision`. Callers turn a denial into an error
(see `Decision.enforce`) before touching the database.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.errors import DenyReason, Forbidden, NotFound
from core.metrics import access_denied_total
from core.roles import Role, can_access_type, dominates

if TYPE_CHECKING:
    from models.report import Report
    from models.user import User


@dataclass(frozen=True)
class Actor:
    """Identity attached to a request.

    Anonymous callers have no id, external id or role.
    """

    id: int | None = None
    external_id: str | None = None
    role: Role | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.id is not None and self.role is not None

    @classmethod
    def from_user(cls, user: "User") -> "Actor":
        return cls(id=user.id, external_id=user.external_id, role=Role(user.role))


ANONYMOUS = Actor()


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DenyReason | None = None

    def __post_init__(self) -> None:
        if not self.allowed and self.reason is None:
            raise ValueError("A denial needs a reason")

    def __bool__(self) -> bool:
        return self.allowed

    def enforce(self) -> None:
        """Raise the matching error if the decision is a denial."""
        if self.allowed:
            return
        access_denied_total.labels(reason=self.reason.value).inc()
        if self.reason == DenyReason.NOT_FOUND:
            raise NotFound("Not found")
        raise Forbidden(self.reason)


ALLOW = Decision(True)


def deny(reason: DenyReason) -> Decision:
    return Decision(False, reason)


def _is_admin(actor: Actor) -> bool:
    return actor.role is not None and dominates(actor.role, Role.ADMIN)


def require_role(actor: Actor | None, role: Role) -> Decision:
    """Gate for "at least `role`" checks."""
    if actor is None or not actor.is_authenticated:
        return deny(DenyReason.UNAUTHENTICATED)
    if not dominates(actor.role, role):
        return deny(DenyReason.FORBIDDEN_ROLE)
    return ALLOW


def can_read(actor: Actor | None, report: "Report | None") -> Decision:
    if actor is None or not actor.is_authenticated:
        return deny(DenyReason.UNAUTHENTICATED)
    if report is None:
        return deny(DenyReason.NOT_FOUND)
    if _is_admin(actor):
        return ALLOW
    if not can_access_type(actor.role, report.type):
        return deny(DenyReason.FORBIDDEN_TYPE)
    return ALLOW


def can_modify(actor: Actor | None, report: "Report | None") -> Decision:
    """
    Decide whether `actor` may change `report`.

    Admins and owners may change any report. Everyone else needs access to the
    report type, and may only touch reports that are unassigned or assigned to
    themselves.
    """
    if actor is None or not actor.is_authenticated:
        return deny(DenyReason.UNAUTHENTICATED)
    if report is None:
        return deny(DenyReason.NOT_FOUND)
    if _is_admin(actor):
        return ALLOW
    if not can_access_type(actor.role, report.type):
        return deny(DenyReason.FORBIDDEN_TYPE)
    if report.handled_by is not None and report.handled_by != actor.id:
        return deny(DenyReason.FORBIDDEN_ASSIGNED_TO_OTHER)
    return ALLOW


def can_assign(actor: Actor | None, report: "Report | None", assignee: "User | None") -> Decision:
    """Moderator+ with modify rights, and an assignee able to handle the report type."""
    decision = require_role(actor, Role.MODERATOR)
    if not decision:
        return decision
    decision = can_modify(actor, report)
    if not decision:
        return decision
    if assignee is None:
        return deny(DenyReason.NOT_FOUND)
    if not can_access_type(assignee.role, report.type):
        return deny(DenyReason.FORBIDDEN_ASSIGNEE_TYPE)
    return ALLOW


def can_reopen(actor: Actor | None, report: "Report | None") -> Decision:
    """
    Only the original reporter may reopen, and only a resolved report.

    Anonymous reports store no reporter identity, so nobody can reopen them.
    """
    if actor is None or actor.external_id is None:
        return deny(DenyReason.UNAUTHENTICATED)
    if report is None:
        return deny(DenyReason.NOT_FOUND)
    if report.reporter_external_id is None or report.reporter_external_id != actor.external_id:
        return deny(DenyReason.FORBIDDEN_NOT_REPORTER)
    if report.status != "resolved":
        return deny(DenyReason.INVALID_STATE)
    return ALLOW


def can_delete(actor: Actor | None) -> Decision:
    return require_role(actor, Role.ADMIN)


def can_change_role(actor: Actor | None, target: "User | None", new_role: Role) -> Decision:
    decision = require_role(actor, Role.ADMIN)
    if not decision:
        return decision
    if target is None:
        return deny(DenyReason.NOT_FOUND)
    if new_role == Role.OWNER and actor.role != Role.OWNER:
        return deny(DenyReason.FORBIDDEN_ROLE)
    if target.id == actor.id and not (actor.role == Role.OWNER and new_role == Role.OWNER):
        return deny(DenyReason.FORBIDDEN_SELF)
    if not dominates(actor.role, target.role):
        return deny(DenyReason.FORBIDDEN_ROLE)
    return ALLOW


def can_delete_user(actor: Actor | None, target: "User | None") -> Decision:
    decision = require_role(actor, Role.OWNER)
    if not decision:
        return decision
    if target is None:
        return deny(DenyReason.NOT_FOUND)
    if target.id == actor.id:
        return deny(DenyReason.FORBIDDEN_SELF)
    return ALLOW
