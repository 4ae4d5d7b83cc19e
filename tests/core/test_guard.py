"""Tests for access-control decisions."""

import pytest

from core import guard
from core.errors import DenyReason, Forbidden, NotFound
from core.guard import ANONYMOUS, Actor
from core.roles import Role
from models.report import Report
from models.user import User


def _report(type="player_report", status="pending", handled_by=None, reporter=None):
    return Report(
        id=1,
        type=type,
        category="cheating",
        description="Player is flying around the map",
        priority="medium",
        status=status,
        handled_by=handled_by,
        reporter_external_id=reporter,
        anonymous=reporter is None,
    )


def _actor(user_id, role, external_id=None):
    return Actor(id=user_id, external_id=external_id or f"ext-{user_id}", role=role)


def _user(user_id, role):
    return User(id=user_id, external_id=f"ext-{user_id}", username=f"user{user_id}", role=role.value)


class TestModifyGate:
    """can_modify for ranked and unranked staff."""

    def test_moderator_blocked_by_other_handler(self):
        """Test that M1 cannot modify a report handled by M2."""
        m1 = _actor(1, Role.MODERATOR)
        decision = guard.can_modify(m1, _report(handled_by=2))
        assert not decision
        assert decision.reason == DenyReason.FORBIDDEN_ASSIGNED_TO_OTHER

    def test_moderator_allowed_when_unassigned_or_own(self):
        m1 = _actor(1, Role.MODERATOR)
        assert guard.can_modify(m1, _report(handled_by=None))
        assert guard.can_modify(m1, _report(handled_by=1))

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.OWNER])
    def test_admin_bypasses_assignment(self, role):
        assert guard.can_modify(_actor(9, role), _report(handled_by=2))

    def test_support_cannot_modify_player_report(self):
        decision = guard.can_modify(_actor(1, Role.SUPPORT), _report(type="player_report"))
        assert decision.reason == DenyReason.FORBIDDEN_TYPE

    def test_anonymous_denied(self):
        assert guard.can_modify(ANONYMOUS, _report()).reason == DenyReason.UNAUTHENTICATED

    def test_missing_report(self):
        assert guard.can_modify(_actor(1, Role.OWNER), None).reason == DenyReason.NOT_FOUND


class TestReadGate:
    def test_support_reads_bug_reports_only(self):
        support = _actor(1, Role.SUPPORT)
        assert guard.can_read(support, _report(type="bug_report", handled_by=5))
        assert not guard.can_read(support, _report(type="player_report"))

    def test_read_ignores_handler(self):
        """Test that reading does not depend on who handles the report."""
        assert guard.can_read(_actor(1, Role.MODERATOR), _report(handled_by=2))


class TestAssignGate:
    def test_support_cannot_assign(self):
        decision = guard.can_assign(_actor(1, Role.SUPPORT), _report(type="bug_report"), _user(2, Role.SUPPORT))
        assert decision.reason == DenyReason.FORBIDDEN_ROLE

    def test_assignee_must_access_type(self):
        decision = guard.can_assign(_actor(1, Role.MODERATOR), _report(), _user(2, Role.SUPPORT))
        assert decision.reason == DenyReason.FORBIDDEN_ASSIGNEE_TYPE

    def test_missing_assignee(self):
        decision = guard.can_assign(_actor(1, Role.MODERATOR), _report(), None)
        assert decision.reason == DenyReason.NOT_FOUND

    def test_moderator_assigns_to_moderator(self):
        assert guard.can_assign(_actor(1, Role.MODERATOR), _report(), _user(2, Role.MODERATOR))


class TestReopenGate:
    def test_reporter_can_reopen_resolved(self):
        actor = Actor(external_id="player-7")
        assert guard.can_reopen(actor, _report(status="resolved", reporter="player-7"))

    @pytest.mark.parametrize("status", ["pending", "in_progress", "rejected"])
    def test_only_resolved_reports(self, status):
        actor = Actor(external_id="player-7")
        decision = guard.can_reopen(actor, _report(status=status, reporter="player-7"))
        assert decision.reason == DenyReason.INVALID_STATE

    def test_other_user_cannot_reopen(self):
        decision = guard.can_reopen(Actor(external_id="player-8"), _report(status="resolved", reporter="player-7"))
        assert decision.reason == DenyReason.FORBIDDEN_NOT_REPORTER

    def test_anonymous_report_never_reopenable(self):
        """Test that claiming to be the submitter of an anonymous report does not help."""
        decision = guard.can_reopen(Actor(external_id="player-7"), _report(status="resolved", reporter=None))
        assert decision.reason == DenyReason.FORBIDDEN_NOT_REPORTER

    def test_anonymous_caller_rejected(self):
        assert not guard.can_reopen(ANONYMOUS, _report(status="resolved", reporter="player-7"))


class TestRoleChanges:
    def test_admin_cannot_grant_owner(self):
        decision = guard.can_change_role(_actor(1, Role.ADMIN), _user(2, Role.SUPPORT), Role.OWNER)
        assert decision.reason == DenyReason.FORBIDDEN_ROLE

    def test_admin_cannot_change_own_role(self):
        decision = guard.can_change_role(_actor(1, Role.ADMIN), _user(1, Role.ADMIN), Role.MODERATOR)
        assert decision.reason == DenyReason.FORBIDDEN_SELF

    def test_owner_may_grant_owner_to_self(self):
        assert guard.can_change_role(_actor(1, Role.OWNER), _user(1, Role.OWNER), Role.OWNER)

    def test_admin_cannot_demote_owner(self):
        decision = guard.can_change_role(_actor(1, Role.ADMIN), _user(2, Role.OWNER), Role.SUPPORT)
        assert decision.reason == DenyReason.FORBIDDEN_ROLE

    def test_admin_promotes_support(self):
        assert guard.can_change_role(_actor(1, Role.ADMIN), _user(2, Role.SUPPORT), Role.MODERATOR)

    def test_moderator_cannot_change_roles(self):
        decision = guard.can_change_role(_actor(1, Role.MODERATOR), _user(2, Role.SUPPORT), Role.SUPPORT)
        assert decision.reason == DenyReason.FORBIDDEN_ROLE

    def test_delete_user_owner_only_and_never_self(self):
        assert guard.can_delete_user(_actor(1, Role.OWNER), _user(2, Role.ADMIN))
        assert guard.can_delete_user(_actor(1, Role.OWNER), _user(1, Role.OWNER)).reason == DenyReason.FORBIDDEN_SELF
        assert guard.can_delete_user(_actor(1, Role.ADMIN), _user(2, Role.SUPPORT)).reason == DenyReason.FORBIDDEN_ROLE


class TestEnforce:
    def test_allow_is_silent(self):
        guard.ALLOW.enforce()

    def test_not_found_raises_not_found(self):
        with pytest.raises(NotFound):
            guard.deny(DenyReason.NOT_FOUND).enforce()

    def test_denial_carries_reason(self):
        with pytest.raises(Forbidden) as exc_info:
            guard.deny(DenyReason.FORBIDDEN_TYPE).enforce()
        assert exc_info.value.reason == DenyReason.FORBIDDEN_TYPE
        assert exc_info.value.status_code == 403

    def test_unauthenticated_is_401(self):
        with pytest.raises(Forbidden) as exc_info:
            guard.deny(DenyReason.UNAUTHENTICATED).enforce()
        assert exc_info.value.status_code == 401

    def test_denial_without_reason_is_rejected(self):
        with pytest.raises(ValueError):
            guard.Decision(False)
