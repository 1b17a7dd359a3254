"""Unit tests for the Approver.

Tests cover:
- Handle, badge token and identity flag set on approval
- Re-running the allocation once when the allocated handle is taken before the write
- Reporting duplicate_handle when the retry collides too
"""

from unittest.mock import patch

from sqlalchemy.orm import Session

from agentkyc_core.domain.models import AuditLog
from agentkyc_core.domain.services.approvals import INVALID_NAME, Approver
from agentkyc_core.domain.services.handles import HandleAllocator
from agentkyc_core.domain.services.state_machine import TransitionErrorKind
from tests.factories import create_application

_real_owner_of = HandleAllocator._owner_of


def _stale_first_lookups(stale_count: int):
    """Report the first ``stale_count`` lookups as free, then read the table."""
    calls = []

    def owner_of(allocator, handle):
        calls.append(handle)
        if len(calls) <= stale_count:
            return None
        return _real_owner_of(allocator, handle)

    return owner_of


class TestApprove:
    """Tests for Approver.approve."""

    def test_approve_sets_registry_fields(self, db_session: Session):
        application = create_application(db_session, agent_name="Research Bot")

        outcome = Approver(db_session).approve(application, actor="admin")

        assert outcome.success is True
        assert outcome.handle == "research-bot"
        db_session.refresh(application)
        assert application.status == "verified"
        assert application.identity_verified is True
        assert len(application.badge_token) == 32

    def test_invalid_name(self, db_session: Session):
        application = create_application(db_session, agent_name="!!!")

        outcome = Approver(db_session).approve(application, actor="admin")

        assert outcome.success is False
        assert outcome.error_kind == INVALID_NAME
        assert outcome.transition_attempted is False

    def test_stale_lookup_is_retried_with_next_handle(self, db_session: Session):
        create_application(db_session, status="verified", handle="bot")
        application = create_application(db_session, agent_name="Bot")

        with patch.object(
            HandleAllocator, "_owner_of", autospec=True, side_effect=_stale_first_lookups(1)
        ):
            outcome = Approver(db_session).approve(application, actor="admin")

        assert outcome.success is True
        assert outcome.handle == "bot-1"
        db_session.refresh(application)
        assert application.status == "verified"
        assert application.handle == "bot-1"
        entries = db_session.query(AuditLog).filter_by(application_id=application.id).all()
        assert len(entries) == 1
        assert entries[0].after_state == "verified"

    def test_second_collision_reports_duplicate_handle(self, db_session: Session):
        create_application(db_session, status="verified", handle="bot")
        application = create_application(db_session, agent_name="Bot")

        with patch.object(
            HandleAllocator, "_owner_of", autospec=True, side_effect=_stale_first_lookups(2)
        ):
            outcome = Approver(db_session).approve(application, actor="admin")

        assert outcome.success is False
        assert outcome.error_kind == TransitionErrorKind.DUPLICATE_HANDLE.value
        db_session.refresh(application)
        assert application.status == "reviewing"
        assert application.handle is None
        assert db_session.query(AuditLog).filter_by(application_id=application.id).count() == 0
