"""Verification status state machine.

Every status change in the system goes through ``StateMachine.transition``.
It enforces the allowed-transition table, persists with an optimistic lock on
the status the caller last read, and records an audit entry for each change
that was actually applied.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from agentkyc_core.domain.models import (
    AuditAction,
    VerificationApplication,
    VerificationStatus,
    utcnow,
)
from agentkyc_core.domain.services.audit import AuditService
from agentkyc_core.observability import get_collector, get_logger

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    VerificationStatus.PENDING: frozenset(
        {VerificationStatus.EMAIL_SENT, VerificationStatus.REVIEWING, VerificationStatus.REJECTED}
    ),
    VerificationStatus.EMAIL_SENT: frozenset(
        {VerificationStatus.REVIEWING, VerificationStatus.REJECTED}
    ),
    VerificationStatus.REVIEWING: frozenset(
        {VerificationStatus.TEST_SENT, VerificationStatus.VERIFIED, VerificationStatus.REJECTED}
    ),
    VerificationStatus.TEST_SENT: frozenset(
        {VerificationStatus.VERIFIED, VerificationStatus.REJECTED, VerificationStatus.REVIEWING}
    ),
    # Revocation
    VerificationStatus.VERIFIED: frozenset({VerificationStatus.REJECTED}),
    # Re-application
    VerificationStatus.REJECTED: frozenset({VerificationStatus.PENDING}),
}

# Columns a caller may set alongside a status change
_PROTECTED_FIELDS = {"id", "status", "created_at"}


def can_transition(from_status: str, to_status: str) -> bool:
    """Check whether ``from_status -> to_status`` is in the transition table."""
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


class TransitionErrorKind(str, Enum):
    """Why a transition was not applied."""

    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    DUPLICATE_HANDLE = "duplicate_handle"
    STORAGE = "storage"


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a transition attempt.

    Invalid transitions and lost races are expected outcomes and are returned
    here rather than raised.
    """

    success: bool
    error: Optional[str] = None
    error_kind: Optional[TransitionErrorKind] = None

    @classmethod
    def ok(cls) -> "TransitionResult":
        return cls(success=True)

    @classmethod
    def failed(cls, kind: TransitionErrorKind, error: str) -> "TransitionResult":
        return cls(success=False, error=error, error_kind=kind)

    @property
    def is_conflict(self) -> bool:
        return self.error_kind == TransitionErrorKind.CONFLICT


class StateMachine:
    """Validates and persists status transitions for applications."""

    def __init__(self, db: DBSession, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    def transition(
        self,
        application_id: str,
        current_status: str,
        new_status: str,
        actor: str,
        reason: Optional[str] = None,
        extra_fields: Optional[dict[str, Any]] = None,
    ) -> TransitionResult:
        """Move an application from ``current_status`` to ``new_status``.

        Args:
            application_id: Application to update.
            current_status: Status the caller read. The update only applies if
                the stored status still equals it.
            new_status: Target status.
            actor: Who is making the change.
            reason: Optional reason, stored as rejection_reason on rejection.
            extra_fields: Additional columns to set in the same update.

        Returns:
            TransitionResult describing success or the kind of failure.
        """
        collector = get_collector()

        if not can_transition(current_status, new_status):
            collector.increment("transitions_total", labels={"outcome": "invalid"})
            return TransitionResult.failed(
                TransitionErrorKind.INVALID_TRANSITION,
                f"Cannot transition from {current_status} to {new_status}",
            )

        now = utcnow()
        values: dict[str, Any] = {
            key: value
            for key, value in (extra_fields or {}).items()
            if key not in _PROTECTED_FIELDS
        }
        values.update(status=new_status, updated_at=now, last_action_at=now)

        if new_status == VerificationStatus.VERIFIED:
            values["approved_at"] = now
            values["approved_by"] = actor
        if new_status == VerificationStatus.REJECTED and reason:
            values["rejection_reason"] = reason

        try:
            with self.db.begin_nested():
                matched = (
                    self.db.query(VerificationApplication)
                    .filter(
                        VerificationApplication.id == application_id,
                        VerificationApplication.status == current_status,
                    )
                    .update(values, synchronize_session="fetch")
                )
        except IntegrityError as e:
            collector.increment("transitions_total", labels={"outcome": "duplicate"})
            logger.warning(
                "Transition hit a uniqueness constraint",
                application_id=application_id,
                before=current_status,
                after=new_status,
                error=str(e.orig),
            )
            return TransitionResult.failed(
                TransitionErrorKind.DUPLICATE_HANDLE,
                "Handle already taken by another application",
            )
        except SQLAlchemyError as e:
            collector.increment("transitions_total", labels={"outcome": "storage_error"})
            logger.error(
                "Transition update failed",
                exc_info=True,
                application_id=application_id,
                before=current_status,
                after=new_status,
            )
            return TransitionResult.failed(TransitionErrorKind.STORAGE, str(e))

        if matched == 0:
            collector.increment("transitions_total", labels={"outcome": "conflict"})
            logger.info(
                "Transition lost optimistic lock",
                application_id=application_id,
                before=current_status,
                after=new_status,
                actor=actor,
            )
            return TransitionResult.failed(
                TransitionErrorKind.CONFLICT,
                f"Status already changed (expected {current_status})",
            )

        self.audit.write(
            actor=actor,
            action=AuditAction.STATUS_CHANGE,
            application_id=application_id,
            before_state=current_status,
            after_state=new_status,
            reason=reason,
        )

        collector.increment("transitions_total", labels={"outcome": "applied"})
        logger.info(
            "Transition applied",
            application_id=application_id,
            before=current_status,
            after=new_status,
            actor=actor,
        )
        return TransitionResult.ok()
