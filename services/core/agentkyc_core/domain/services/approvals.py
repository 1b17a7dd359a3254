"""Approval of an application into the verified registry.

Shared by the admin approve action and the auto-review engine: derive a
handle, allocate a unique one, mint a badge token, and transition to
``verified``. If the storage unique constraint reports that the allocated
handle was taken in the meantime, the allocation is re-run once.
"""

import secrets
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession

from agentkyc_core.domain.models import VerificationApplication, VerificationStatus
from agentkyc_core.domain.services.handles import HandleAllocator, derive_handle
from agentkyc_core.domain.services.state_machine import (
    StateMachine,
    TransitionErrorKind,
)
from agentkyc_core.observability import get_logger

logger = get_logger(__name__)

INVALID_NAME = "invalid_name"


def mint_badge_token() -> str:
    """Random opaque credential used to render the public badge."""
    return secrets.token_hex(16)


@dataclass(frozen=True)
class ApprovalOutcome:
    """Result of an approval attempt.

    ``error_kind`` is ``invalid_name``, a HandleErrorKind value, or a
    TransitionErrorKind value.
    """

    success: bool
    handle: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def transition_attempted(self) -> bool:
        """True when the failure came from the state machine, not the handle."""
        return self.success or self.error_kind in {k.value for k in TransitionErrorKind}


class Approver:
    """Approves applications through the state machine."""

    def __init__(self, db: DBSession, state_machine: Optional[StateMachine] = None):
        self.db = db
        self.state_machine = state_machine or StateMachine(db)
        self.handles = HandleAllocator(db)

    def approve(
        self,
        application: VerificationApplication,
        actor: str,
        reason: Optional[str] = None,
        extra_fields: Optional[dict[str, Any]] = None,
    ) -> ApprovalOutcome:
        """Verify ``application`` from its currently read status.

        Args:
            application: The application as read by the caller.
            actor: Who approves.
            reason: Reason recorded in the audit entry.
            extra_fields: Additional columns to set with the transition.

        Returns:
            ApprovalOutcome with the assigned handle on success.
        """
        base_handle = derive_handle(application.agent_name)
        if base_handle is None:
            return ApprovalOutcome(
                success=False,
                error="Invalid agent name for handle generation",
                error_kind=INVALID_NAME,
            )

        badge_token = mint_badge_token()
        current_status = application.status

        for attempt in range(2):
            allocation = self.handles.allocate_unique(base_handle, application.id)
            if not allocation.ok:
                return ApprovalOutcome(
                    success=False,
                    error=allocation.error,
                    error_kind=allocation.error_kind.value,
                )

            fields = {
                "handle": allocation.handle,
                "badge_token": badge_token,
                "identity_verified": True,
            }
            fields.update(extra_fields or {})

            result = self.state_machine.transition(
                application_id=application.id,
                current_status=current_status,
                new_status=VerificationStatus.VERIFIED,
                actor=actor,
                reason=reason,
                extra_fields=fields,
            )

            if result.success:
                return ApprovalOutcome(success=True, handle=allocation.handle)

            if result.error_kind != TransitionErrorKind.DUPLICATE_HANDLE:
                return ApprovalOutcome(
                    success=False,
                    error=result.error,
                    error_kind=result.error_kind.value,
                )

            logger.warning(
                "Allocated handle was taken before write, re-allocating",
                application_id=application.id,
                handle=allocation.handle,
                attempt=attempt + 1,
            )

        return ApprovalOutcome(
            success=False,
            error=result.error,
            error_kind=result.error_kind.value,
        )
