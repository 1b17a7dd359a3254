"""Domain services for AgentKYC."""

from agentkyc_core.domain.services.applications import ApplicationService
from agentkyc_core.domain.services.approvals import ApprovalOutcome, Approver
from agentkyc_core.domain.services.audit import AuditService
from agentkyc_core.domain.services.auto_review import AutoReviewService
from agentkyc_core.domain.services.handles import HandleAllocator, derive_handle
from agentkyc_core.domain.services.jobs import JobQueueService
from agentkyc_core.domain.services.state_machine import (
    StateMachine,
    TransitionErrorKind,
    TransitionResult,
    can_transition,
)

__all__ = [
    "ApplicationService",
    "ApprovalOutcome",
    "Approver",
    "AuditService",
    "AutoReviewService",
    "HandleAllocator",
    "derive_handle",
    "JobQueueService",
    "StateMachine",
    "TransitionErrorKind",
    "TransitionResult",
    "can_transition",
]
