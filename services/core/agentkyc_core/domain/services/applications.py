"""Verification application workflows.

These are the callers of the state machine: owner submission and email
confirmation, reviewer approve / reject / send-test, plus the read paths used
by the admin surface and the public registry.

Where a workflow step sends email, the email is sent first. A failed send
raises ``EmailError`` before any row is written.
"""

import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session as DBSession

from agentkyc_core.config import Settings, get_settings
from agentkyc_core.domain.models import (
    IDENTITY_TYPES,
    VERIFICATION_STATUSES,
    AuditActor,
    VerificationApplication,
    VerificationStatus,
    utcnow,
)
from agentkyc_core.domain.services import emails
from agentkyc_core.domain.services.approvals import ApprovalOutcome, Approver
from agentkyc_core.domain.services.audit import AuditService
from agentkyc_core.domain.services.auto_review import is_absolute_url
from agentkyc_core.domain.services.handles import derive_handle
from agentkyc_core.domain.services.state_machine import (
    StateMachine,
    TransitionErrorKind,
    TransitionResult,
)
from agentkyc_core.infrastructure.email import EmailClient
from agentkyc_core.observability import LogContext, get_logger

logger = get_logger(__name__)

MAX_AGENT_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 2000

# Column widths of the free-text submission fields
MAX_FIELD_LENGTHS = {
    "owner_email": 320,
    "owner_name": 200,
    "identity_link": 2048,
    "agent_url": 2048,
    "agent_platform": 64,
}

_REQUIRED_FIELDS = (
    "owner_name",
    "identity_type",
    "identity_link",
    "agent_description",
    "agent_platform",
)


def badges_for(application: VerificationApplication) -> list[str]:
    """Badges displayed for a verified agent."""
    badges = ["identity"]
    if application.identity_verified:
        badges.append("identity_verified")
    if application.test_task_completed:
        badges.append("behavioral_test")
    return badges


@dataclass
class SubmitResult:
    """Outcome of an owner submission."""

    success: bool
    message: str
    application_id: Optional[str] = None
    error_kind: Optional[TransitionErrorKind] = None


class ApplicationService:
    """Service for verification application workflows."""

    def __init__(
        self,
        db: DBSession,
        settings: Optional[Settings] = None,
        email_client: Optional[EmailClient] = None,
    ):
        """Initialize the application service.

        Args:
            db: SQLAlchemy database session.
            settings: Settings, defaults to the cached process settings.
            email_client: Email transport, defaults to one built from settings.
        """
        self.db = db
        self.settings = settings or get_settings()
        self.email = email_client or EmailClient.from_settings(self.settings)
        self.audit = AuditService(db)
        self.state_machine = StateMachine(db, audit=self.audit)
        self.approver = Approver(db, state_machine=self.state_machine)

    # =========================================================================
    # OWNER FLOW
    # =========================================================================

    def submit(
        self,
        owner_email: str,
        owner_name: str,
        identity_type: str,
        identity_link: str,
        agent_name: str,
        agent_description: str,
        agent_platform: str,
        agent_skills: Optional[list[str]] = None,
        agent_url: Optional[str] = None,
    ) -> SubmitResult:
        """Create or refresh an application and send the confirmation email.

        An application is identified by ``(owner_email, agent_name)``.

        Raises:
            ValueError: If the submission is invalid or the agent is already
                verified.
            EmailError: If the confirmation email could not be sent. Nothing
                is written in that case.
        """
        email = (owner_email or "").strip().lower()
        fields = {
            "owner_name": owner_name,
            "identity_type": identity_type,
            "identity_link": identity_link,
            "agent_description": agent_description,
            "agent_skills": list(agent_skills or []),
            "agent_url": agent_url,
            "agent_platform": agent_platform,
        }
        self._validate_submission(email, agent_name, fields)

        token = secrets.token_hex(32)
        token_fields = {
            "email_token": token,
            "email_token_expires": utcnow()
            + timedelta(hours=self.settings.email_token_ttl_hours),
            "email_verified": False,
        }

        existing = (
            self.db.query(VerificationApplication)
            .filter(
                VerificationApplication.owner_email == email,
                VerificationApplication.agent_name == agent_name,
            )
            .first()
        )

        if existing is None:
            self._send_verification(email, token, agent_name)

            application = VerificationApplication(
                owner_email=email,
                agent_name=agent_name,
                status=VerificationStatus.PENDING,
                **fields,
                **token_fields,
            )
            self.db.add(application)
            self.db.flush()

            logger.info(
                "Application submitted",
                LogContext(actor=email, application_id=application.id),
            )
            return SubmitResult(True, "Verification email sent", application.id)

        if existing.status == VerificationStatus.VERIFIED:
            raise ValueError("This agent is already verified")

        if existing.status in (VerificationStatus.REVIEWING, VerificationStatus.TEST_SENT):
            return SubmitResult(True, "Application already under review", existing.id)

        self._send_verification(email, token, agent_name)

        if existing.status == VerificationStatus.REJECTED:
            result = self.state_machine.transition(
                application_id=existing.id,
                current_status=existing.status,
                new_status=VerificationStatus.PENDING,
                actor=email,
                reason="Re-application after rejection",
                extra_fields={**fields, **token_fields},
            )
            if not result.success:
                return SubmitResult(False, result.error or "", existing.id, result.error_kind)
            return SubmitResult(True, "Verification email sent", existing.id)

        # pending / email_sent: refresh fields without a status change
        matched = (
            self.db.query(VerificationApplication)
            .filter(
                VerificationApplication.id == existing.id,
                VerificationApplication.status == existing.status,
            )
            .update(
                {**fields, **token_fields, "updated_at": utcnow()},
                synchronize_session="fetch",
            )
        )
        if matched == 0:
            return SubmitResult(
                False,
                f"Status already changed (expected {existing.status})",
                existing.id,
                TransitionErrorKind.CONFLICT,
            )
        return SubmitResult(True, "Verification email sent", existing.id)

    def confirm_email(
        self, token: str
    ) -> tuple[VerificationApplication, TransitionResult]:
        """Confirm the owner's email and move the application into review.

        Raises:
            ValueError: If the token is unknown or expired.
        """
        if not token:
            raise ValueError("Token required")

        application = (
            self.db.query(VerificationApplication)
            .filter(VerificationApplication.email_token == token)
            .first()
        )
        if application is None:
            raise ValueError("Invalid or expired token")

        expires = application.email_token_expires
        if expires is None or expires < utcnow():
            raise ValueError("Token expired. Please apply again.")

        result = self.state_machine.transition(
            application_id=application.id,
            current_status=application.status,
            new_status=VerificationStatus.REVIEWING,
            actor=AuditActor.SYSTEM,
            extra_fields={
                "email_verified": True,
                "email_token": None,
                "email_token_expires": None,
            },
        )
        return application, result

    # =========================================================================
    # REVIEWER FLOW
    # =========================================================================

    def approve(
        self,
        application: VerificationApplication,
        actor: str = AuditActor.ADMIN,
        reason: Optional[str] = None,
    ) -> ApprovalOutcome:
        """Approve an application in review, assigning its handle."""
        if application.status not in (VerificationStatus.REVIEWING, VerificationStatus.TEST_SENT):
            return ApprovalOutcome(
                success=False,
                error="Invalid status for approval",
                error_kind=TransitionErrorKind.INVALID_TRANSITION.value,
            )

        test_completed = (
            True
            if application.status == VerificationStatus.TEST_SENT
            else application.test_task_completed
        )
        return self.approver.approve(
            application,
            actor=actor,
            reason=reason or "Approved by admin",
            extra_fields={"test_task_completed": test_completed},
        )

    def reject(
        self,
        application: VerificationApplication,
        reason: str,
        actor: str = AuditActor.ADMIN,
    ) -> TransitionResult:
        """Reject (or revoke) an application.

        Raises:
            ValueError: If no reason is given.
        """
        if not reason or not reason.strip():
            raise ValueError("Rejection reason required")

        return self.state_machine.transition(
            application_id=application.id,
            current_status=application.status,
            new_status=VerificationStatus.REJECTED,
            actor=actor,
            reason=reason.strip(),
        )

    def send_test(
        self,
        application: VerificationApplication,
        task: str,
        actor: str = AuditActor.ADMIN,
    ) -> TransitionResult:
        """Email a behavioral test task and move the application to ``test_sent``.

        Raises:
            ValueError: If the task text is empty.
            EmailError: If the email could not be sent.
        """
        if application.status != VerificationStatus.REVIEWING:
            return TransitionResult.failed(
                TransitionErrorKind.INVALID_TRANSITION, "Invalid status for test task"
            )
        if not task or not task.strip():
            raise ValueError("Test task text required")

        subject, html = emails.test_task_email(
            application.agent_name, application.owner_name, task
        )
        self.email.send(application.owner_email, subject, html)

        return self.state_machine.transition(
            application_id=application.id,
            current_status=application.status,
            new_status=VerificationStatus.TEST_SENT,
            actor=actor,
            reason="Test task sent",
            extra_fields={
                "test_task_sent_at": utcnow(),
                "test_task_notes": task,
            },
        )

    def send_reminder(self, application_id: str) -> bool:
        """Remind the owner of an unanswered test task.

        Returns:
            False if the application has left ``test_sent`` since the reminder
            was scheduled.

        Raises:
            EmailError: If the email could not be sent.
        """
        application = self.get_application(application_id)
        if application is None or application.status != VerificationStatus.TEST_SENT:
            return False

        subject, html = emails.reminder_email(application.agent_name)
        self.email.send(application.owner_email, subject, html)
        logger.info(
            "Test task reminder sent",
            LogContext(actor=AuditActor.SYSTEM, application_id=application_id),
        )
        return True

    # =========================================================================
    # READS
    # =========================================================================

    def get_application(self, application_id: str) -> Optional[VerificationApplication]:
        return (
            self.db.query(VerificationApplication)
            .filter(VerificationApplication.id == application_id)
            .first()
        )

    def list_applications(
        self, status: Optional[str] = None, limit: int = 200
    ) -> list[VerificationApplication]:
        """List applications, newest first."""
        query = self.db.query(VerificationApplication)
        if status:
            if status not in VERIFICATION_STATUSES:
                raise ValueError(f"status must be one of {list(VERIFICATION_STATUSES)}")
            query = query.filter(VerificationApplication.status == status)
        return query.order_by(VerificationApplication.created_at.desc()).limit(limit).all()

    def status_counts(self) -> dict[str, int]:
        counts = {status: 0 for status in VERIFICATION_STATUSES}
        rows = (
            self.db.query(VerificationApplication.status, func.count(VerificationApplication.id))
            .group_by(VerificationApplication.status)
            .all()
        )
        for status, count in rows:
            counts[status] = count
        return counts

    def applications_for_email(self, email: str) -> list[VerificationApplication]:
        normalized = (email or "").strip().lower()
        if not normalized:
            raise ValueError("Email required")
        return (
            self.db.query(VerificationApplication)
            .filter(VerificationApplication.owner_email == normalized)
            .order_by(VerificationApplication.created_at.asc())
            .all()
        )

    def list_verified(
        self, skill: Optional[str] = None, platform: Optional[str] = None
    ) -> list[VerificationApplication]:
        """Public registry, most recently approved first."""
        query = self.db.query(VerificationApplication).filter(
            VerificationApplication.status == VerificationStatus.VERIFIED
        )
        if platform:
            query = query.filter(VerificationApplication.agent_platform == platform)

        agents = query.order_by(VerificationApplication.approved_at.desc()).all()

        # JSON containment is not portable across backends
        if skill:
            agents = [a for a in agents if skill in (a.agent_skills or [])]
        return agents

    def count_verified(self) -> int:
        return (
            self.db.query(func.count(VerificationApplication.id))
            .filter(VerificationApplication.status == VerificationStatus.VERIFIED)
            .scalar()
        ) or 0

    def get_verified_by_handle(self, handle: str) -> Optional[VerificationApplication]:
        return (
            self.db.query(VerificationApplication)
            .filter(
                VerificationApplication.handle == handle,
                VerificationApplication.status == VerificationStatus.VERIFIED,
            )
            .first()
        )

    def stale_test_applications(self, older_than: timedelta) -> list[VerificationApplication]:
        """Applications whose test task has gone unanswered for ``older_than``."""
        cutoff = utcnow() - older_than
        return (
            self.db.query(VerificationApplication)
            .filter(
                VerificationApplication.status == VerificationStatus.TEST_SENT,
                VerificationApplication.test_task_sent_at < cutoff,
            )
            .order_by(VerificationApplication.test_task_sent_at.asc())
            .all()
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _validate_submission(
        self, email: str, agent_name: str, fields: dict[str, Any]
    ) -> None:
        required = {"owner_email": email, "agent_name": agent_name}
        for name in _REQUIRED_FIELDS:
            required[name] = fields[name]
        missing = sorted(name for name, value in required.items() if not value)
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        if derive_handle(agent_name) is None:
            raise ValueError("Agent name must contain at least one alphanumeric character")
        if len(agent_name) > MAX_AGENT_NAME_LENGTH:
            raise ValueError(f"Agent name must be {MAX_AGENT_NAME_LENGTH} characters or less")
        if len(fields["agent_description"]) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less")
        values = {"owner_email": email, **fields}
        for name, limit in MAX_FIELD_LENGTHS.items():
            if values[name] and len(values[name]) > limit:
                raise ValueError(f"{name} must be {limit} characters or less")
        if fields["identity_type"] not in IDENTITY_TYPES:
            raise ValueError(f"identity_type must be one of {list(IDENTITY_TYPES)}")
        if not is_absolute_url(fields["identity_link"]):
            raise ValueError("Identity link must be a valid URL")

    def _send_verification(self, email: str, token: str, agent_name: str) -> None:
        subject, html = emails.verification_email(
            self.settings.base_url,
            token,
            agent_name,
            ttl_hours=self.settings.email_token_ttl_hours,
        )
        self.email.send(email, subject, html)
