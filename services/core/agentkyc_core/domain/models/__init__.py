"""Domain models for AgentKYC.

SQLAlchemy ORM models for verification applications, the append-only audit
log, and the deferred-work job queue. All timestamps are stored as naive UTC.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Current time as naive UTC, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_application_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class VerificationStatus(str):
    """Verification application status values."""

    PENDING = "pending"
    EMAIL_SENT = "email_sent"
    REVIEWING = "reviewing"
    TEST_SENT = "test_sent"
    VERIFIED = "verified"
    REJECTED = "rejected"


VERIFICATION_STATUSES = (
    VerificationStatus.PENDING,
    VerificationStatus.EMAIL_SENT,
    VerificationStatus.REVIEWING,
    VerificationStatus.TEST_SENT,
    VerificationStatus.VERIFIED,
    VerificationStatus.REJECTED,
)


class IdentityType(str):
    """Kinds of identity link an owner can provide."""

    GITHUB = "github"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    WEBSITE = "website"
    MOLTBOOK = "moltbook"


IDENTITY_TYPES = (
    IdentityType.GITHUB,
    IdentityType.TWITTER,
    IdentityType.LINKEDIN,
    IdentityType.WEBSITE,
    IdentityType.MOLTBOOK,
)


class AuditActor(str):
    """Well-known audit actors. Humans are recorded by identifier (e.g. email)."""

    ADMIN = "admin"
    SYSTEM = "system"
    AUTOMATION = "automation"


class AuditAction(str):
    """Audit action tags."""

    STATUS_CHANGE = "status_change"
    FLAGGED_FOR_HUMAN = "flagged_for_human"
    ADMIN_LOGIN = "admin_login"


class JobStatus(str):
    """Job status values."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str):
    """Job types understood by the worker."""

    AUTO_REVIEW = "auto_review"
    SEND_REMINDER = "send_reminder"


# =============================================================================
# MODELS
# =============================================================================


class VerificationApplication(Base):
    """One agent-verification workflow instance.

    ``status`` doubles as the optimistic-lock version: every status write is a
    conditional update on the status the caller last read.
    """

    __tablename__ = "verification_applications"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=new_application_id
    )
    status: Mapped[str] = mapped_column(
        Enum(*VERIFICATION_STATUSES, name="verification_status_enum"),
        nullable=False,
        default=VerificationStatus.PENDING,
    )

    # Owner
    owner_email: Mapped[str] = mapped_column(String(320), nullable=False)
    owner_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    email_token_expires: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    identity_link: Mapped[str] = mapped_column(String(2048), nullable=False)
    identity_type: Mapped[str] = mapped_column(
        Enum(*IDENTITY_TYPES, name="identity_type_enum"), nullable=False
    )
    identity_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Agent
    agent_name: Mapped[str] = mapped_column(String(100), nullable=False)
    agent_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    agent_skills: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    agent_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    agent_platform: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    handle: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, unique=True)

    # Behavioral test
    test_task_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    test_task_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    test_task_result: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    test_task_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Review
    reviewer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Badge
    badge_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Automation
    requires_human_override: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    auto_review_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last_action_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_application_status", "status", "requires_human_override", "created_at"),
        Index("idx_application_owner", "owner_email", "agent_name"),
        Index("idx_application_email_token", "email_token"),
    )


class AuditLog(Base):
    """Append-only audit log. Rows are never updated or deleted."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    application_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    actor: Mapped[str] = mapped_column(String(320), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    before_state: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    after_state: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("idx_audit_created", "created_at"),
        Index("idx_audit_application", "application_id"),
        Index("idx_audit_cap", "actor", "action", "after_state", "created_at"),
    )


class AgentJob(Base):
    """Deferred unit of work, leased by exactly one worker at a time."""

    __tablename__ = "agent_jobs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    job_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(
        Enum("queued", "processing", "completed", "failed", name="agent_job_status_enum"),
        nullable=False,
        default=JobStatus.QUEUED,
    )
    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    locked_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    dedupe_key: Mapped[Optional[str]] = mapped_column(String(256), nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_agent_jobs_due", "status", "scheduled_for"),)
