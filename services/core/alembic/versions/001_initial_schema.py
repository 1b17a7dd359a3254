"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-02-02

Creates:
- verification_applications
- audit_logs
- agent_jobs
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

VERIFICATION_STATUSES = (
    "pending",
    "email_sent",
    "reviewing",
    "test_sent",
    "verified",
    "rejected",
)
IDENTITY_TYPES = ("github", "twitter", "linkedin", "website", "moltbook")
JOB_STATUSES = ("queued", "processing", "completed", "failed")


def upgrade() -> None:
    op.create_table(
        "verification_applications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "status",
            sa.Enum(*VERIFICATION_STATUSES, name="verification_status_enum"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("owner_email", sa.String(320), nullable=False),
        sa.Column("owner_name", sa.String(200), nullable=True),
        sa.Column("email_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("email_token", sa.String(64), nullable=True),
        sa.Column("email_token_expires", sa.DateTime, nullable=True),
        sa.Column("identity_link", sa.String(2048), nullable=False),
        sa.Column(
            "identity_type",
            sa.Enum(*IDENTITY_TYPES, name="identity_type_enum"),
            nullable=False,
        ),
        sa.Column("identity_verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("agent_name", sa.String(100), nullable=False),
        sa.Column("agent_description", sa.Text, nullable=True),
        sa.Column("agent_skills", sa.JSON, nullable=False),
        sa.Column("agent_url", sa.String(2048), nullable=True),
        sa.Column("agent_platform", sa.String(64), nullable=True),
        sa.Column("handle", sa.String(50), nullable=True),
        sa.Column("test_task_sent_at", sa.DateTime, nullable=True),
        sa.Column("test_task_completed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("test_task_result", sa.Text, nullable=True),
        sa.Column("test_task_notes", sa.Text, nullable=True),
        sa.Column("reviewer_notes", sa.Text, nullable=True),
        sa.Column("approved_at", sa.DateTime, nullable=True),
        sa.Column("approved_by", sa.String(320), nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("badge_token", sa.String(64), nullable=True),
        sa.Column(
            "requires_human_override", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("auto_review_score", sa.Float, nullable=True),
        sa.Column("last_action_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("handle", name="uq_application_handle"),
    )
    op.create_index(
        "idx_application_status",
        "verification_applications",
        ["status", "requires_human_override", "created_at"],
    )
    op.create_index(
        "idx_application_owner", "verification_applications", ["owner_email", "agent_name"]
    )
    op.create_index(
        "idx_application_email_token", "verification_applications", ["email_token"]
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("application_id", sa.String(36), nullable=True),
        sa.Column("actor", sa.String(320), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("before_state", sa.String(32), nullable=True),
        sa.Column("after_state", sa.String(32), nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("metadata", sa.JSON, nullable=True),
    )
    op.create_index("idx_audit_created", "audit_logs", ["created_at"])
    op.create_index("idx_audit_application", "audit_logs", ["application_id"])
    op.create_index(
        "idx_audit_cap", "audit_logs", ["actor", "action", "after_state", "created_at"]
    )

    op.create_table(
        "agent_jobs",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("job_type", sa.String(64), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column(
            "status",
            sa.Enum(*JOB_STATUSES, name="agent_job_status_enum"),
            nullable=False,
            server_default="queued",
        ),
        sa.Column("scheduled_for", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("locked_by", sa.String(128), nullable=True),
        sa.Column("locked_at", sa.DateTime, nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("completed_at", sa.DateTime, nullable=True),
        sa.Column("dedupe_key", sa.String(256), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_agent_jobs_due", "agent_jobs", ["status", "scheduled_for"])


def downgrade() -> None:
    op.drop_table("agent_jobs")
    op.drop_table("audit_logs")
    op.drop_table("verification_applications")
