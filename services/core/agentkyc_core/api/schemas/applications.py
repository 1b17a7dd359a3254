"""Verification application API schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# PUBLIC SCHEMAS
# =============================================================================


class SubmitApplicationRequest(BaseModel):
    """Request schema for applying to verify an agent."""

    owner_email: str = Field(..., description="Owner email, normalized to lowercase")
    owner_name: str = Field(..., description="Owner display name")
    identity_type: str = Field(..., description="github, twitter, linkedin, website or moltbook")
    identity_link: str = Field(..., description="Absolute URL proving the owner's identity")
    agent_name: str = Field(..., description="Agent display name")
    agent_description: str = Field(..., description="What the agent does")
    agent_platform: str = Field(..., description="Platform the agent runs on")
    agent_skills: list[str] = Field(default_factory=list, description="Skill tags")
    agent_url: Optional[str] = Field(default=None, description="Agent homepage")


class MessageResponse(BaseModel):
    """Generic success response."""

    success: bool = True
    message: Optional[str] = None


class OwnerApplicationSummary(BaseModel):
    """What an owner can see about their own applications."""

    agent_name: str
    status: str
    approved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OwnerStatusResponse(BaseModel):
    applications: list[OwnerApplicationSummary]


class ConfirmEmailResponse(BaseModel):
    success: bool = True
    agent_name: str
    message: str


class RegistryAgent(BaseModel):
    """Public registry entry for a verified agent."""

    id: str
    handle: Optional[str] = None
    agent_name: str
    agent_description: Optional[str] = None
    agent_skills: list[str] = Field(default_factory=list)
    agent_url: Optional[str] = None
    agent_platform: Optional[str] = None
    identity_link: str
    identity_type: str
    approved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RegistryResponse(BaseModel):
    agents: list[RegistryAgent]
    count: int


class AgentStatusResponse(BaseModel):
    """Public verification status of a handle."""

    verified: bool
    handle: str
    agent_name: Optional[str] = None
    platform: Optional[str] = None
    skills: list[str] = Field(default_factory=list)
    badges: list[str] = Field(default_factory=list)
    verified_at: Optional[datetime] = None


# =============================================================================
# ADMIN SCHEMAS
# =============================================================================


class ApplicationResponse(BaseModel):
    """Full application record, as seen by reviewers."""

    id: str
    status: str
    owner_email: str
    owner_name: Optional[str] = None
    email_verified: bool
    identity_link: str
    identity_type: str
    identity_verified: bool
    agent_name: str
    agent_description: Optional[str] = None
    agent_skills: list[str] = Field(default_factory=list)
    agent_url: Optional[str] = None
    agent_platform: Optional[str] = None
    handle: Optional[str] = None
    badge_token: Optional[str] = None
    test_task_sent_at: Optional[datetime] = None
    test_task_completed: bool
    test_task_result: Optional[str] = None
    test_task_notes: Optional[str] = None
    reviewer_notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    requires_human_override: bool
    auto_review_score: Optional[float] = None
    last_action_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ApplicationListResponse(BaseModel):
    applications: list[ApplicationResponse]
    count: int


class ApproveRequest(BaseModel):
    reason: Optional[str] = Field(default=None, description="Recorded in the audit log")


class ApproveResponse(BaseModel):
    success: bool = True
    handle: str


class RejectRequest(BaseModel):
    reason: str = Field(..., description="Rejection reason, shown to reviewers")


class SendTestRequest(BaseModel):
    test_task: str = Field(..., description="Task the agent must complete")


class StatsResponse(BaseModel):
    stats: dict[str, int]
    total: int


class AdminLoginRequest(BaseModel):
    password: str
