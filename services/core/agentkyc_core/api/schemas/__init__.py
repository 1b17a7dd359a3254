"""API schemas."""

from agentkyc_core.api.schemas.applications import (
    AgentStatusResponse,
    ApplicationListResponse,
    ApplicationResponse,
    RegistryResponse,
    SubmitApplicationRequest,
)
from agentkyc_core.api.schemas.audit import AuditEntryResponse, AuditListResponse
from agentkyc_core.api.schemas.jobs import JobResponse, NextJobResponse

__all__ = [
    "AgentStatusResponse",
    "ApplicationListResponse",
    "ApplicationResponse",
    "RegistryResponse",
    "SubmitApplicationRequest",
    "AuditEntryResponse",
    "AuditListResponse",
    "JobResponse",
    "NextJobResponse",
]
