"""Audit log schemas for request/response validation."""

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field


class AuditEntryResponse(BaseModel):
    """Response body for an audit entry."""

    id: int
    created_at: datetime
    application_id: Optional[str] = None
    actor: str
    action: str
    before_state: Optional[str] = None
    after_state: Optional[str] = None
    reason: Optional[str] = None
    metadata: Optional[dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("metadata_json", "metadata")
    )

    class Config:
        from_attributes = True


class AuditListResponse(BaseModel):
    """Response body for listing audit entries."""

    entries: list[AuditEntryResponse]
    total: int
    limit: int
    next_cursor: Optional[str] = None
