"""Job queue API schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class JobResponse(BaseModel):
    """A job as seen by workers and operators."""

    id: int
    job_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: str
    scheduled_for: datetime
    locked_by: Optional[str] = None
    locked_at: Optional[datetime] = None
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NextJobResponse(BaseModel):
    """Leased job, or null when nothing is due."""

    job: Optional[JobResponse] = None


class EnqueueJobRequest(BaseModel):
    job_type: str = Field(..., min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    scheduled_for: Optional[datetime] = None
    max_attempts: int = Field(default=3, ge=1)


class CompleteJobRequest(BaseModel):
    success: bool
    error: Optional[str] = None


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    counts: dict[str, int]


class RequeueStaleResponse(BaseModel):
    requeued: int
    failed: int


class CronResponse(BaseModel):
    success: bool = True
    enqueued: dict[str, int]
