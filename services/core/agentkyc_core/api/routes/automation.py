"""Automation routes used by workers and the external scheduler.

Provides endpoints for:
- GET /automation/jobs/next - Lease the next due job
- POST /automation/jobs - Enqueue a job
- POST /automation/jobs/{id}/complete - Report a job outcome
- POST /automation/jobs/requeue-stale - Reclaim expired leases
- POST /automation/auto-review - Run an auto-review pass
- POST /automation/cron - Run the recurring trigger
"""

from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Header, HTTPException, status

from agentkyc_core.api.deps import AppSettings, AutomationActor, DBSession
from agentkyc_core.api.schemas.jobs import (
    CompleteJobRequest,
    CronResponse,
    EnqueueJobRequest,
    JobResponse,
    NextJobResponse,
    RequeueStaleResponse,
)
from agentkyc_core.domain.services.auto_review import AutoReviewService
from agentkyc_core.domain.services.jobs import JobQueueService
from agentkyc_core.domain.services.scheduling import enqueue_recurring_jobs

router = APIRouter(prefix="/automation", tags=["automation"])


@router.get("/jobs/next", response_model=NextJobResponse)
async def lease_next_job(
    actor: AutomationActor,
    db: DBSession,
    x_worker_id: str = Header("worker", max_length=128),
):
    """Lease the oldest due job, or return null when nothing is due."""
    job = JobQueueService(db).lease_next(x_worker_id)
    if job is None:
        return NextJobResponse(job=None)
    return NextJobResponse(job=JobResponse.model_validate(job))


@router.post("/jobs", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def enqueue_job(
    request: EnqueueJobRequest,
    actor: AutomationActor,
    db: DBSession,
):
    """Add a job to the queue."""
    try:
        job = JobQueueService(db).enqueue(
            request.job_type,
            payload=request.payload,
            scheduled_for=request.scheduled_for,
            max_attempts=request.max_attempts,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return JobResponse.model_validate(job)


@router.post("/jobs/requeue-stale", response_model=RequeueStaleResponse)
async def requeue_stale_jobs(
    actor: AutomationActor,
    db: DBSession,
    settings: AppSettings,
):
    """Return expired leases to the queue, or fail them when out of attempts."""
    counts = JobQueueService(db).requeue_stale(
        timedelta(minutes=settings.job_lease_timeout_minutes)
    )
    return RequeueStaleResponse(**counts)


@router.post("/jobs/{job_id}/complete")
async def complete_job(
    job_id: int,
    request: CompleteJobRequest,
    actor: AutomationActor,
    db: DBSession,
) -> dict[str, Any]:
    """Mark a leased job completed or failed."""
    if not JobQueueService(db).complete(job_id, request.success, error=request.error):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )
    return {"success": True}


@router.post("/auto-review")
async def run_auto_review(
    actor: AutomationActor,
    db: DBSession,
    settings: AppSettings,
) -> dict[str, Any]:
    """Run one auto-review pass synchronously."""
    return AutoReviewService(db, settings=settings).run_pass().to_dict()


@router.post("/cron", response_model=CronResponse)
async def run_cron(
    actor: AutomationActor,
    db: DBSession,
    settings: AppSettings,
):
    """Enqueue the recurring auto-review and reminder jobs."""
    return CronResponse(enqueued=enqueue_recurring_jobs(db, settings=settings))
