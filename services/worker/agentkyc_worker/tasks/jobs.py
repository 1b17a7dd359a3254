"""Job runner tasks.

``jobs.process_due`` reclaims expired leases, then leases and runs due jobs
one at a time until the queue is drained or the per-run limit is reached.
Each job is completed with its outcome; execution is at-least-once.
"""

import os
import socket
from datetime import timedelta
from typing import Any

from agentkyc_core.config import get_settings
from agentkyc_core.domain.models import AgentJob, JobType
from agentkyc_core.domain.services.applications import ApplicationService
from agentkyc_core.domain.services.auto_review import AutoReviewService
from agentkyc_core.domain.services.jobs import JobQueueService
from agentkyc_core.infra.db import get_sync_session_factory
from agentkyc_core.observability import get_logger
from agentkyc_worker.celery_app import app

logger = get_logger(__name__)

# Upper bound on jobs run by one process_due invocation
MAX_JOBS_PER_RUN = 25


class UnknownJobTypeError(Exception):
    """Raised for a job type this worker has no handler for."""


def _get_db_session() -> Any:
    """Get database session for task execution."""
    return get_sync_session_factory()()


def _worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def execute_job(db: Any, job: AgentJob) -> dict[str, Any]:
    """Run one leased job.

    Raises:
        UnknownJobTypeError: If ``job.job_type`` has no handler.
        Exception: Whatever the handler raises; the job is then failed.
    """
    if job.job_type == JobType.AUTO_REVIEW:
        return AutoReviewService(db).run_pass().to_dict()

    if job.job_type == JobType.SEND_REMINDER:
        application_id = (job.payload or {}).get("application_id")
        if not application_id:
            raise ValueError("send_reminder payload is missing application_id")
        sent = ApplicationService(db).send_reminder(application_id)
        return {"sent": sent}

    raise UnknownJobTypeError(f"Unknown job type: {job.job_type}")


@app.task(name="jobs.process_due", bind=True)
def process_due(self, max_jobs: int = MAX_JOBS_PER_RUN) -> dict[str, Any]:
    """Reclaim stale leases, then run due jobs.

    Returns:
        Counts of reclaimed, succeeded and failed jobs.
    """
    worker_id = _worker_id()
    settings = get_settings()
    summary = {"requeued": 0, "expired": 0, "succeeded": 0, "failed": 0}

    db = _get_db_session()
    try:
        queue = JobQueueService(db)

        reclaimed = queue.requeue_stale(
            timedelta(minutes=settings.job_lease_timeout_minutes)
        )
        db.commit()
        summary["requeued"] = reclaimed["requeued"]
        summary["expired"] = reclaimed["failed"]

        for _ in range(max_jobs):
            job = queue.lease_next(worker_id)
            db.commit()
            if job is None:
                break

            job_logger = logger.bind(job_id=job.id, worker_id=worker_id, job_type=job.job_type)
            try:
                with db.begin_nested():
                    result = execute_job(db, job)
            except Exception as exc:
                job_logger.error("Job failed", exc_info=True, attempts=job.attempts)
                queue.complete(job.id, succeeded=False, error=exc)
                summary["failed"] += 1
            else:
                job_logger.info("Job succeeded", result=result)
                queue.complete(job.id, succeeded=True)
                summary["succeeded"] += 1
            db.commit()

        return summary
    except Exception:
        db.rollback()
        logger.error("Job processing run aborted", exc_info=True, worker_id=worker_id)
        raise
    finally:
        db.close()
