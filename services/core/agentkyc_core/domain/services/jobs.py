"""Job queue service for AgentKYC.

A durable work list consumed by polling workers. Claiming a job is a
conditional update guarded by ``status = 'queued'``, so exactly one worker
wins each lease. Execution is at-least-once: a worker that dies mid-job
leaves it in ``processing`` until ``requeue_stale`` reclaims it.
"""

from datetime import datetime, timedelta
from typing import Any, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session as DBSession

from agentkyc_core.domain.models import AgentJob, JobStatus, utcnow
from agentkyc_core.observability import get_collector, get_logger

logger = get_logger(__name__)

VALID_STATUSES = {
    JobStatus.QUEUED,
    JobStatus.PROCESSING,
    JobStatus.COMPLETED,
    JobStatus.FAILED,
}

# Maximum length for error messages
MAX_ERROR_LENGTH = 5000

DEFAULT_MAX_ATTEMPTS = 3


class JobQueueService:
    """Service for job queue operations."""

    def __init__(self, db: DBSession):
        """Initialize the job queue service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def enqueue(
        self,
        job_type: str,
        payload: Optional[dict[str, Any]] = None,
        scheduled_for: Optional[datetime] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        dedupe_key: Optional[str] = None,
    ) -> AgentJob:
        """Add a job to the queue.

        Args:
            job_type: The type of job.
            payload: Opaque job payload.
            scheduled_for: Earliest execution time, defaults to now.
            max_attempts: Lease attempts before a stale job is failed.
            dedupe_key: Optional unique key, see ``enqueue_unique``.

        Returns:
            The created AgentJob.
        """
        if not job_type:
            raise ValueError("job_type must not be empty")

        job = AgentJob(
            job_type=job_type,
            payload=payload or {},
            status=JobStatus.QUEUED,
            scheduled_for=scheduled_for or utcnow(),
            attempts=0,
            max_attempts=max_attempts,
            dedupe_key=dedupe_key,
            created_at=utcnow(),
        )

        self.db.add(job)
        self.db.flush()

        logger.info("Job enqueued", job_id=job.id, job_type=job_type)
        return job

    def enqueue_unique(
        self,
        job_type: str,
        dedupe_key: str,
        payload: Optional[dict[str, Any]] = None,
        scheduled_for: Optional[datetime] = None,
    ) -> tuple[AgentJob, bool]:
        """Enqueue a job unless one with ``dedupe_key`` already exists.

        The key stays on completed jobs, so the same work is done once. A
        failed job releases its key and may be enqueued again.

        Returns:
            Tuple of (job, created) where created is False for an existing job.
        """
        existing = self.get_job_by_dedupe_key(dedupe_key)
        if existing is not None:
            return existing, False

        job = self.enqueue(
            job_type, payload=payload, scheduled_for=scheduled_for, dedupe_key=dedupe_key
        )
        return job, True

    def get_job(self, job_id: int) -> Optional[AgentJob]:
        """Get a job by ID."""
        return self.db.query(AgentJob).filter(AgentJob.id == job_id).first()

    def get_job_by_dedupe_key(self, dedupe_key: str) -> Optional[AgentJob]:
        return self.db.query(AgentJob).filter(AgentJob.dedupe_key == dedupe_key).first()

    def lease_next(self, worker_id: str) -> Optional[AgentJob]:
        """Lease the oldest due job for ``worker_id``.

        Only one candidate is tried. If another worker claims it between the
        read and the conditional update, this call returns None.

        Args:
            worker_id: Identity of the leasing worker.

        Returns:
            The leased AgentJob, or None if nothing was leased.
        """
        now = utcnow()

        candidate = self.next_due(now)
        if candidate is None:
            return None

        if not self.try_lease(candidate, worker_id, now):
            logger.info("Lost job lease race", job_id=candidate.id, worker_id=worker_id)
            return None

        self.db.refresh(candidate)
        get_collector().increment("jobs_leased")
        logger.info(
            "Job leased",
            job_id=candidate.id,
            job_type=candidate.job_type,
            worker_id=worker_id,
            attempts=candidate.attempts,
        )
        return candidate

    def next_due(self, now: Optional[datetime] = None) -> Optional[AgentJob]:
        """Read the oldest queued job that is due, without claiming it."""
        return (
            self.db.query(AgentJob)
            .filter(
                AgentJob.status == JobStatus.QUEUED,
                AgentJob.scheduled_for <= (now or utcnow()),
            )
            .order_by(AgentJob.scheduled_for.asc(), AgentJob.id.asc())
            .first()
        )

    def try_lease(self, job: AgentJob, worker_id: str, now: Optional[datetime] = None) -> bool:
        """Claim ``job`` if it is still queued. Returns False if another worker won."""
        matched = (
            self.db.query(AgentJob)
            .filter(
                AgentJob.id == job.id,
                AgentJob.status == JobStatus.QUEUED,
            )
            .update(
                {
                    AgentJob.status: JobStatus.PROCESSING,
                    AgentJob.locked_by: worker_id,
                    AgentJob.locked_at: now or utcnow(),
                    AgentJob.attempts: AgentJob.attempts + 1,
                },
                synchronize_session="fetch",
            )
        )
        self.db.flush()
        return matched > 0

    def complete(
        self,
        job_id: int,
        succeeded: bool,
        error: Union[str, Exception, None] = None,
    ) -> bool:
        """Mark a job completed or failed and release its lock.

        Args:
            job_id: The job ID.
            succeeded: Whether the job ran successfully.
            error: Error text or exception, stored on failure.

        Returns:
            True if a job row was updated.
        """
        status = JobStatus.COMPLETED if succeeded else JobStatus.FAILED
        error_str = None
        if not succeeded and error is not None:
            error_str = self.serialize_error(error)

        values = {
            AgentJob.status: status,
            AgentJob.last_error: error_str,
            AgentJob.locked_by: None,
            AgentJob.completed_at: utcnow(),
        }
        if not succeeded:
            # Release the key so the work can be enqueued again
            values[AgentJob.dedupe_key] = None

        matched = (
            self.db.query(AgentJob)
            .filter(AgentJob.id == job_id)
            .update(values, synchronize_session="fetch")
        )
        self.db.flush()

        if matched:
            get_collector().increment("jobs_completed", labels={"status": status})
            logger.info("Job finished", job_id=job_id, status=status)
        return matched > 0

    def requeue_stale(self, stale_after: timedelta) -> dict[str, int]:
        """Reclaim jobs whose lease is older than ``stale_after``.

        Jobs with attempts left go back to ``queued``; the rest are failed.
        Each row is updated conditionally on the lease it was read with, so a
        worker completing the job concurrently wins.

        Returns:
            Counts of requeued and failed jobs.
        """
        cutoff = utcnow() - stale_after
        stale_jobs = (
            self.db.query(AgentJob)
            .filter(
                AgentJob.status == JobStatus.PROCESSING,
                AgentJob.locked_at < cutoff,
            )
            .all()
        )

        counts = {"requeued": 0, "failed": 0}
        for job in stale_jobs:
            if job.attempts < job.max_attempts:
                values = {
                    AgentJob.status: JobStatus.QUEUED,
                    AgentJob.locked_by: None,
                    AgentJob.locked_at: None,
                }
                outcome = "requeued"
            else:
                values = {
                    AgentJob.status: JobStatus.FAILED,
                    AgentJob.locked_by: None,
                    AgentJob.last_error: f"Lease expired after {job.attempts} attempts",
                    AgentJob.dedupe_key: None,
                    AgentJob.completed_at: utcnow(),
                }
                outcome = "failed"

            matched = (
                self.db.query(AgentJob)
                .filter(
                    AgentJob.id == job.id,
                    AgentJob.status == JobStatus.PROCESSING,
                    AgentJob.locked_at == job.locked_at,
                )
                .update(values, synchronize_session="fetch")
            )
            if matched:
                counts[outcome] += 1
                logger.warning(
                    "Reclaimed stale job lease",
                    job_id=job.id,
                    locked_by=job.locked_by,
                    outcome=outcome,
                )

        self.db.flush()
        return counts

    def serialize_error(self, error: Union[str, Exception]) -> str:
        """Serialize an error to a string suitable for storage.

        Args:
            error: The error message or exception.

        Returns:
            Serialized error string (truncated if too long).
        """
        if isinstance(error, str):
            error_str = error
        elif isinstance(error, Exception):
            error_str = f"{type(error).__name__}: {error}"
        else:
            error_str = str(error)

        if len(error_str) > MAX_ERROR_LENGTH:
            error_str = error_str[: MAX_ERROR_LENGTH - 3] + "..."

        return error_str

    def list_jobs(
        self,
        job_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> list[AgentJob]:
        """List jobs, newest first, with optional filtering."""
        query = self.db.query(AgentJob)

        if job_type:
            query = query.filter(AgentJob.job_type == job_type)
        if status:
            if status not in VALID_STATUSES:
                raise ValueError(f"status must be one of {sorted(VALID_STATUSES)}, got '{status}'")
            query = query.filter(AgentJob.status == status)

        return query.order_by(AgentJob.created_at.desc(), AgentJob.id.desc()).limit(limit).all()

    def count_by_status(self) -> dict[str, int]:
        """Count jobs per status. Statuses with no jobs report zero."""
        counts = {status: 0 for status in VALID_STATUSES}
        rows = (
            self.db.query(AgentJob.status, func.count(AgentJob.id))
            .group_by(AgentJob.status)
            .all()
        )
        for status, count in rows:
            counts[status] = count
        return counts
