"""Recurring trigger for deferred work.

Run periodically (Celery beat or ``POST /automation/cron``). Each run enqueues
one auto-review job and a reminder job for every application whose test task
has gone unanswered past the reminder threshold. Reminder jobs are keyed by
application and test-task send time, so each test task is reminded once.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from agentkyc_core.config import Settings, get_settings
from agentkyc_core.domain.models import JobType, VerificationApplication
from agentkyc_core.domain.services.applications import ApplicationService
from agentkyc_core.domain.services.jobs import JobQueueService
from agentkyc_core.observability import get_logger

logger = get_logger(__name__)


def reminder_dedupe_key(application: VerificationApplication) -> str:
    sent_at = application.test_task_sent_at.isoformat() if application.test_task_sent_at else ""
    return f"{JobType.SEND_REMINDER}:{application.id}:{sent_at}"


def enqueue_recurring_jobs(
    db: DBSession, settings: Optional[Settings] = None
) -> dict[str, int]:
    """Enqueue the periodic auto-review and reminder jobs.

    Args:
        db: SQLAlchemy database session.
        settings: Settings, defaults to the cached process settings.

    Returns:
        Number of jobs enqueued per type.
    """
    settings = settings or get_settings()
    queue = JobQueueService(db)

    queue.enqueue(JobType.AUTO_REVIEW)

    stalled = ApplicationService(db, settings=settings).stale_test_applications(
        timedelta(hours=settings.reminder_after_hours)
    )
    reminders = 0
    for application in stalled:
        _, created = queue.enqueue_unique(
            JobType.SEND_REMINDER,
            reminder_dedupe_key(application),
            payload={
                "application_id": application.id,
                "email": application.owner_email,
                "agent_name": application.agent_name,
            },
        )
        if created:
            reminders += 1

    counts = {"auto_review": 1, "reminders": reminders}
    logger.info("Recurring jobs enqueued", **counts)
    return counts
