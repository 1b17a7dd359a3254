"""Recurring trigger task."""

from typing import Any

from agentkyc_core.domain.services.scheduling import enqueue_recurring_jobs
from agentkyc_core.infra.db import get_sync_session_factory
from agentkyc_core.observability import get_logger
from agentkyc_worker.celery_app import app

logger = get_logger(__name__)


def _get_db_session() -> Any:
    """Get database session for task execution."""
    return get_sync_session_factory()()


@app.task(name="scheduler.enqueue_recurring")
def enqueue_recurring() -> dict[str, int]:
    """Enqueue the auto-review job and any due test-task reminders."""
    db = _get_db_session()
    try:
        counts = enqueue_recurring_jobs(db)
        db.commit()
        return counts
    except Exception:
        db.rollback()
        logger.error("Failed to enqueue recurring jobs", exc_info=True)
        raise
    finally:
        db.close()
