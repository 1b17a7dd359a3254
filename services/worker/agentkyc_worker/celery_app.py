"""Celery application configuration for AgentKYC Worker."""

from celery import Celery

from agentkyc_core.config import get_settings
from agentkyc_core.observability import configure_logging

# Broker and logging share the core service settings
settings = get_settings()

configure_logging(
    level=settings.log_level,
    json_format=settings.log_json,
    service_name="agentkyc-worker",
)

app = Celery(
    "agentkyc_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "agentkyc_worker.tasks.jobs",
        "agentkyc_worker.tasks.scheduler",
    ],
)

app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds)
    task_soft_time_limit=300,
    task_time_limit=600,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Enqueue auto-review and reminder jobs
    "enqueue-recurring-jobs": {
        "task": "scheduler.enqueue_recurring",
        "schedule": 900.0,  # 15 minutes
        "args": (),
    },
    # Drain due jobs from the queue
    "process-due-jobs": {
        "task": "jobs.process_due",
        "schedule": 60.0,
        "args": (),
    },
}


if __name__ == "__main__":
    app.start()
