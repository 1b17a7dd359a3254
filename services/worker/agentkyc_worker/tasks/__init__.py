"""AgentKYC Worker Tasks."""

# Import all tasks to register them with Celery
from agentkyc_worker.tasks import jobs  # noqa: F401
from agentkyc_worker.tasks import scheduler  # noqa: F401
