"""Health and metrics routes."""

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from agentkyc_core.api.deps import AdminActor, DBSession
from agentkyc_core.domain.services.applications import ApplicationService
from agentkyc_core.domain.services.jobs import JobQueueService
from agentkyc_core.observability import get_collector, get_logger

router = APIRouter(prefix="/api", tags=["metrics"])
logger = get_logger(__name__)


@router.get("/health")
async def health_check(db: DBSession):
    """Health check endpoint (public, no auth required).

    Checks the database by counting verified agents.
    """
    start = time.monotonic()
    timestamp = datetime.now(timezone.utc).isoformat()

    try:
        verified = ApplicationService(db).count_verified()
    except SQLAlchemyError:
        logger.error("Health check database query failed", exc_info=True)
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "timestamp": timestamp,
                "services": {"database": "down", "api": "up"},
            },
        )

    return {
        "status": "healthy",
        "timestamp": timestamp,
        "latency_ms": round((time.monotonic() - start) * 1000, 2),
        "metrics": {"verified_agents": verified},
        "services": {"database": "up", "api": "up"},
    }


@router.get("/metrics")
async def get_metrics(actor: AdminActor, db: DBSession) -> dict[str, Any]:
    """Get all metrics (requires admin).

    Returns application counters, gauges and histograms plus the job queue
    depth by status.
    """
    collector = get_collector()

    queue_depth = JobQueueService(db).count_by_status()
    for job_status, count in queue_depth.items():
        collector.set_gauge("job_queue_depth", count, labels={"status": job_status})

    return {
        "collected_at": datetime.now(timezone.utc).isoformat(),
        "application": collector.get_all(),
        "queue": queue_depth,
    }
