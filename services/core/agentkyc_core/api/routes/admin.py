"""Admin review routes.

Provides endpoints for:
- POST /admin/auth - Exchange the admin password for a session cookie
- GET /admin/applications - List applications
- GET /admin/applications/{id} - Get one application
- POST /admin/applications/{id}/approve|reject|send-test - Review actions
- GET /admin/audit - Audit trail
- GET /admin/stats - Application counts by status
- GET /admin/jobs - Job queue contents
"""

import hmac
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from agentkyc_core.api.deps import (
    ADMIN_SESSION_COOKIE,
    AdminActor,
    AppSettings,
    ApplicationServiceDep,
    DBSession,
    admin_session_value,
)
from agentkyc_core.api.errors import outcome_error
from agentkyc_core.api.schemas.applications import (
    AdminLoginRequest,
    ApplicationListResponse,
    ApplicationResponse,
    ApproveRequest,
    ApproveResponse,
    MessageResponse,
    RejectRequest,
    SendTestRequest,
    StatsResponse,
)
from agentkyc_core.api.schemas.audit import AuditEntryResponse, AuditListResponse
from agentkyc_core.api.schemas.jobs import JobListResponse, JobResponse
from agentkyc_core.domain.models import AuditAction, AuditActor, VerificationApplication
from agentkyc_core.domain.services.applications import ApplicationService
from agentkyc_core.domain.services.audit import AuditService
from agentkyc_core.domain.services.jobs import JobQueueService
from agentkyc_core.infrastructure.email import EmailError
from agentkyc_core.observability import LogContext, get_logger

router = APIRouter(prefix="/admin", tags=["admin"])
logger = get_logger(__name__)


def get_audit_service(db: DBSession) -> AuditService:
    """Get the audit service."""
    return AuditService(db)


AuditServiceDep = Annotated[AuditService, Depends(get_audit_service)]


def _load(service: ApplicationService, application_id: str) -> VerificationApplication:
    application = service.get_application(application_id)
    if application is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Application not found",
        )
    return application


# =============================================================================
# AUTH
# =============================================================================


@router.post("/auth", response_model=MessageResponse)
async def admin_login(
    request: AdminLoginRequest,
    response: Response,
    settings: AppSettings,
    audit_service: AuditServiceDep,
):
    """Log in with the admin password and receive a session cookie."""
    if not settings.admin_password:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin not configured",
        )
    if not hmac.compare_digest(request.password.encode(), settings.admin_password.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid password",
        )

    audit_service.write(actor=AuditActor.ADMIN, action=AuditAction.ADMIN_LOGIN)

    response.set_cookie(
        key=ADMIN_SESSION_COOKIE,
        value=admin_session_value(settings.admin_password),
        httponly=True,
        secure=settings.base_url.startswith("https://"),
        samesite="lax",
        max_age=settings.admin_session_hours * 3600,
        path="/",
    )
    return MessageResponse(message="Logged in")


# =============================================================================
# APPLICATIONS
# =============================================================================


@router.get("/applications", response_model=ApplicationListResponse)
async def list_applications(
    actor: AdminActor,
    service: ApplicationServiceDep,
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(200, ge=1, le=500),
):
    """List applications, newest first."""
    try:
        applications = service.list_applications(status=status_filter, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ApplicationListResponse(
        applications=[ApplicationResponse.model_validate(a) for a in applications],
        count=len(applications),
    )


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: str,
    actor: AdminActor,
    service: ApplicationServiceDep,
):
    """Get one application."""
    return ApplicationResponse.model_validate(_load(service, application_id))


@router.post("/applications/{application_id}/approve", response_model=ApproveResponse)
async def approve_application(
    application_id: str,
    request: ApproveRequest,
    actor: AdminActor,
    service: ApplicationServiceDep,
):
    """Approve an application and assign its public handle."""
    application = _load(service, application_id)
    outcome = service.approve(application, actor=actor, reason=request.reason)

    if not outcome.success:
        raise outcome_error(outcome.error_kind, outcome.error)

    logger.info(
        "Application approved",
        LogContext(actor=actor, application_id=application_id),
        handle=outcome.handle,
    )
    return ApproveResponse(handle=outcome.handle)


@router.post("/applications/{application_id}/reject", response_model=MessageResponse)
async def reject_application(
    application_id: str,
    request: RejectRequest,
    actor: AdminActor,
    service: ApplicationServiceDep,
):
    """Reject an application, or revoke a verified one."""
    application = _load(service, application_id)
    try:
        result = service.reject(application, reason=request.reason, actor=actor)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not result.success:
        raise outcome_error(result.error_kind, result.error)

    return MessageResponse(message="Application rejected")


@router.post("/applications/{application_id}/send-test", response_model=MessageResponse)
async def send_test_task(
    application_id: str,
    request: SendTestRequest,
    actor: AdminActor,
    service: ApplicationServiceDep,
):
    """Email a behavioral test task to the owner."""
    application = _load(service, application_id)
    try:
        result = service.send_test(application, task=request.test_task, actor=actor)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except EmailError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to send test task email: {e}",
        )

    if not result.success:
        raise outcome_error(result.error_kind, result.error)

    return MessageResponse(message="Test task sent")


# =============================================================================
# AUDIT, STATS, JOBS
# =============================================================================


@router.get("/audit", response_model=AuditListResponse)
async def list_audit_entries(
    actor: AdminActor,
    audit_service: AuditServiceDep,
    application_id: Optional[str] = Query(None, description="Filter by application"),
    actor_filter: Optional[str] = Query(None, alias="actor", description="Filter by actor"),
    action: Optional[str] = Query(None, description="Filter by action"),
    limit: int = Query(100, ge=1, le=100, description="Number of entries to return"),
    cursor: Optional[str] = Query(None, description="Cursor for pagination"),
):
    """Audit entries, newest first, with cursor pagination."""
    entries, next_cursor = audit_service.list_entries(
        application_id=application_id,
        actor=actor_filter,
        action=action,
        limit=limit,
        cursor=cursor,
    )
    total = audit_service.count_entries(
        application_id=application_id,
        actor=actor_filter,
        action=action,
    )

    return AuditListResponse(
        entries=[AuditEntryResponse.model_validate(e) for e in entries],
        total=total,
        limit=limit,
        next_cursor=next_cursor,
    )


@router.get("/stats", response_model=StatsResponse)
async def stats(actor: AdminActor, service: ApplicationServiceDep):
    """Application counts per status."""
    counts = service.status_counts()
    return StatsResponse(stats=counts, total=sum(counts.values()))


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(
    actor: AdminActor,
    db: DBSession,
    job_type: Optional[str] = Query(None, description="Filter by job type"),
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(100, ge=1, le=500),
):
    """Jobs, newest first, with queue counts by status."""
    queue = JobQueueService(db)
    try:
        jobs = queue.list_jobs(job_type=job_type, status=status_filter, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return JobListResponse(
        jobs=[JobResponse.model_validate(j) for j in jobs],
        counts=queue.count_by_status(),
    )
