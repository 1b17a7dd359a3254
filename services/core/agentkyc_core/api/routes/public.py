"""Public verification and registry routes.

Provides endpoints for:
- POST /verify - Apply to verify an agent
- GET /verify - Owner status lookup by email
- GET /verify/confirm - Confirm the owner's email
- GET /registry - Verified agents
- GET /status/{handle} - Verification status of one agent
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse

from agentkyc_core.api.deps import ApplicationServiceDep
from agentkyc_core.api.errors import outcome_error
from agentkyc_core.api.schemas.applications import (
    AgentStatusResponse,
    ConfirmEmailResponse,
    MessageResponse,
    OwnerApplicationSummary,
    OwnerStatusResponse,
    RegistryAgent,
    RegistryResponse,
    SubmitApplicationRequest,
)
from agentkyc_core.domain.services.applications import badges_for
from agentkyc_core.infrastructure.email import EmailError
from agentkyc_core.observability import get_logger

router = APIRouter(tags=["public"])
logger = get_logger(__name__)


@router.post("/verify", response_model=MessageResponse)
async def submit_application(
    request: SubmitApplicationRequest,
    service: ApplicationServiceDep,
):
    """Apply for verification. The confirmation email is sent before anything is stored."""
    try:
        result = service.submit(
            owner_email=request.owner_email,
            owner_name=request.owner_name,
            identity_type=request.identity_type,
            identity_link=request.identity_link,
            agent_name=request.agent_name,
            agent_description=request.agent_description,
            agent_platform=request.agent_platform,
            agent_skills=request.agent_skills,
            agent_url=request.agent_url,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except EmailError as e:
        logger.error("Verification email failed", error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    if not result.success:
        raise outcome_error(result.error_kind, result.message)

    return MessageResponse(message=result.message)


@router.get("/verify", response_model=OwnerStatusResponse)
async def owner_status(
    service: ApplicationServiceDep,
    email: str = Query(..., description="Owner email"),
):
    """List an owner's applications and their status."""
    try:
        applications = service.applications_for_email(email)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return OwnerStatusResponse(
        applications=[OwnerApplicationSummary.model_validate(a) for a in applications]
    )


@router.get("/verify/confirm", response_model=ConfirmEmailResponse)
async def confirm_email(
    service: ApplicationServiceDep,
    token: str = Query("", description="Token from the verification email"),
):
    """Confirm the owner's email and move the application into review."""
    try:
        application, result = service.confirm_email(token)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not result.success:
        raise outcome_error(result.error_kind, result.error)

    return ConfirmEmailResponse(
        agent_name=application.agent_name,
        message="Email verified! Your application is now under review.",
    )


@router.get("/registry", response_model=RegistryResponse)
async def registry(
    service: ApplicationServiceDep,
    skill: Optional[str] = Query(None, description="Filter by skill tag"),
    platform: Optional[str] = Query(None, description="Filter by platform"),
):
    """Verified agents, most recently approved first."""
    agents = service.list_verified(skill=skill, platform=platform)
    return RegistryResponse(
        agents=[RegistryAgent.model_validate(a) for a in agents],
        count=len(agents),
    )


@router.get("/status/{handle}", response_model=AgentStatusResponse)
async def agent_status(
    handle: str,
    response: Response,
    service: ApplicationServiceDep,
):
    """Verification status of a handle, with the badges it has earned."""
    agent = service.get_verified_by_handle(handle)

    if agent is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"verified": False, "handle": handle},
            headers={"Cache-Control": "public, max-age=60"},
        )

    response.headers["Cache-Control"] = "public, max-age=300"
    return AgentStatusResponse(
        verified=True,
        handle=agent.handle,
        agent_name=agent.agent_name,
        platform=agent.agent_platform,
        skills=agent.agent_skills or [],
        badges=badges_for(agent),
        verified_at=agent.approved_at,
    )
