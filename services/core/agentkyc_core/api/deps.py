"""API dependencies for dependency injection."""

import hashlib
import hmac
from typing import Annotated, Optional

from fastapi import Cookie, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from agentkyc_core.config import Settings, get_settings
from agentkyc_core.domain.services.applications import ApplicationService
from agentkyc_core.infra.db import get_sync_session_factory
from agentkyc_core.infrastructure.email import EmailClient

ADMIN_SESSION_COOKIE = "admin_session"


def get_db() -> Session:
    """Get a database session."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_app_settings() -> Settings:
    return get_settings()


def get_email_client(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> EmailClient:
    return EmailClient.from_settings(settings)


def get_application_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    email_client: Annotated[EmailClient, Depends(get_email_client)],
) -> ApplicationService:
    return ApplicationService(db, settings=settings, email_client=email_client)


def admin_session_value(password: str) -> str:
    """Cookie value for an admin session. The raw password is never stored."""
    return hashlib.sha256(password.encode()).hexdigest()


def _matches(given: Optional[str], expected: Optional[str]) -> bool:
    if not given or not expected:
        return False
    return hmac.compare_digest(given.encode(), expected.encode())


def require_admin(
    settings: Annotated[Settings, Depends(get_app_settings)],
    admin_session: Annotated[Optional[str], Cookie()] = None,
    x_admin_token: Annotated[Optional[str], Header()] = None,
) -> str:
    """Authenticate an admin by session cookie or API token.

    Returns:
        The audit actor for admin actions.

    Raises:
        HTTPException: 401 if neither credential is valid.
    """
    if settings.admin_password and _matches(
        admin_session, admin_session_value(settings.admin_password)
    ):
        return "admin"
    if _matches(x_admin_token, settings.admin_api_token):
        return "admin"

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
    )


def require_automation(
    settings: Annotated[Settings, Depends(get_app_settings)],
    authorization: Annotated[Optional[str], Header()] = None,
    x_automation_token: Annotated[Optional[str], Header()] = None,
) -> str:
    """Authenticate the automation worker by bearer or header token.

    Raises:
        HTTPException: 401 if the token is missing, wrong, or not configured.
    """
    token = x_automation_token
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[len("bearer "):].strip()

    if not _matches(token, settings.automation_token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return "automation"


# Type aliases for cleaner route signatures
DBSession = Annotated[Session, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
ApplicationServiceDep = Annotated[ApplicationService, Depends(get_application_service)]
AdminActor = Annotated[str, Depends(require_admin)]
AutomationActor = Annotated[str, Depends(require_automation)]
