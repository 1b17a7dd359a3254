"""AgentKYC Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from agentkyc_core.api.routes import admin as admin_routes
from agentkyc_core.api.routes import automation as automation_routes
from agentkyc_core.api.routes import metrics as metrics_routes
from agentkyc_core.api.routes import public as public_routes
from agentkyc_core.config import get_settings
from agentkyc_core.observability import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="agentkyc-core",
    )
    app.state.settings = settings
    yield


app = FastAPI(
    title="AgentKYC Core API",
    description="Verification workflow and registry for AI agents",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(admin_routes.router)
app.include_router(automation_routes.router)
app.include_router(metrics_routes.router)
app.include_router(public_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Liveness check endpoint."""
    return {"ok": True, "service": "agentkyc-core"}
