"""API routes."""

from agentkyc_core.api.routes import admin, automation, metrics, public

__all__ = ["admin", "automation", "metrics", "public"]
