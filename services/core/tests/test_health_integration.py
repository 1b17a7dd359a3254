"""Integration tests for health and metrics endpoints."""

from unittest.mock import patch

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from agentkyc_core.domain.services.applications import ApplicationService
from tests.factories import create_application, create_job


class TestHealth:
    """Tests for /healthz and /api/health."""

    @pytest.mark.asyncio
    async def test_liveness(self, client: AsyncClient):
        response = await client.get("/healthz")

        assert response.json() == {"ok": True, "service": "agentkyc-core"}

    @pytest.mark.asyncio
    async def test_health_reports_verified_count(self, client: AsyncClient, db_session):
        create_application(db_session, status="verified", handle="one")

        response = await client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["metrics"]["verified_agents"] == 1

    @pytest.mark.asyncio
    async def test_health_database_down(self, client: AsyncClient):
        error = OperationalError("SELECT", {}, Exception("connection refused"))

        with patch.object(ApplicationService, "count_verified", side_effect=error):
            response = await client.get("/api/health")

        assert response.status_code == 503
        assert response.json()["services"]["database"] == "down"


class TestMetrics:
    """Tests for /api/metrics."""

    @pytest.mark.asyncio
    async def test_requires_admin(self, client: AsyncClient):
        response = await client.get("/api/metrics")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_reports_workflow_counters_and_queue(
        self, client: AsyncClient, db_session, admin_headers
    ):
        application = create_application(db_session)
        create_job(db_session)
        await client.post(
            f"/admin/applications/{application.id}/approve", json={}, headers=admin_headers
        )

        response = await client.get("/api/metrics", headers=admin_headers)

        data = response.json()
        assert data["queue"]["queued"] == 1
        assert data["application"]["counters"]["transitions_total{outcome=applied}"] == 1
        assert data["application"]["gauges"]["job_queue_depth{status=queued}"] == 1
