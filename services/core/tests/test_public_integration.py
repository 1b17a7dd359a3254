"""Integration tests for the public verification and registry endpoints.

Tests cover:
- POST /verify and GET /verify/confirm
- GET /verify owner status
- GET /registry filters
- GET /status/{handle} including cache headers
"""

import pytest
from httpx import AsyncClient

from agentkyc_core.domain.models import VerificationApplication
from agentkyc_core.infrastructure.email import EmailError
from tests.factories import create_application

APPLICATION = {
    "owner_email": "ada@example.com",
    "owner_name": "Ada",
    "identity_type": "github",
    "identity_link": "https://github.com/ada",
    "agent_name": "Research Bot",
    "agent_description": "Summarizes research papers and drafts literature reviews.",
    "agent_platform": "openai",
    "agent_skills": ["research"],
}


class TestApply:
    """Tests for POST /verify."""

    @pytest.mark.asyncio
    async def test_apply(self, client: AsyncClient, db_session, mock_email):
        response = await client.post("/verify", json=APPLICATION)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert db_session.query(VerificationApplication).count() == 1
        mock_email.send.assert_called_once()

    @pytest.mark.asyncio
    async def test_apply_missing_field_is_422(self, client: AsyncClient):
        payload = {k: v for k, v in APPLICATION.items() if k != "owner_name"}

        response = await client.post("/verify", json=payload)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_apply_invalid_link_is_400(self, client: AsyncClient):
        response = await client.post("/verify", json={**APPLICATION, "identity_link": "ada"})

        assert response.status_code == 400
        assert "URL" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_apply_overlong_platform_is_400(
        self, client: AsyncClient, db_session, mock_email
    ):
        response = await client.post("/verify", json={**APPLICATION, "agent_platform": "p" * 65})

        assert response.status_code == 400
        assert "agent_platform" in response.json()["detail"]
        mock_email.send.assert_not_called()
        assert db_session.query(VerificationApplication).count() == 0

    @pytest.mark.asyncio
    async def test_email_failure_is_502_and_stores_nothing(
        self, client: AsyncClient, db_session, mock_email
    ):
        mock_email.send.side_effect = EmailError("Postmark unavailable")

        response = await client.post("/verify", json=APPLICATION)

        assert response.status_code == 502
        assert db_session.query(VerificationApplication).count() == 0


class TestConfirm:
    """Tests for GET /verify/confirm."""

    @pytest.mark.asyncio
    async def test_confirm(self, client: AsyncClient, db_session):
        await client.post("/verify", json=APPLICATION)
        token = db_session.query(VerificationApplication).one().email_token

        response = await client.get("/verify/confirm", params={"token": token})

        assert response.status_code == 200
        assert response.json()["agent_name"] == "Research Bot"
        application = db_session.query(VerificationApplication).one()
        assert application.status == "reviewing"

    @pytest.mark.asyncio
    async def test_confirm_bad_token(self, client: AsyncClient):
        response = await client.get("/verify/confirm", params={"token": "bogus"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_confirm_missing_token(self, client: AsyncClient):
        response = await client.get("/verify/confirm")

        assert response.status_code == 400


class TestOwnerStatus:
    """Tests for GET /verify?email=."""

    @pytest.mark.asyncio
    async def test_owner_sees_own_applications(self, client: AsyncClient, db_session):
        create_application(db_session, owner_email="ada@example.com", agent_name="One")
        create_application(db_session, owner_email="bob@example.com", agent_name="Two")

        response = await client.get("/verify", params={"email": "ADA@example.com"})

        assert response.status_code == 200
        applications = response.json()["applications"]
        assert [a["agent_name"] for a in applications] == ["One"]
        assert applications[0]["status"] == "reviewing"
        assert "email_token" not in applications[0]


class TestRegistry:
    """Tests for GET /registry and GET /status/{handle}."""

    @pytest.mark.asyncio
    async def test_registry_lists_verified_only(self, client: AsyncClient, db_session):
        create_application(
            db_session, status="verified", handle="research-bot", agent_skills=["research"]
        )
        create_application(db_session, status="verified", handle="code-bot", agent_skills=["coding"])
        create_application(db_session, status="reviewing")

        response = await client.get("/registry")
        filtered = await client.get("/registry", params={"skill": "coding"})

        assert response.json()["count"] == 2
        assert [a["handle"] for a in filtered.json()["agents"]] == ["code-bot"]

    @pytest.mark.asyncio
    async def test_status_verified(self, client: AsyncClient, db_session):
        create_application(
            db_session,
            status="verified",
            handle="research-bot",
            agent_name="Research Bot",
            identity_verified=True,
        )

        response = await client.get("/status/research-bot")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "public, max-age=300"
        data = response.json()
        assert data["verified"] is True
        assert data["agent_name"] == "Research Bot"
        assert data["badges"] == ["identity", "identity_verified"]

    @pytest.mark.asyncio
    async def test_status_unknown_handle(self, client: AsyncClient):
        response = await client.get("/status/nobody")

        assert response.status_code == 404
        assert response.json() == {"verified": False, "handle": "nobody"}
        assert "max-age" in response.headers["cache-control"]

    @pytest.mark.asyncio
    async def test_status_revoked_handle_is_404(self, client: AsyncClient, db_session):
        create_application(db_session, status="rejected", handle="revoked-bot")

        response = await client.get("/status/revoked-bot")

        assert response.status_code == 404
