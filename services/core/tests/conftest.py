"""Pytest configuration and fixtures for AgentKYC Core tests.

This module provides fixtures for:
- Database: SQLite in-memory sessions
- HTTP client: AsyncClient for FastAPI testing
- Mocks: the Postmark email client
"""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from agentkyc_core.config import Settings
from agentkyc_core.domain.models import Base
from agentkyc_core.infrastructure.email import EmailClient

ADMIN_TOKEN = "test-admin-token"
AUTOMATION_TOKEN = "test-automation-token"
ADMIN_PASSWORD = "test-admin-password"


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        database_url="sqlite+pysqlite:///:memory:",
        base_url="http://agentkyc.test",
        postmark_api_key="test-postmark-key",
        from_email="AgentKYC <hello@agentkyc.test>",
        admin_password=ADMIN_PASSWORD,
        admin_api_token=ADMIN_TOKEN,
        automation_token=AUTOMATION_TOKEN,
        auto_approval_enabled=True,
        max_auto_approvals_per_day=10,
        auto_review_timezone="UTC",
        log_json=False,
    )


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLite only supports autoincrement on INTEGER PRIMARY KEY
    from sqlalchemy.dialects import sqlite
    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"

    Base.metadata.create_all(bind=engine)

    sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# Email Mock
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_email() -> MagicMock:
    """Email client double that records sends instead of calling Postmark."""
    client = MagicMock(spec=EmailClient)
    client.send.return_value = {"MessageID": "test-message-id", "ErrorCode": 0}
    return client


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(test_settings, db_session, mock_email) -> Generator[FastAPI, None, None]:
    """FastAPI app wired to the test session, settings and email double.

    Requests share ``db_session`` so tests can inspect what a request wrote.
    """
    from agentkyc_core.api.deps import get_app_settings, get_db, get_email_client
    from agentkyc_core.main import app

    app.state.settings = test_settings

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_app_settings] = lambda: test_settings
    app.dependency_overrides[get_email_client] = lambda: mock_email

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def automation_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {AUTOMATION_TOKEN}"}


# -----------------------------------------------------------------------------
# Cleanup Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    from agentkyc_core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty metrics."""
    from agentkyc_core.observability import get_collector

    get_collector().reset()
    yield
    get_collector().reset()
