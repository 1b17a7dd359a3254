"""Pytest configuration and fixtures for worker tests.

These fixtures enable testing Celery tasks without requiring:
- Running Redis/Celery
- A MySQL database
- The Postmark API
"""

import os
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import sessionmaker

# Set test environment variables before importing celery_app
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("LOG_JSON", "false")


@pytest.fixture(scope="session")
def celery_config() -> dict[str, Any]:
    """Celery configuration for testing."""
    return {
        "broker_url": "memory://",
        "result_backend": "cache+memory://",
        "task_always_eager": True,
        "task_eager_propagates": True,
    }


@pytest.fixture
def session_factory():
    """Session factory over a shared in-memory SQLite database."""
    from sqlalchemy.dialects import sqlite

    from agentkyc_core.domain.models import Base

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLite only supports autoincrement on INTEGER PRIMARY KEY
    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"
    Base.metadata.create_all(bind=engine)
    sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    """Session used by tests to arrange and inspect data."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def task_sessions(session_factory):
    """Route the tasks' database sessions to the test database."""
    with patch(
        "agentkyc_worker.tasks.jobs._get_db_session", side_effect=lambda: session_factory()
    ), patch(
        "agentkyc_worker.tasks.scheduler._get_db_session", side_effect=lambda: session_factory()
    ):
        yield


@pytest.fixture
def mock_email():
    """Replace the Postmark client built by ApplicationService."""
    with patch("agentkyc_core.domain.services.applications.EmailClient") as client_cls:
        client = MagicMock()
        client.send.return_value = {"MessageID": "test-message-id", "ErrorCode": 0}
        client_cls.from_settings.return_value = client
        yield client


@pytest.fixture(autouse=True)
def worker_settings(monkeypatch):
    """Enable auto-approval and start each test with fresh settings."""
    from agentkyc_core.config import get_settings

    monkeypatch.setenv("AUTO_APPROVAL_ENABLED", "true")
    monkeypatch.setenv("MAX_AUTO_APPROVALS_PER_DAY", "10")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_metrics():
    from agentkyc_core.observability import get_collector

    get_collector().reset()
    yield
    get_collector().reset()
