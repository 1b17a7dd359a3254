"""Unit tests for the job runner tasks."""

from datetime import timedelta

import pytest

from agentkyc_core.domain.models import AgentJob, VerificationApplication, utcnow
from agentkyc_core.infrastructure.email import EmailError


def _application(session, **overrides) -> VerificationApplication:
    values = {
        "owner_email": "ada@example.com",
        "owner_name": "Ada",
        "email_verified": True,
        "identity_link": "https://github.com/ada",
        "identity_type": "github",
        "agent_name": "Research Bot",
        "agent_description": "Summarizes research papers and drafts literature reviews.",
        "agent_skills": ["research"],
        "agent_platform": "openai",
        "status": "reviewing",
    }
    values.update(overrides)
    application = VerificationApplication(**values)
    session.add(application)
    session.commit()
    return application


def _job(session, job_type: str, **overrides) -> AgentJob:
    values = {
        "job_type": job_type,
        "payload": {},
        "status": "queued",
        "scheduled_for": utcnow() - timedelta(seconds=1),
        "attempts": 0,
        "max_attempts": 3,
    }
    values.update(overrides)
    job = AgentJob(**values)
    session.add(job)
    session.commit()
    return job


class TestExecuteJob:
    """Tests for execute_job dispatch."""

    def test_auto_review_job(self, db_session):
        from agentkyc_worker.tasks.jobs import execute_job

        application = _application(db_session)
        job = _job(db_session, "auto_review")

        result = execute_job(db_session, job)

        assert result["processed"] == 1
        assert result["results"][0]["action"] == "approved"
        db_session.refresh(application)
        assert application.status == "verified"

    def test_send_reminder_job(self, db_session, mock_email):
        from agentkyc_worker.tasks.jobs import execute_job

        application = _application(db_session, status="test_sent", test_task_sent_at=utcnow())
        job = _job(db_session, "send_reminder", payload={"application_id": application.id})

        assert execute_job(db_session, job) == {"sent": True}
        assert mock_email.send.call_args.args[0] == "ada@example.com"

    def test_send_reminder_requires_application_id(self, db_session):
        from agentkyc_worker.tasks.jobs import execute_job

        job = _job(db_session, "send_reminder")

        with pytest.raises(ValueError):
            execute_job(db_session, job)

    def test_unknown_job_type(self, db_session):
        from agentkyc_worker.tasks.jobs import UnknownJobTypeError, execute_job

        job = _job(db_session, "mystery")

        with pytest.raises(UnknownJobTypeError):
            execute_job(db_session, job)


class TestProcessDue:
    """Tests for the jobs.process_due task."""

    def test_runs_due_jobs_and_records_outcomes(self, db_session, task_sessions):
        from agentkyc_worker.tasks.jobs import process_due

        _application(db_session)
        good = _job(db_session, "auto_review", scheduled_for=utcnow() - timedelta(minutes=2))
        bad = _job(db_session, "mystery", scheduled_for=utcnow() - timedelta(minutes=1))

        summary = process_due()

        assert summary == {"requeued": 0, "expired": 0, "succeeded": 1, "failed": 1}
        db_session.expire_all()
        assert db_session.get(AgentJob, good.id).status == "completed"
        failed = db_session.get(AgentJob, bad.id)
        assert failed.status == "failed"
        assert failed.last_error.startswith("UnknownJobTypeError")
        assert failed.locked_by is None

    def test_failed_job_rolls_back_its_writes(self, db_session, task_sessions, mock_email):
        from agentkyc_worker.tasks.jobs import process_due

        application = _application(db_session, status="test_sent", test_task_sent_at=utcnow())
        job = _job(db_session, "send_reminder", payload={"application_id": application.id})
        mock_email.send.side_effect = EmailError("Postmark unavailable")

        summary = process_due()

        assert summary["failed"] == 1
        db_session.expire_all()
        stored = db_session.get(AgentJob, job.id)
        assert stored.status == "failed"
        assert "Postmark unavailable" in stored.last_error
        assert stored.attempts == 1

    def test_reclaims_stale_lease_before_leasing(self, db_session, task_sessions):
        from agentkyc_worker.tasks.jobs import process_due

        job = _job(
            db_session,
            "auto_review",
            status="processing",
            locked_by="dead-worker",
            locked_at=utcnow() - timedelta(hours=2),
            attempts=1,
        )

        summary = process_due()

        assert summary["requeued"] == 1
        assert summary["succeeded"] == 1
        db_session.expire_all()
        stored = db_session.get(AgentJob, job.id)
        assert stored.status == "completed"
        assert stored.attempts == 2

    def test_respects_max_jobs(self, db_session, task_sessions):
        from agentkyc_worker.tasks.jobs import process_due

        for _ in range(3):
            _job(db_session, "auto_review")

        summary = process_due(max_jobs=2)

        assert summary["succeeded"] == 2
        db_session.expire_all()
        assert db_session.query(AgentJob).filter_by(status="queued").count() == 1

    def test_future_jobs_wait(self, db_session, task_sessions):
        from agentkyc_worker.tasks.jobs import process_due

        _job(db_session, "auto_review", scheduled_for=utcnow() + timedelta(hours=1))

        summary = process_due()

        assert summary == {"requeued": 0, "expired": 0, "succeeded": 0, "failed": 0}
