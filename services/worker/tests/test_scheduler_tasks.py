"""Unit tests for the recurring trigger task."""

from datetime import timedelta

from agentkyc_core.domain.models import AgentJob, VerificationApplication, utcnow


class TestEnqueueRecurring:
    """Tests for scheduler.enqueue_recurring."""

    def test_enqueues_and_commits(self, db_session, task_sessions):
        from agentkyc_worker.tasks.scheduler import enqueue_recurring

        db_session.add(
            VerificationApplication(
                owner_email="ada@example.com",
                identity_link="https://github.com/ada",
                identity_type="github",
                agent_name="Research Bot",
                status="test_sent",
                test_task_sent_at=utcnow() - timedelta(days=4),
            )
        )
        db_session.commit()

        counts = enqueue_recurring()

        assert counts == {"auto_review": 1, "reminders": 1}
        db_session.expire_all()
        types = sorted(job.job_type for job in db_session.query(AgentJob).all())
        assert types == ["auto_review", "send_reminder"]

    def test_beat_schedule_registered(self):
        from agentkyc_worker.celery_app import app

        tasks = {entry["task"] for entry in app.conf.beat_schedule.values()}

        assert tasks == {"scheduler.enqueue_recurring", "jobs.process_due"}

    def test_stalled_owner_gets_one_reminder_across_beats(
        self, db_session, task_sessions, mock_email
    ):
        from agentkyc_worker.tasks.jobs import process_due
        from agentkyc_worker.tasks.scheduler import enqueue_recurring

        db_session.add(
            VerificationApplication(
                owner_email="ada@example.com",
                identity_link="https://github.com/ada",
                identity_type="github",
                agent_name="Research Bot",
                status="test_sent",
                test_task_sent_at=utcnow() - timedelta(hours=80),
            )
        )
        db_session.commit()

        for _ in range(4):
            enqueue_recurring()
            process_due()

        db_session.expire_all()
        assert db_session.query(AgentJob).filter_by(job_type="send_reminder").count() == 1
        assert mock_email.send.call_count == 1

    def test_broker_from_settings(self):
        from agentkyc_worker.celery_app import app

        assert app.conf.broker_url == "memory://"
