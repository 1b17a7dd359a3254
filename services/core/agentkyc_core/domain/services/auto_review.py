"""Deterministic auto-review of applications awaiting review.

A pass approves applications that satisfy all five eligibility checks and
flags every other one for a human. Approvals are capped per day; the count
of today's approvals is re-derived from the audit log on every pass, and a
failed count skips the pass entirely.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlparse
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from agentkyc_core.config import Settings, get_settings
from agentkyc_core.domain.models import (
    AuditAction,
    AuditActor,
    VerificationApplication,
    VerificationStatus,
    utcnow,
)
from agentkyc_core.domain.services.approvals import Approver
from agentkyc_core.domain.services.audit import AuditService
from agentkyc_core.domain.services.state_machine import StateMachine
from agentkyc_core.observability import LogContext, get_collector, get_logger

logger = get_logger(__name__)

MIN_DESCRIPTION_LENGTH = 20


def is_absolute_url(value: Optional[str]) -> bool:
    """True for http(s) URLs with a host."""
    if not value:
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def evaluate_checks(application: VerificationApplication) -> dict[str, bool]:
    """Evaluate the five independent eligibility checks."""
    description = application.agent_description or ""
    return {
        "email_verified": application.email_verified is True,
        "has_identity_link": is_absolute_url(application.identity_link),
        "has_description": len(description.strip()) >= MIN_DESCRIPTION_LENGTH,
        "has_skills": bool(application.agent_skills),
        "has_platform": bool(application.agent_platform and application.agent_platform.strip()),
    }


def score_checks(checks: dict[str, bool]) -> float:
    return sum(1 for passed in checks.values() if passed) / len(checks)


def start_of_day(now: datetime, tz_name: str) -> datetime:
    """Midnight of ``now``'s day in ``tz_name``, as naive UTC.

    Args:
        now: Current time as naive UTC.
        tz_name: IANA zone name.
    """
    local = now.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name))
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class AutoReviewItem:
    """What the engine did with one application."""

    id: str
    action: str  # approved | failed | flagged | error
    reason: str
    score: Optional[float] = None
    handle: Optional[str] = None


@dataclass
class AutoReviewPassResult:
    processed: int = 0
    results: list[AutoReviewItem] = field(default_factory=list)
    skipped: bool = False
    reason: Optional[str] = None
    remaining_budget: Optional[int] = None

    @classmethod
    def skip(cls, reason: str, remaining_budget: Optional[int] = None) -> "AutoReviewPassResult":
        return cls(skipped=True, reason=reason, remaining_budget=remaining_budget)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AutoReviewService:
    """Runs auto-review passes over applications in ``reviewing``."""

    def __init__(self, db: DBSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.audit = AuditService(db)
        self.state_machine = StateMachine(db, audit=self.audit)
        self.approver = Approver(db, state_machine=self.state_machine)

    def remaining_budget(self, now: Optional[datetime] = None) -> int:
        """Approvals still allowed today.

        Raises:
            SQLAlchemyError: If today's approvals can not be counted.
        """
        day_start = start_of_day(now or utcnow(), self.settings.auto_review_timezone)
        approved_today = self.audit.count_automation_approvals_since(day_start)
        return max(self.settings.max_auto_approvals_per_day - approved_today, 0)

    def run_pass(self) -> AutoReviewPassResult:
        """Review the oldest unflagged applications, up to today's budget."""
        collector = get_collector()

        if not self.settings.auto_approval_enabled:
            logger.info("Auto-review skipped: disabled")
            return AutoReviewPassResult.skip("auto_approval_disabled")

        try:
            remaining = self.remaining_budget()
        except SQLAlchemyError:
            logger.error("Daily cap check failed, blocking auto-approvals", exc_info=True)
            collector.increment("auto_review_passes", labels={"outcome": "cap_check_failed"})
            return AutoReviewPassResult.skip("cap_check_failed")

        if remaining <= 0:
            logger.info("Auto-review skipped: daily cap reached")
            collector.increment("auto_review_passes", labels={"outcome": "capped"})
            return AutoReviewPassResult.skip("daily_cap_reached", remaining_budget=0)

        applications = (
            self.db.query(VerificationApplication)
            .filter(
                VerificationApplication.status == VerificationStatus.REVIEWING,
                VerificationApplication.requires_human_override.is_(False),
            )
            .order_by(VerificationApplication.created_at.asc())
            .limit(remaining)
            .all()
        )

        result = AutoReviewPassResult(remaining_budget=remaining)
        for application in applications:
            context = LogContext(actor=AuditActor.AUTOMATION, application_id=application.id)
            try:
                with self.db.begin_nested():
                    item = self.review(application)
            except Exception as e:
                logger.error("Auto-review of application failed", context, exc_info=True)
                item = AutoReviewItem(id=application.id, action="error", reason=str(e))
                try:
                    with self.db.begin_nested():
                        self._flag(application.id, f"Auto-review error: {type(e).__name__}")
                except SQLAlchemyError:
                    logger.error("Could not flag application after error", context, exc_info=True)

            collector.increment("auto_review_decisions", labels={"decision": item.action})
            logger.info(
                "Auto-review decision",
                context,
                decision=item.action,
                score=item.score,
                reason=item.reason,
            )
            result.results.append(item)

        result.processed = len(result.results)
        collector.record_histogram("auto_review_pass_size", result.processed)
        collector.increment("auto_review_passes", labels={"outcome": "ran"})
        return result

    def review(self, application: VerificationApplication) -> AutoReviewItem:
        """Evaluate one application and approve or flag it."""
        checks = evaluate_checks(application)
        score = score_checks(checks)

        # Persisted regardless of outcome so reviewers always see it
        self.db.query(VerificationApplication).filter(
            VerificationApplication.id == application.id
        ).update({VerificationApplication.auto_review_score: score}, synchronize_session="fetch")

        if not all(checks.values()):
            failed = sorted(name for name, passed in checks.items() if not passed)
            reason = f"Failed checks: {', '.join(failed)}"
            self._flag(application.id, reason, metadata={"checks": checks, "score": score})
            return AutoReviewItem(id=application.id, action="flagged", reason=reason, score=score)

        outcome = self.approver.approve(
            application,
            actor=AuditActor.AUTOMATION,
            reason=f"Auto-approved: all checks passed (score={score})",
            extra_fields={"auto_review_score": score},
        )

        if not outcome.transition_attempted:
            # Handle could not be derived or allocated
            self._flag(application.id, outcome.error or "Handle generation failed")
            return AutoReviewItem(
                id=application.id, action="flagged", reason=outcome.error or "", score=score
            )

        return AutoReviewItem(
            id=application.id,
            action="approved" if outcome.success else "failed",
            reason=outcome.error or "ok",
            score=score,
            handle=outcome.handle,
        )

    def _flag(
        self,
        application_id: str,
        reason: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Route an application to a human. Automation never picks it up again."""
        self.db.query(VerificationApplication).filter(
            VerificationApplication.id == application_id
        ).update(
            {
                VerificationApplication.requires_human_override: True,
                VerificationApplication.last_action_at: utcnow(),
            },
            synchronize_session="fetch",
        )

        self.audit.write(
            actor=AuditActor.AUTOMATION,
            action=AuditAction.FLAGGED_FOR_HUMAN,
            application_id=application_id,
            reason=reason,
            metadata=metadata,
        )
