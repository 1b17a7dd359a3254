"""Audit log service for AgentKYC.

Writes are append-only and best-effort: a failed insert is logged and
counted but never propagated, so audit persistence can not abort a
business transition that has already been applied. Reads support
cursor-based pagination for the admin surface.
"""

import base64
import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession

from agentkyc_core.domain.models import AuditAction, AuditActor, AuditLog, VerificationStatus, utcnow
from agentkyc_core.observability import get_collector, get_logger

logger = get_logger(__name__)


class AuditService:
    """Service for audit log operations."""

    def __init__(self, db: DBSession):
        """Initialize the audit service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def write(
        self,
        actor: str,
        action: str,
        application_id: Optional[str] = None,
        before_state: Optional[str] = None,
        after_state: Optional[str] = None,
        reason: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Append an audit entry.

        The insert runs inside a savepoint. On failure only the savepoint is
        rolled back, so the caller's own writes in the same transaction survive.

        Args:
            actor: Who performed the action (admin, system, automation, or a
                human identifier such as an owner email).
            action: Action tag (e.g. "status_change").
            application_id: Application the entry refers to, None for
                system-level events.
            before_state: Status before the change.
            after_state: Status after the change.
            reason: Free-text reason.
            metadata: Arbitrary structured data.

        Returns:
            The persisted entry, or None if the write failed.
        """
        entry = AuditLog(
            created_at=utcnow(),
            application_id=application_id,
            actor=actor,
            action=action,
            before_state=before_state,
            after_state=after_state,
            reason=reason,
            metadata_json=metadata,
        )

        try:
            self._insert(entry)
        except Exception:
            get_collector().increment("audit_write_failures")
            logger.error(
                "Failed to write audit log entry",
                exc_info=True,
                actor=actor,
                action=action,
                application_id=application_id,
                before_state=before_state,
                after_state=after_state,
            )
            return None

        return entry

    def _insert(self, entry: AuditLog) -> None:
        with self.db.begin_nested():
            self.db.add(entry)
            self.db.flush()

    def list_entries(
        self,
        application_id: Optional[str] = None,
        actor: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
        cursor: Optional[str] = None,
    ) -> tuple[list[AuditLog], Optional[str]]:
        """List audit entries, newest first.

        Args:
            application_id: Filter by application.
            actor: Filter by actor.
            action: Filter by action tag.
            limit: Maximum number of entries to return.
            cursor: Cursor returned by a previous call.

        Returns:
            Tuple of (entries, next cursor or None).
        """
        query = self._filtered(application_id=application_id, actor=actor, action=action)

        if cursor:
            cursor_data = self._decode_cursor(cursor)
            if cursor_data:
                cursor_ts, cursor_id = cursor_data
                query = query.filter(
                    (AuditLog.created_at < cursor_ts)
                    | ((AuditLog.created_at == cursor_ts) & (AuditLog.id < cursor_id))
                )

        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())

        # Fetch one extra to know whether another page exists
        entries = query.limit(limit + 1).all()

        has_more = len(entries) > limit
        if has_more:
            entries = entries[:limit]

        next_cursor = None
        if has_more and entries:
            last_entry = entries[-1]
            next_cursor = self._encode_cursor(last_entry.created_at, last_entry.id)

        return entries, next_cursor

    def count_entries(
        self,
        application_id: Optional[str] = None,
        actor: Optional[str] = None,
        action: Optional[str] = None,
    ) -> int:
        """Count audit entries matching the filters."""
        return self._filtered(
            application_id=application_id, actor=actor, action=action
        ).count()

    def count_automation_approvals_since(self, since: datetime) -> int:
        """Count approvals made by automation at or after ``since``.

        Unlike ``write``, errors propagate: the daily cap check must fail
        closed when this count can not be computed.
        """
        return (
            self.db.query(AuditLog)
            .filter(
                AuditLog.actor == AuditActor.AUTOMATION,
                AuditLog.action == AuditAction.STATUS_CHANGE,
                AuditLog.after_state == VerificationStatus.VERIFIED,
                AuditLog.created_at >= since,
            )
            .count()
        )

    def _filtered(
        self,
        application_id: Optional[str] = None,
        actor: Optional[str] = None,
        action: Optional[str] = None,
    ):
        query = self.db.query(AuditLog)

        if application_id:
            query = query.filter(AuditLog.application_id == application_id)
        if actor:
            query = query.filter(AuditLog.actor == actor)
        if action:
            query = query.filter(AuditLog.action == action)

        return query

    def _encode_cursor(self, ts: datetime, id: int) -> str:
        cursor_data = {"ts": ts.isoformat(), "id": id}
        return base64.urlsafe_b64encode(json.dumps(cursor_data).encode()).decode()

    def _decode_cursor(self, cursor: str) -> Optional[tuple[datetime, int]]:
        """Decode a cursor string, None if it is malformed."""
        try:
            cursor_data = json.loads(base64.urlsafe_b64decode(cursor.encode()).decode())
            ts = datetime.fromisoformat(cursor_data["ts"])
            if ts.tzinfo is not None:
                ts = ts.replace(tzinfo=None)
            return ts, int(cursor_data["id"])
        except (ValueError, KeyError, TypeError):
            return None
