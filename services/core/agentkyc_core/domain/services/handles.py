"""Handle derivation and collision-safe allocation.

A handle is the public slug of a verified agent. Allocation tries
``base``, ``base-1`` ... ``base-19`` against existing records. The storage
layer also enforces a unique constraint on ``handle``; if a lookup result goes
stale before the write, the write fails with a duplicate-key error and the
caller re-runs the allocation once.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from agentkyc_core.domain.models import VerificationApplication
from agentkyc_core.observability import get_logger

logger = get_logger(__name__)

MAX_HANDLE_LENGTH = 50
MAX_SUFFIX_ATTEMPTS = 20

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")


def derive_handle(display_name: Optional[str]) -> Optional[str]:
    """Derive a URL-safe slug from a display name.

    Returns None when nothing alphanumeric survives; callers treat that as a
    validation failure.

    >>> derive_handle("Research Bot 3000!")
    'research-bot-3000'
    """
    if not display_name:
        return None

    handle = _NON_ALPHANUMERIC.sub("-", display_name.lower()).strip("-")
    handle = handle[:MAX_HANDLE_LENGTH]

    return handle or None


def _with_suffix(base_handle: str, attempt: int) -> str:
    if attempt == 0:
        return base_handle
    suffix = f"-{attempt}"
    # Keep suffixed handles within the column width
    return base_handle[: MAX_HANDLE_LENGTH - len(suffix)].rstrip("-") + suffix


class HandleErrorKind(str, Enum):
    """Why a handle could not be allocated."""

    EXHAUSTED = "allocation_exhausted"
    LOOKUP_FAILED = "lookup_failed"


@dataclass(frozen=True)
class HandleAllocation:
    """Result of ``HandleAllocator.allocate_unique``."""

    handle: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[HandleErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.handle is not None


class HandleAllocator:
    """Resolves handle collisions by trying numbered suffixes in order."""

    def __init__(self, db: DBSession):
        self.db = db

    def _owner_of(self, handle: str) -> Optional[str]:
        row = (
            self.db.query(VerificationApplication.id)
            .filter(VerificationApplication.handle == handle)
            .first()
        )
        return row[0] if row else None

    def allocate_unique(self, base_handle: str, self_id: str) -> HandleAllocation:
        """Find a free handle starting from ``base_handle``.

        A handle already held by ``self_id`` is returned unchanged, which keeps
        re-approval of the same application idempotent.

        Args:
            base_handle: Output of ``derive_handle``.
            self_id: Id of the application the handle is for.

        Returns:
            HandleAllocation with either a handle or an error kind.
        """
        for attempt in range(MAX_SUFFIX_ATTEMPTS):
            candidate = _with_suffix(base_handle, attempt)
            try:
                owner = self._owner_of(candidate)
            except SQLAlchemyError as e:
                logger.error(
                    "Handle lookup failed",
                    exc_info=True,
                    handle=candidate,
                    application_id=self_id,
                )
                return HandleAllocation(
                    error=f"Handle lookup failed: {e}",
                    error_kind=HandleErrorKind.LOOKUP_FAILED,
                )

            if owner is None or owner == self_id:
                return HandleAllocation(handle=candidate)

        logger.warning(
            "Handle allocation exhausted",
            handle=base_handle,
            application_id=self_id,
            attempts=MAX_SUFFIX_ATTEMPTS,
        )
        return HandleAllocation(
            error="Unable to generate unique handle",
            error_kind=HandleErrorKind.EXHAUSTED,
        )
