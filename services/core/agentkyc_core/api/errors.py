"""Mapping of workflow outcomes to HTTP errors."""

from typing import Optional

from fastapi import HTTPException, status

_STATUS_BY_KIND = {
    "invalid_transition": status.HTTP_400_BAD_REQUEST,
    "invalid_name": status.HTTP_400_BAD_REQUEST,
    "conflict": status.HTTP_409_CONFLICT,
    "duplicate_handle": status.HTTP_409_CONFLICT,
    "allocation_exhausted": status.HTTP_409_CONFLICT,
    "lookup_failed": status.HTTP_503_SERVICE_UNAVAILABLE,
    "storage": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def outcome_error(error_kind: Optional[str], message: Optional[str]) -> HTTPException:
    """Build the HTTPException for a failed transition or approval.

    Conflicts get 409 so callers can tell a lost race (re-fetch and retry)
    from an illegal request (400).
    """
    kind = getattr(error_kind, "value", error_kind)
    return HTTPException(
        status_code=_STATUS_BY_KIND.get(kind, status.HTTP_400_BAD_REQUEST),
        detail={"error": message or "Request failed", "kind": kind},
    )
