"""Unit tests for handle derivation and allocation."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from agentkyc_core.domain.services.handles import (
    MAX_HANDLE_LENGTH,
    HandleAllocator,
    HandleErrorKind,
    _with_suffix,
    derive_handle,
)
from tests.factories import create_application


class TestDeriveHandle:
    """Tests for derive_handle."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Research Bot 3000!", "research-bot-3000"),
            ("  --Hello__World--  ", "hello-world"),
            ("ALLCAPS", "allcaps"),
            ("a.b.c", "a-b-c"),
            ("Café Bot", "caf-bot"),
        ],
    )
    def test_derives_slug(self, name, expected):
        assert derive_handle(name) == expected

    @pytest.mark.parametrize("name", [None, "", "!!!", "   ", "---"])
    def test_no_alphanumerics_gives_none(self, name):
        assert derive_handle(name) is None

    def test_truncates_to_column_width(self):
        handle = derive_handle("x" * 80)

        assert len(handle) == MAX_HANDLE_LENGTH


class TestWithSuffix:
    """Tests for suffixed candidates."""

    def test_first_attempt_is_base(self):
        assert _with_suffix("bot", 0) == "bot"

    def test_suffix_appended(self):
        assert _with_suffix("bot", 7) == "bot-7"

    def test_long_base_trimmed_to_fit_suffix(self):
        candidate = _with_suffix("a" * MAX_HANDLE_LENGTH, 12)

        assert len(candidate) == MAX_HANDLE_LENGTH
        assert candidate.endswith("-12")


class TestAllocateUnique:
    """Tests for HandleAllocator.allocate_unique."""

    def test_free_base_is_used(self, db_session: Session):
        application = create_application(db_session)

        allocation = HandleAllocator(db_session).allocate_unique("research-bot", application.id)

        assert allocation.ok
        assert allocation.handle == "research-bot"

    def test_taken_base_gets_suffix(self, db_session: Session):
        create_application(db_session, status="verified", handle="research-bot")
        create_application(db_session, status="verified", handle="research-bot-1")
        application = create_application(db_session)

        allocation = HandleAllocator(db_session).allocate_unique("research-bot", application.id)

        assert allocation.handle == "research-bot-2"

    def test_own_handle_is_kept(self, db_session: Session):
        application = create_application(db_session, status="verified", handle="research-bot")

        allocation = HandleAllocator(db_session).allocate_unique("research-bot", application.id)

        assert allocation.handle == "research-bot"

    def test_exhausted_after_twenty_candidates(self, db_session: Session):
        create_application(db_session, status="verified", handle="bot")
        for i in range(1, 20):
            create_application(db_session, status="verified", handle=f"bot-{i}")
        application = create_application(db_session)

        allocation = HandleAllocator(db_session).allocate_unique("bot", application.id)

        assert not allocation.ok
        assert allocation.error_kind == HandleErrorKind.EXHAUSTED
        assert allocation.error == "Unable to generate unique handle"

    def test_last_candidate_is_nineteen(self, db_session: Session):
        create_application(db_session, status="verified", handle="bot")
        for i in range(1, 19):
            create_application(db_session, status="verified", handle=f"bot-{i}")
        application = create_application(db_session)

        allocation = HandleAllocator(db_session).allocate_unique("bot", application.id)

        assert allocation.handle == "bot-19"

    def test_lookup_failure_reported(self, db_session: Session):
        application = create_application(db_session)
        allocator = HandleAllocator(db_session)

        error = OperationalError("SELECT", {}, Exception("connection lost"))
        with patch.object(allocator, "_owner_of", side_effect=error):
            allocation = allocator.allocate_unique("bot", application.id)

        assert not allocation.ok
        assert allocation.error_kind == HandleErrorKind.LOOKUP_FAILED
