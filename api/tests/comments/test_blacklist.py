"""Tests for the blacklist filter."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from commentgate.comments.blacklist import NO_MATCH, BlacklistFilter, match_entries
from commentgate.comments.exceptions import CommentNotFoundError
from commentgate.comments.models import (
    BlacklistEntryType,
    create_blacklist_entry,
)
from commentgate.utils.ip import hash_ip


IP_HASH = hash_ip("203.0.113.9", "test-salt")


def entry(entry_type: BlacklistEntryType, value: str):
    return create_blacklist_entry(entry_type, value)


class TestMatchEntries:
    """Tests for the pure matcher."""

    def test_no_entries(self) -> None:
        assert match_entries([], "a@b.com", IP_HASH, "hello") == NO_MATCH

    def test_keyword_case_insensitive(self) -> None:
        result = match_entries(
            [entry(BlacklistEntryType.KEYWORD, "Casino")], None, None, "Best CASINO deals"
        )
        assert result.matched is True
        assert result.entry_type == BlacklistEntryType.KEYWORD

    def test_ip_hash_exact(self) -> None:
        result = match_entries([entry(BlacklistEntryType.IP, IP_HASH)], None, IP_HASH, "hi")
        assert result.entry_type == BlacklistEntryType.IP

    def test_email_exact_lowercased(self) -> None:
        result = match_entries(
            [entry(BlacklistEntryType.EMAIL, "spammer@example.com")],
            "Spammer@Example.com",
            None,
            "hi",
        )
        assert result.entry_type == BlacklistEntryType.EMAIL

    def test_domain_match(self) -> None:
        result = match_entries(
            [entry(BlacklistEntryType.DOMAIN, "spam.test")], "x@spam.test", None, "hi"
        )
        assert result.entry_type == BlacklistEntryType.DOMAIN
        assert result.reason == "Email domain blacklisted"

    def test_domain_requires_at_sign(self) -> None:
        result = match_entries(
            [entry(BlacklistEntryType.DOMAIN, "spam.test")], "spam.test", None, "hi"
        )
        assert result.matched is False

    def test_subdomain_does_not_match(self) -> None:
        result = match_entries(
            [entry(BlacklistEntryType.DOMAIN, "spam.test")], "x@mail.spam.test", None, "hi"
        )
        assert result.matched is False

    def test_keyword_checked_first(self) -> None:
        entries = [
            entry(BlacklistEntryType.EMAIL, "a@b.com"),
            entry(BlacklistEntryType.KEYWORD, "buy"),
        ]
        result = match_entries(entries, "a@b.com", None, "buy now")
        assert result.entry_type == BlacklistEntryType.KEYWORD

    def test_missing_email_and_ip(self) -> None:
        entries = [
            entry(BlacklistEntryType.EMAIL, "a@b.com"),
            entry(BlacklistEntryType.IP, IP_HASH),
        ]
        assert match_entries(entries, None, None, "hello").matched is False


@pytest.fixture
def blacklist(mock_session) -> BlacklistFilter:
    return BlacklistFilter(mock_session, "test_keyspace", ip_hash_salt="test-salt")


def row(entry_type: str, value: str, created_at: datetime) -> SimpleNamespace:
    return SimpleNamespace(
        entry_id=uuid4(),
        entry_type=entry_type,
        value=value,
        reason=None,
        created_at=created_at,
    )


class TestBlacklistFilter:
    """Tests for the Cassandra-backed filter."""

    @pytest.mark.asyncio
    async def test_list_entries_newest_first(self, blacklist, mock_session):
        now = datetime.now(UTC)
        older = row("keyword", "old", now - timedelta(days=1))
        newer = row("keyword", "new", now)
        mock_session.aexecute.return_value = [older, newer]

        entries = await blacklist.list_entries()

        assert [e.value for e in entries] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_raw_ip_is_hashed_on_write(self, blacklist, mock_session):
        created = await blacklist.add_entry(BlacklistEntryType.IP, "203.0.113.9")

        assert created.value == IP_HASH
        params = mock_session.aexecute.call_args.args[1]
        assert params[2] == IP_HASH
        assert "203.0.113.9" not in params

    @pytest.mark.asyncio
    async def test_hashed_ip_kept(self, blacklist, mock_session):
        created = await blacklist.add_entry(BlacklistEntryType.IP, IP_HASH.upper())
        assert created.value == IP_HASH

    @pytest.mark.asyncio
    async def test_value_normalized(self, blacklist, mock_session):
        created = await blacklist.add_entry(BlacklistEntryType.EMAIL, "  Bad@Example.COM ")
        assert created.value == "bad@example.com"

    @pytest.mark.asyncio
    async def test_remove_missing_entry(self, blacklist, mock_session):
        mock_session.aexecute.return_value = []
        with pytest.raises(CommentNotFoundError):
            await blacklist.remove_entry(uuid4())

    @pytest.mark.asyncio
    async def test_remove_existing_entry(self, blacklist, mock_session):
        existing = row("keyword", "x", datetime.now(UTC))
        mock_session.aexecute.side_effect = [[existing], []]

        await blacklist.remove_entry(existing.entry_id)

        delete_call = mock_session.aexecute.call_args_list[-1]
        assert delete_call.args[0] is blacklist._delete_entry

    @pytest.mark.asyncio
    async def test_check_uses_stored_entries(self, blacklist, mock_session):
        mock_session.aexecute.return_value = [row("ip", IP_HASH, datetime.now(UTC))]

        result = await blacklist.check("ok@example.com", IP_HASH, "hello")

        assert result.matched is True
        assert result.reason == "IP blacklisted"
