"""Admin-curated deny list for comment submissions.

Entries match by:
- keyword: substring of the lower-cased comment body
- ip: exact hashed IP (a raw IP entry is hashed on write)
- email: exact lower-cased address
- domain: the part of the submitter's email after "@"
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from commentgate.utils.ip import hash_ip

from .exceptions import CommentNotFoundError
from .models import (
    BlacklistEntry,
    BlacklistEntryType,
    create_blacklist_entry,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BlacklistMatch:
    matched: bool
    entry_type: BlacklistEntryType | None = None
    reason: str | None = None


NO_MATCH = BlacklistMatch(matched=False)


class BlacklistFilter:
    """Deny-list lookups and admin maintenance of the entries."""

    def __init__(self, session: "Session", keyspace: str, ip_hash_salt: str = ""):
        self.session = session
        self.keyspace = keyspace
        self.ip_hash_salt = ip_hash_salt
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._list_entries = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comment_blacklist
        """)

        self._get_entry = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comment_blacklist
            WHERE entry_id = ?
        """)

        self._insert_entry = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comment_blacklist
            (entry_id, entry_type, value, reason, created_at)
            VALUES (?, ?, ?, ?, ?)
        """)

        self._delete_entry = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comment_blacklist
            WHERE entry_id = ?
        """)

    async def list_entries(self) -> list[BlacklistEntry]:
        """All entries, newest first."""
        rows = await self.session.aexecute(self._list_entries)
        entries = [BlacklistEntry.from_row(row) for row in rows]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries

    async def add_entry(
        self,
        entry_type: BlacklistEntryType,
        value: str,
        reason: str | None = None,
    ) -> BlacklistEntry:
        """Add an entry. IP values that are not already hashes get hashed."""
        entry = create_blacklist_entry(entry_type, value, reason)
        if entry_type == BlacklistEntryType.IP and not _looks_hashed(entry.value):
            entry.value = hash_ip(entry.value, self.ip_hash_salt)

        await self.session.aexecute(
            self._insert_entry,
            [
                entry.entry_id,
                entry.entry_type.value,
                entry.value,
                entry.reason,
                entry.created_at,
            ],
        )

        logger.info(
            "blacklist_entry_added",
            entry_id=str(entry.entry_id),
            entry_type=entry.entry_type.value,
        )
        return entry

    async def remove_entry(self, entry_id: UUID) -> None:
        """Remove an entry.

        Raises:
            CommentNotFoundError: If the entry does not exist
        """
        rows = await self.session.aexecute(self._get_entry, [entry_id])
        if next(iter(rows), None) is None:
            raise CommentNotFoundError("Blacklist entry not found")

        await self.session.aexecute(self._delete_entry, [entry_id])
        logger.info("blacklist_entry_removed", entry_id=str(entry_id))

    async def check(
        self,
        email: str | None,
        ip_hash: str | None,
        content: str,
    ) -> BlacklistMatch:
        """Match a submission against every entry.

        Keyword entries are checked first, then IP, email and domain.
        """
        entries = await self.list_entries()
        return match_entries(entries, email, ip_hash, content)


def _looks_hashed(value: str) -> bool:
    sha256_hex_length = 64
    return len(value) == sha256_hex_length and all(c in "0123456789abcdef" for c in value)


def match_entries(
    entries: list[BlacklistEntry],
    email: str | None,
    ip_hash: str | None,
    content: str,
) -> BlacklistMatch:
    """Pure matching over a pre-fetched entry list."""
    by_type: dict[BlacklistEntryType, list[BlacklistEntry]] = {t: [] for t in BlacklistEntryType}
    for entry in entries:
        by_type[entry.entry_type].append(entry)

    content_lower = content.lower()
    for entry in by_type[BlacklistEntryType.KEYWORD]:
        if entry.value and entry.value in content_lower:
            return BlacklistMatch(True, BlacklistEntryType.KEYWORD, "Blacklisted keyword")

    if ip_hash:
        ip_hash_lower = ip_hash.lower()
        if any(entry.value == ip_hash_lower for entry in by_type[BlacklistEntryType.IP]):
            return BlacklistMatch(True, BlacklistEntryType.IP, "IP blacklisted")

    if email:
        email_lower = email.strip().lower()
        if any(entry.value == email_lower for entry in by_type[BlacklistEntryType.EMAIL]):
            return BlacklistMatch(True, BlacklistEntryType.EMAIL, "Email blacklisted")

        _, at, domain = email_lower.rpartition("@")
        if at and domain and any(
            entry.value == domain for entry in by_type[BlacklistEntryType.DOMAIN]
        ):
            return BlacklistMatch(
                True, BlacklistEntryType.DOMAIN, "Email domain blacklisted"
            )

    return NO_MATCH
