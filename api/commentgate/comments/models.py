"""Database models for the moderated comment system.

Cassandra table definitions for:
- Comments: public-safe rows, the only data ever rendered to readers
- Comment moderation: privileged per-comment record (author identity,
  email, hashed IP, classifier output)
- Rate limit windows per (hashed IP, target)
- Admin-curated blacklist
- Likes with denormalized counters

Architecture: the public Comment and the privileged ModerationRecord are
separate tables and separate dataclasses with no shared base, so a public
response can only ever be built from Comment fields.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class TargetType(str, Enum):
    """Kinds of content a comment can be attached to."""

    POST = "post"
    GALLERY_ITEM = "gallery_item"


class Decision(str, Enum):
    """Outcome of the moderation pipeline for one submission."""

    REJECT = "reject"
    RATE_LIMITED = "rate_limited"
    SPAM = "spam"
    PENDING = "pending"
    APPROVED = "approved"

    @property
    def persisted(self) -> bool:
        return self in (Decision.SPAM, Decision.PENDING, Decision.APPROVED)


class ClassifierVerdict(str, Enum):
    """The external classifier's original call on a comment."""

    SPAM = "spam"
    HAM = "ham"


class BlacklistEntryType(str, Enum):
    """What a blacklist entry is matched against."""

    EMAIL = "email"
    IP = "ip"
    KEYWORD = "keyword"
    DOMAIN = "domain"


class CommentStatus(str, Enum):
    """Admin queue filters, derived from (is_approved, is_spam)."""

    PENDING = "pending"
    SPAM = "spam"
    APPROVED = "approved"
    ALL = "all"


# Decision -> (is_approved, is_spam) for persisted outcomes
DECISION_FLAGS: dict[Decision, tuple[bool, bool]] = {
    Decision.SPAM: (False, True),
    Decision.PENDING: (False, False),
    Decision.APPROVED: (True, False),
}

DECISION_MESSAGES: dict[Decision, str] = {
    Decision.REJECT: "Your comment could not be submitted. Please try again.",
    Decision.RATE_LIMITED: (
        "You are commenting too frequently. Please wait a moment and try again."
    ),
    Decision.SPAM: "Your comment has been submitted for review.",
    Decision.PENDING: "Your comment has been submitted and is awaiting moderation.",
    Decision.APPROVED: "Comment posted successfully!",
}


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Public comments, O(1) lookup by id
COMMENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments (
    comment_id UUID PRIMARY KEY,
    target_type TEXT,
    target_id UUID,
    parent_id UUID,
    author_name TEXT,
    author_avatar TEXT,
    content TEXT,
    is_approved BOOLEAN,
    is_spam BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Listing a target's comments
COMMENT_TARGET_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_target_idx
ON {keyspace}.comments (target_id)
"""

# Privileged moderation record, one per comment
COMMENT_MODERATION_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_moderation (
    comment_id UUID PRIMARY KEY,
    author_id UUID,
    author_email TEXT,
    ip_hash TEXT,
    spam_score DOUBLE,
    spam_reason TEXT,
    link_count INT,
    classifier_verdict TEXT,
    created_at TIMESTAMP
)
"""

# Ownership lookups and first-time commenter checks
COMMENT_MODERATION_AUTHOR_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comment_moderation_author_idx
ON {keyspace}.comment_moderation (author_id)
"""

# Rate limit windows; newest window first. The TTL is a backstop for the
# explicit sweep.
RATE_LIMIT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_rate_limits (
    ip_hash TEXT,
    target_type TEXT,
    target_id UUID,
    window_start TIMESTAMP,
    count INT,
    PRIMARY KEY ((ip_hash, target_type, target_id), window_start)
) WITH CLUSTERING ORDER BY (window_start DESC)
  AND default_time_to_live = 86400
"""

BLACKLIST_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_blacklist (
    entry_id UUID PRIMARY KEY,
    entry_type TEXT,
    value TEXT,
    reason TEXT,
    created_at TIMESTAMP
)
"""

# Likes partitioned by comment, for cascade deletes
LIKE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_likes (
    comment_id UUID,
    user_id UUID,
    created_at TIMESTAMP,
    PRIMARY KEY ((comment_id), user_id)
)
"""

# Likes partitioned by user, for liked_by_me annotations
USER_LIKES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.user_comment_likes (
    user_id UUID,
    comment_id UUID,
    created_at TIMESTAMP,
    PRIMARY KEY ((user_id), comment_id)
)
"""

# Like counts - denormalized for fast reads
LIKE_COUNTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_like_counts (
    comment_id UUID PRIMARY KEY,
    like_count COUNTER
)
"""

COMMENTS_TABLES_CQL = [
    COMMENT_TABLE_CQL,
    COMMENT_TARGET_INDEX_CQL,
    COMMENT_MODERATION_TABLE_CQL,
    COMMENT_MODERATION_AUTHOR_INDEX_CQL,
    RATE_LIMIT_TABLE_CQL,
    BLACKLIST_TABLE_CQL,
    LIKE_TABLE_CQL,
    USER_LIKES_TABLE_CQL,
    LIKE_COUNTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class CommentTarget:
    """The content item a comment belongs to."""

    target_type: TargetType
    target_id: UUID


@dataclass
class Comment:
    """Public-safe comment. Never carries email, IP or author identity."""

    comment_id: UUID
    target_type: TargetType
    target_id: UUID
    parent_id: UUID | None
    author_name: str
    author_avatar: str | None
    content: str
    is_approved: bool
    is_spam: bool
    created_at: datetime
    updated_at: datetime
    like_count: int = 0

    @classmethod
    def from_row(cls, row: Any, like_count: int = 0) -> "Comment":
        """Create Comment from Cassandra row."""
        return cls(
            comment_id=row.comment_id,
            target_type=TargetType(row.target_type),
            target_id=row.target_id,
            parent_id=row.parent_id,
            author_name=row.author_name or "Anonymous",
            author_avatar=row.author_avatar,
            content=row.content,
            is_approved=bool(row.is_approved),
            is_spam=bool(row.is_spam),
            created_at=row.created_at,
            updated_at=row.updated_at or row.created_at,
            like_count=like_count,
        )

    @property
    def target(self) -> CommentTarget:
        return CommentTarget(self.target_type, self.target_id)

    @property
    def is_public(self) -> bool:
        return self.is_approved and not self.is_spam


@dataclass
class ModerationRecord:
    """Privileged moderation data for a comment. Admin-only."""

    comment_id: UUID
    author_id: UUID | None
    author_email: str | None
    ip_hash: str | None
    spam_score: float | None
    spam_reason: str | None
    link_count: int
    classifier_verdict: ClassifierVerdict | None
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "ModerationRecord":
        """Create ModerationRecord from Cassandra row."""
        return cls(
            comment_id=row.comment_id,
            author_id=row.author_id,
            author_email=row.author_email,
            ip_hash=row.ip_hash,
            spam_score=row.spam_score,
            spam_reason=row.spam_reason,
            link_count=row.link_count or 0,
            classifier_verdict=(
                ClassifierVerdict(row.classifier_verdict)
                if row.classifier_verdict
                else None
            ),
            created_at=row.created_at,
        )


@dataclass
class RateLimitWindow:
    """Submission counter for one (hashed IP, target) window."""

    ip_hash: str
    target_type: TargetType
    target_id: UUID
    window_start: datetime
    count: int

    @classmethod
    def from_row(cls, row: Any) -> "RateLimitWindow":
        return cls(
            ip_hash=row.ip_hash,
            target_type=TargetType(row.target_type),
            target_id=row.target_id,
            window_start=row.window_start,
            count=row.count or 0,
        )


@dataclass
class BlacklistEntry:
    """Admin-curated deny-list entry. Created and deleted, never updated."""

    entry_id: UUID
    entry_type: BlacklistEntryType
    value: str
    reason: str | None
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "BlacklistEntry":
        return cls(
            entry_id=row.entry_id,
            entry_type=BlacklistEntryType(row.entry_type),
            value=row.value,
            reason=row.reason,
            created_at=row.created_at,
        )


@dataclass
class AdminCommentView:
    """Privileged join of a comment and its moderation record."""

    comment: Comment
    record: ModerationRecord | None


# ==============================================================================
# Factory Functions
# ==============================================================================


def create_comment(
    target: CommentTarget,
    author_name: str,
    content: str,
    is_approved: bool,
    is_spam: bool,
    parent_id: UUID | None = None,
    author_avatar: str | None = None,
) -> Comment:
    """Create a new comment with default values."""
    now = datetime.now(UTC)
    return Comment(
        comment_id=uuid4(),
        target_type=target.target_type,
        target_id=target.target_id,
        parent_id=parent_id,
        author_name=author_name,
        author_avatar=author_avatar,
        content=content,
        is_approved=is_approved,
        is_spam=is_spam,
        created_at=now,
        updated_at=now,
    )


def create_moderation_record(
    comment_id: UUID,
    author_id: UUID | None,
    author_email: str | None,
    ip_hash: str | None,
    link_count: int,
    spam_score: float | None = None,
    spam_reason: str | None = None,
    classifier_verdict: ClassifierVerdict | None = None,
) -> ModerationRecord:
    """Create the moderation record that accompanies a new comment."""
    return ModerationRecord(
        comment_id=comment_id,
        author_id=author_id,
        author_email=author_email.lower() if author_email else None,
        ip_hash=ip_hash,
        spam_score=spam_score,
        spam_reason=spam_reason,
        link_count=link_count,
        classifier_verdict=classifier_verdict,
        created_at=datetime.now(UTC),
    )


def normalize_blacklist_value(value: str) -> str:
    return value.strip().lower()


def create_blacklist_entry(
    entry_type: BlacklistEntryType,
    value: str,
    reason: str | None = None,
) -> BlacklistEntry:
    """Create a blacklist entry with a normalized value."""
    return BlacklistEntry(
        entry_id=uuid4(),
        entry_type=entry_type,
        value=normalize_blacklist_value(value),
        reason=reason,
        created_at=datetime.now(UTC),
    )
