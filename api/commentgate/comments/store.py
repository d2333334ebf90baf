"""Persistence for comments and their moderation records.

Comment rows (public-safe) and moderation rows (privileged) are written
separately. Author identity lives only in the moderation record; ownership
questions are answered here with ``owned_ids`` so identity never has to leave
the store.

Multi-row admin operations run as one LOGGED batch: either every row changes
or none does. Counter tables cannot join a logged batch, so like counters are
cleaned up after the batch on a best-effort basis.
"""

import heapq
from collections.abc import Iterable, Iterator
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from cassandra.query import BatchStatement, BatchType

from .exceptions import CommentNotFoundError, CommentPersistenceError
from .models import (
    AdminCommentView,
    Comment,
    CommentStatus,
    CommentTarget,
    ModerationRecord,
)
from .schemas import CommentPublicResponse


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

# Bound on values per IN (...) clause
IN_CLAUSE_CHUNK = 100

STATUS_FLAGS: dict[CommentStatus, tuple[bool, bool]] = {
    CommentStatus.PENDING: (False, False),
    CommentStatus.SPAM: (False, True),
    CommentStatus.APPROVED: (True, False),
}


def _chunks(values: list[UUID], size: int = IN_CLAUSE_CHUNK) -> Iterator[list[UUID]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


def _unique(values: Iterable[UUID]) -> list[UUID]:
    return list(dict.fromkeys(values))


class ModerationStore:
    """Cassandra-backed store for Comment and ModerationRecord."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        # Comments
        self._insert_comment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comments
            (comment_id, target_type, target_id, parent_id, author_name, author_avatar,
             content, is_approved, is_spam, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_comment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE comment_id = ?
        """)

        self._get_comments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE comment_id IN ?
        """)

        self._get_comments_by_target = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE target_id = ?
        """)

        self._get_comments_by_flags = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE is_approved = ? AND is_spam = ?
            ALLOW FILTERING
        """)

        self._get_all_comments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
        """)

        self._update_content = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments
            SET content = ?, updated_at = ?
            WHERE comment_id = ?
        """)

        self._update_flags = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments
            SET is_approved = ?, is_spam = ?, updated_at = ?
            WHERE comment_id = ?
        """)

        self._delete_comment = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comments
            WHERE comment_id = ?
        """)

        # Moderation records
        self._insert_record = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comment_moderation
            (comment_id, author_id, author_email, ip_hash, spam_score, spam_reason,
             link_count, classifier_verdict, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_record = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comment_moderation
            WHERE comment_id = ?
        """)

        self._get_records = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comment_moderation
            WHERE comment_id IN ?
        """)

        # Uses secondary index on author_id
        self._get_records_by_author = self.session.prepare(f"""
            SELECT comment_id FROM {self.keyspace}.comment_moderation
            WHERE author_id = ?
        """)

        self._delete_record = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comment_moderation
            WHERE comment_id = ?
        """)

        # Likes
        self._get_likers = self.session.prepare(f"""
            SELECT user_id FROM {self.keyspace}.comment_likes
            WHERE comment_id = ?
        """)

        self._get_user_like = self.session.prepare(f"""
            SELECT comment_id FROM {self.keyspace}.user_comment_likes
            WHERE user_id = ? AND comment_id = ?
        """)

        self._get_user_likes = self.session.prepare(f"""
            SELECT comment_id FROM {self.keyspace}.user_comment_likes
            WHERE user_id = ? AND comment_id IN ?
        """)

        self._insert_like = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comment_likes
            (comment_id, user_id, created_at)
            VALUES (?, ?, ?)
        """)

        self._insert_user_like = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.user_comment_likes
            (user_id, comment_id, created_at)
            VALUES (?, ?, ?)
        """)

        self._delete_likes = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comment_likes
            WHERE comment_id = ?
        """)

        self._delete_like = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comment_likes
            WHERE comment_id = ? AND user_id = ?
        """)

        self._delete_user_like = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.user_comment_likes
            WHERE user_id = ? AND comment_id = ?
        """)

        # Like counts (counter table)
        self._incr_like_count = self.session.prepare(f"""
            UPDATE {self.keyspace}.comment_like_counts
            SET like_count = like_count + 1
            WHERE comment_id = ?
        """)

        self._decr_like_count = self.session.prepare(f"""
            UPDATE {self.keyspace}.comment_like_counts
            SET like_count = like_count - 1
            WHERE comment_id = ?
        """)

        self._get_like_counts = self.session.prepare(f"""
            SELECT comment_id, like_count FROM {self.keyspace}.comment_like_counts
            WHERE comment_id IN ?
        """)

        self._delete_like_count = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comment_like_counts
            WHERE comment_id = ?
        """)

    # ==========================================================================
    # Create / Read
    # ==========================================================================

    async def create(self, comment: Comment, record: ModerationRecord) -> Comment:
        """Persist a comment, then its moderation record.

        Raises:
            CommentPersistenceError: If the comment row could not be written.
                A failed moderation record write is logged and the comment kept.
        """
        try:
            await self.session.aexecute(
                self._insert_comment,
                [
                    comment.comment_id,
                    comment.target_type.value,
                    comment.target_id,
                    comment.parent_id,
                    comment.author_name,
                    comment.author_avatar,
                    comment.content,
                    comment.is_approved,
                    comment.is_spam,
                    comment.created_at,
                    comment.updated_at,
                ],
            )
        except Exception as e:
            logger.error(
                "comment_write_failed",
                comment_id=str(comment.comment_id),
                error=str(e),
            )
            raise CommentPersistenceError from e

        try:
            await self.session.aexecute(
                self._insert_record,
                [
                    record.comment_id,
                    record.author_id,
                    record.author_email,
                    record.ip_hash,
                    record.spam_score,
                    record.spam_reason,
                    record.link_count,
                    record.classifier_verdict.value if record.classifier_verdict else None,
                    record.created_at,
                ],
            )
        except Exception as e:
            logger.error(
                "moderation_record_write_failed",
                comment_id=str(comment.comment_id),
                error=str(e),
            )

        return comment

    @staticmethod
    def to_public(comment: Comment) -> CommentPublicResponse:
        """Public projection. Reads Comment fields only."""
        return CommentPublicResponse.from_comment(comment)

    async def get(self, comment_id: UUID) -> Comment | None:
        rows = await self.session.aexecute(self._get_comment, [comment_id])
        row = next(iter(rows), None)
        if row is None:
            return None
        counts = await self.like_counts([comment_id])
        return Comment.from_row(row, like_count=counts.get(comment_id, 0))

    async def get_record(self, comment_id: UUID) -> ModerationRecord | None:
        rows = await self.session.aexecute(self._get_record, [comment_id])
        row = next(iter(rows), None)
        return ModerationRecord.from_row(row) if row else None

    async def _get_many(self, comment_ids: list[UUID]) -> dict[UUID, Any]:
        found: dict[UUID, Any] = {}
        for chunk in _chunks(comment_ids):
            rows = await self.session.aexecute(self._get_comments, [chunk])
            for row in rows:
                found[row.comment_id] = row
        return found

    async def get_many(self, comment_ids: Iterable[UUID]) -> dict[UUID, Comment]:
        rows = await self._get_many(_unique(comment_ids))
        return {cid: Comment.from_row(row) for cid, row in rows.items()}

    async def get_records(self, comment_ids: list[UUID]) -> dict[UUID, ModerationRecord]:
        records: dict[UUID, ModerationRecord] = {}
        for chunk in _chunks(comment_ids):
            rows = await self.session.aexecute(self._get_records, [chunk])
            for row in rows:
                records[row.comment_id] = ModerationRecord.from_row(row)
        return records

    async def list_for_target(
        self, target: CommentTarget, include_hidden: bool = False
    ) -> list[Comment]:
        """Comments of a target, oldest first.

        Only approved, non-spam comments unless ``include_hidden``.
        """
        rows = await self.session.aexecute(
            self._get_comments_by_target, [target.target_id]
        )
        comments = [
            Comment.from_row(row)
            for row in rows
            if row.target_type == target.target_type.value
        ]
        if not include_hidden:
            comments = [c for c in comments if c.is_public]

        counts = await self.like_counts([c.comment_id for c in comments])
        for comment in comments:
            comment.like_count = counts.get(comment.comment_id, 0)

        comments.sort(key=lambda c: c.created_at)
        return comments

    async def list_for_admin(
        self, status: CommentStatus = CommentStatus.PENDING, limit: int = 100
    ) -> list[AdminCommentView]:
        """Newest ``limit`` comments of the queue, joined with their records.

        Partitions come back in token order, so the whole filtered scan is
        paged through and only the newest rows are kept.
        """
        if status == CommentStatus.ALL:
            rows = await self.session.aexecute(self._get_all_comments)
        else:
            is_approved, is_spam = STATUS_FLAGS[status]
            rows = await self.session.aexecute(
                self._get_comments_by_flags, [is_approved, is_spam]
            )

        newest = heapq.nlargest(limit, rows, key=lambda row: row.created_at)
        comments = [Comment.from_row(row) for row in newest]
        ids = [c.comment_id for c in comments]
        records = await self.get_records(ids)
        counts = await self.like_counts(ids)

        views = []
        for comment in comments:
            comment.like_count = counts.get(comment.comment_id, 0)
            views.append(AdminCommentView(comment=comment, record=records.get(comment.comment_id)))
        return views

    async def owned_ids(self, viewer_id: UUID, comment_ids: Iterable[UUID]) -> set[UUID]:
        """Subset of ``comment_ids`` authored by ``viewer_id``."""
        ids = _unique(comment_ids)
        if not ids:
            return set()
        records = await self.get_records(ids)
        return {cid for cid, record in records.items() if record.author_id == viewer_id}

    async def has_approved_comment(self, author_id: UUID) -> bool:
        """Whether the author has at least one approved comment."""
        rows = await self.session.aexecute(self._get_records_by_author, [author_id])
        ids = _unique(row.comment_id for row in rows)
        if not ids:
            return False
        comments = await self._get_many(ids)
        return any(row.is_approved and not row.is_spam for row in comments.values())

    # ==========================================================================
    # Updates
    # ==========================================================================

    async def update_content(self, comment_id: UUID, content: str) -> Comment:
        """Replace the text of a comment.

        Raises:
            CommentNotFoundError: If the comment does not exist
        """
        comment = await self.get(comment_id)
        if comment is None:
            raise CommentNotFoundError

        now = datetime.now(UTC)
        await self.session.aexecute(self._update_content, [content, now, comment_id])

        comment.content = content
        comment.updated_at = now
        return comment

    async def update_flags(
        self, comment_id: UUID, is_approved: bool, is_spam: bool
    ) -> Comment:
        """Set the moderation flags of one comment.

        Raises:
            CommentNotFoundError: If the comment does not exist
        """
        comment = await self.get(comment_id)
        if comment is None:
            raise CommentNotFoundError

        now = datetime.now(UTC)
        await self.session.aexecute(
            self._update_flags, [is_approved, is_spam, now, comment_id]
        )

        comment.is_approved = is_approved
        comment.is_spam = is_spam
        comment.updated_at = now
        return comment

    async def bulk_update_flags(
        self, comment_ids: Iterable[UUID], is_approved: bool, is_spam: bool
    ) -> list[Comment]:
        """Set flags on several comments in one logged batch.

        Raises:
            CommentNotFoundError: If any id does not exist (nothing is written)
        """
        ids = _unique(comment_ids)
        rows = await self._get_many(ids)
        missing = [cid for cid in ids if cid not in rows]
        if missing:
            raise CommentNotFoundError(
                f"Comments not found: {', '.join(str(cid) for cid in missing)}"
            )

        now = datetime.now(UTC)
        batch = BatchStatement(batch_type=BatchType.LOGGED)
        for cid in ids:
            batch.add(self._update_flags, [is_approved, is_spam, now, cid])
        await self.session.aexecute(batch)

        comments = []
        for cid in ids:
            comment = Comment.from_row(rows[cid])
            comment.is_approved = is_approved
            comment.is_spam = is_spam
            comment.updated_at = now
            comments.append(comment)
        return comments

    # ==========================================================================
    # Deletes
    # ==========================================================================

    async def _add_deletes(self, batch: BatchStatement, comment_id: UUID) -> None:
        likers = await self.session.aexecute(self._get_likers, [comment_id])
        for row in likers:
            batch.add(self._delete_user_like, [row.user_id, comment_id])
        batch.add(self._delete_likes, [comment_id])
        batch.add(self._delete_record, [comment_id])
        batch.add(self._delete_comment, [comment_id])

    async def _drop_like_counts(self, comment_ids: list[UUID]) -> None:
        for cid in comment_ids:
            try:
                await self.session.aexecute(self._delete_like_count, [cid])
            except Exception as e:
                logger.warning(
                    "like_count_cleanup_failed", comment_id=str(cid), error=str(e)
                )

    async def delete(self, comment_id: UUID) -> Comment:
        """Delete a comment with its moderation record and likes.

        Raises:
            CommentNotFoundError: If the comment does not exist
        """
        comment = await self.get(comment_id)
        if comment is None:
            raise CommentNotFoundError

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        await self._add_deletes(batch, comment_id)
        await self.session.aexecute(batch)
        await self._drop_like_counts([comment_id])

        return comment

    async def bulk_delete(self, comment_ids: Iterable[UUID]) -> list[Comment]:
        """Delete several comments (with records and likes) in one logged batch.

        Raises:
            CommentNotFoundError: If any id does not exist (nothing is deleted)
        """
        ids = _unique(comment_ids)
        rows = await self._get_many(ids)
        missing = [cid for cid in ids if cid not in rows]
        if missing:
            raise CommentNotFoundError(
                f"Comments not found: {', '.join(str(cid) for cid in missing)}"
            )

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        for cid in ids:
            await self._add_deletes(batch, cid)
        await self.session.aexecute(batch)
        await self._drop_like_counts(ids)

        return [Comment.from_row(rows[cid]) for cid in ids]

    # ==========================================================================
    # Likes
    # ==========================================================================

    async def like_counts(self, comment_ids: Iterable[UUID]) -> dict[UUID, int]:
        counts: dict[UUID, int] = {}
        for chunk in _chunks(_unique(comment_ids)):
            rows = await self.session.aexecute(self._get_like_counts, [chunk])
            for row in rows:
                counts[row.comment_id] = max(0, row.like_count or 0)
        return counts

    async def liked_ids(self, user_id: UUID, comment_ids: Iterable[UUID]) -> set[UUID]:
        """Subset of ``comment_ids`` liked by ``user_id``."""
        liked: set[UUID] = set()
        for chunk in _chunks(_unique(comment_ids)):
            rows = await self.session.aexecute(self._get_user_likes, [user_id, chunk])
            liked.update(row.comment_id for row in rows)
        return liked

    async def toggle_like(self, comment_id: UUID, user_id: UUID) -> tuple[bool, int]:
        """Like or unlike a comment.

        Returns:
            (liked, like_count) after the toggle
        """
        rows = await self.session.aexecute(self._get_user_like, [user_id, comment_id])
        already_liked = next(iter(rows), None) is not None

        if already_liked:
            await self.session.aexecute(self._delete_like, [comment_id, user_id])
            await self.session.aexecute(self._delete_user_like, [user_id, comment_id])
            await self.session.aexecute(self._decr_like_count, [comment_id])
        else:
            now = datetime.now(UTC)
            await self.session.aexecute(self._insert_like, [comment_id, user_id, now])
            await self.session.aexecute(self._insert_user_like, [user_id, comment_id, now])
            await self.session.aexecute(self._incr_like_count, [comment_id])

        counts = await self.like_counts([comment_id])
        return not already_liked, counts.get(comment_id, 0)
