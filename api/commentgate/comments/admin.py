"""Admin moderation operations.

Every operation returns an ``AdminActionResult`` instead of raising, so the
admin router can report storage errors as ``{success: false, error}``.
Human verdicts that contradict the classifier are fed back to it.
"""

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from commentgate.core.redis import comment_count_key

from .classifier import AkismetClassifier, ClassifierParams
from .config import ModerationConfig
from .exceptions import CommentError
from .models import ClassifierVerdict, Comment, ModerationRecord
from .schemas import AdminActionResult
from .store import ModerationStore


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


class AdminModerationService:
    """Approve, mark as spam and delete comments, singly or in bulk."""

    def __init__(
        self,
        store: ModerationStore,
        classifier: AkismetClassifier,
        config: ModerationConfig,
        redis: "Redis | None" = None,
    ):
        self.store = store
        self.classifier = classifier
        self.config = config
        self.redis = redis

    async def _invalidate_counts(self, comments: Iterable[Comment]) -> None:
        if not self.redis:
            return
        keys = {
            comment_count_key(c.target_type.value, str(c.target_id)) for c in comments
        }
        if not keys:
            return
        try:
            await self.redis.delete(*keys)
        except Exception as e:
            logger.warning("comment_count_cache_invalidate_failed", error=str(e))

    # ==========================================================================
    # Classifier feedback
    # ==========================================================================

    def _feedback_params(self, comment: Comment, record: ModerationRecord | None) -> ClassifierParams:
        # Only the salted hash of the IP is stored
        return ClassifierParams(
            user_ip="",
            user_agent="",
            comment_content=comment.content,
            comment_author=comment.author_name,
            comment_author_email=(record.author_email if record else None) or "",
            permalink=self.config.permalink(
                comment.target_type.value, str(comment.target_id), str(comment.comment_id)
            ),
        )

    async def _send_feedback(
        self, comments: Sequence[Comment], *, approved: bool, was_spam: dict[UUID, bool]
    ) -> None:
        if not self.classifier.is_configured or not comments:
            return

        try:
            records = await self.store.get_records([c.comment_id for c in comments])
        except Exception as e:
            logger.warning("classifier_feedback_skipped", error=str(e))
            return

        for comment in comments:
            record = records.get(comment.comment_id)
            verdict = record.classifier_verdict if record else None
            params = self._feedback_params(comment, record)
            try:
                if approved and (
                    verdict == ClassifierVerdict.SPAM or was_spam.get(comment.comment_id)
                ):
                    await self.classifier.report_ham(params)
                elif not approved and verdict == ClassifierVerdict.HAM:
                    await self.classifier.report_spam(params)
            except Exception as e:
                logger.warning(
                    "classifier_feedback_failed",
                    comment_id=str(comment.comment_id),
                    error=str(e),
                )

    # ==========================================================================
    # Single comment
    # ==========================================================================

    async def _set_flags(self, comment_id: UUID, *, approved: bool) -> AdminActionResult:
        is_approved, is_spam = (True, False) if approved else (False, True)
        try:
            before = await self.store.get(comment_id)
            comment = await self.store.update_flags(comment_id, is_approved, is_spam)
        except CommentError as e:
            return AdminActionResult(success=False, error=e.message)
        except Exception as e:
            logger.error("admin_update_failed", comment_id=str(comment_id), error=str(e))
            return AdminActionResult(success=False, error=str(e))

        was_spam = {comment_id: bool(before and before.is_spam)}
        await self._send_feedback([comment], approved=approved, was_spam=was_spam)
        await self._invalidate_counts([comment])

        action = "approved" if approved else "marked as spam"
        logger.info("comment_moderated", comment_id=str(comment_id), action=action)
        return AdminActionResult(success=True, message=f"Comment {action}", count=1)

    async def approve(self, comment_id: UUID) -> AdminActionResult:
        return await self._set_flags(comment_id, approved=True)

    async def mark_spam(self, comment_id: UUID) -> AdminActionResult:
        return await self._set_flags(comment_id, approved=False)

    async def delete(self, comment_id: UUID) -> AdminActionResult:
        try:
            deleted = await self.store.delete(comment_id)
        except CommentError as e:
            return AdminActionResult(success=False, error=e.message)
        except Exception as e:
            logger.error("admin_delete_failed", comment_id=str(comment_id), error=str(e))
            return AdminActionResult(success=False, error=str(e))

        await self._invalidate_counts([deleted])
        logger.info("comment_moderated", comment_id=str(comment_id), action="deleted")
        return AdminActionResult(success=True, message="Comment deleted", count=1)

    # ==========================================================================
    # Bulk (all-or-nothing)
    # ==========================================================================

    async def _bulk_set_flags(self, comment_ids: Sequence[UUID], *, approved: bool) -> AdminActionResult:
        if not comment_ids:
            return AdminActionResult(success=True, message="No comments selected", count=0)

        is_approved, is_spam = (True, False) if approved else (False, True)
        try:
            before = await self.store.get_many(comment_ids)
            updated = await self.store.bulk_update_flags(comment_ids, is_approved, is_spam)
        except CommentError as e:
            return AdminActionResult(success=False, error=e.message)
        except Exception as e:
            logger.error("admin_bulk_update_failed", count=len(comment_ids), error=str(e))
            return AdminActionResult(success=False, error=str(e))

        was_spam = {cid: comment.is_spam for cid, comment in before.items()}
        await self._send_feedback(updated, approved=approved, was_spam=was_spam)
        await self._invalidate_counts(updated)

        action = "approved" if approved else "marked as spam"
        logger.info("comments_bulk_moderated", count=len(updated), action=action)
        return AdminActionResult(
            success=True, message=f"{len(updated)} comments {action}", count=len(updated)
        )

    async def bulk_approve(self, comment_ids: Sequence[UUID]) -> AdminActionResult:
        return await self._bulk_set_flags(comment_ids, approved=True)

    async def bulk_mark_spam(self, comment_ids: Sequence[UUID]) -> AdminActionResult:
        return await self._bulk_set_flags(comment_ids, approved=False)

    async def bulk_delete(self, comment_ids: Sequence[UUID]) -> AdminActionResult:
        if not comment_ids:
            return AdminActionResult(success=True, message="No comments selected", count=0)

        try:
            deleted = await self.store.bulk_delete(comment_ids)
        except CommentError as e:
            return AdminActionResult(success=False, error=e.message)
        except Exception as e:
            logger.error("admin_bulk_delete_failed", count=len(comment_ids), error=str(e))
            return AdminActionResult(success=False, error=str(e))

        await self._invalidate_counts(deleted)
        logger.info("comments_bulk_moderated", count=len(deleted), action="deleted")
        return AdminActionResult(
            success=True, message=f"{len(deleted)} comments deleted", count=len(deleted)
        )
