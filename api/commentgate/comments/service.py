"""Comment system service layer.

Business logic for:
- Moderated comment submission (decision engine + persistence)
- Owner edits and deletes
- Public reply trees annotated for the viewer
- Public comment counts (Redis-cached)
- Likes
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from commentgate.auth.permissions import is_at_least_moderator
from commentgate.auth.schemas import UserResponse
from commentgate.core.redis import comment_count_key

from .config import ModerationConfig
from .engine import DecisionEngine, Submission
from .exceptions import (
    CommentNotFoundError,
    CommentPersistenceError,
    InvalidCommentContentError,
    PermissionDeniedError,
)
from .models import (
    DECISION_MESSAGES,
    CommentTarget,
    Decision,
    create_comment,
    create_moderation_record,
)
from .sanitizer import sanitize_content
from .schemas import (
    CommentCountResponse,
    CommentPublicResponse,
    CommentTreeResponse,
    CreateCommentResult,
    LikeResponse,
)
from .store import ModerationStore
from .tree import (
    attach_is_mine,
    attach_liked_by_me,
    build_comment_tree,
    collect_comment_ids,
    count_comment_nodes,
)


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)

ANONYMOUS_NAME = "Anonymous"
PERSISTENCE_FAILED_MESSAGE = "Failed to save comment. Please try again."


@dataclass(frozen=True)
class ClientInfo:
    """Request metadata used for moderation."""

    ip: str
    user_agent: str = ""
    referrer: str = ""


class CommentService:
    """Service for comment operations.

    Uses Cassandra (through ModerationStore) as the source of truth and Redis
    only to cache public counts per target.
    """

    COUNT_CACHE_TTL_SECONDS = 300

    def __init__(
        self,
        store: ModerationStore,
        engine: DecisionEngine,
        config: ModerationConfig,
        redis: "Redis | None" = None,
    ):
        self.store = store
        self.engine = engine
        self.config = config
        self.redis = redis

    # ==========================================================================
    # Submission
    # ==========================================================================

    async def _check_parent(self, target: CommentTarget, parent_id: UUID) -> None:
        parent = await self.store.get(parent_id)
        if parent is None or parent.target != target:
            raise CommentNotFoundError("Parent comment not found")

    async def create_comment(
        self,
        target: CommentTarget,
        content: str,
        identity: UserResponse,
        parent_id: UUID | None = None,
        honeypot_value: str | None = None,
        captcha_token: str | None = None,
        client: ClientInfo | None = None,
        is_anonymous: bool = False,
    ) -> CreateCommentResult:
        """Run a submission through moderation and persist it.

        Rejected and rate-limited submissions are not stored. Spam, pending
        and approved ones are. The public projection is returned for approved
        and spam outcomes only.

        Raises:
            CommentNotFoundError: If ``parent_id`` is not a comment of the target
        """
        if parent_id is not None:
            await self._check_parent(target, parent_id)

        client = client or ClientInfo(ip="unknown")
        author_name = ANONYMOUS_NAME if is_anonymous else identity.display_name
        author_avatar = None if is_anonymous else identity.avatar_url

        result = await self.engine.evaluate(
            Submission(
                target=target,
                content=content,
                author_name=author_name,
                author_email=identity.email,
                author_id=identity.id,
                client_ip=client.ip,
                user_agent=client.user_agent,
                referrer=client.referrer,
                permalink=self.config.permalink(
                    target.target_type.value, str(target.target_id)
                ),
                honeypot_value=honeypot_value,
                captcha_token=captcha_token,
            )
        )

        message = DECISION_MESSAGES[result.decision]
        if not result.decision.persisted:
            return CreateCommentResult(
                success=False, decision=result.decision, message=message
            )

        comment = create_comment(
            target=target,
            author_name=author_name,
            content=result.content,
            is_approved=result.is_approved,
            is_spam=result.is_spam,
            parent_id=parent_id,
            author_avatar=author_avatar,
        )
        record = create_moderation_record(
            comment_id=comment.comment_id,
            author_id=identity.id,
            author_email=identity.email,
            ip_hash=result.ip_hash,
            link_count=result.link_count,
            spam_score=result.spam_score,
            spam_reason=result.reason,
            classifier_verdict=result.classifier_verdict,
        )

        try:
            await self.store.create(comment, record)
        except CommentPersistenceError:
            return CreateCommentResult(
                success=False, decision=None, message=PERSISTENCE_FAILED_MESSAGE
            )

        if comment.is_public:
            await self._invalidate_count(target)

        logger.info(
            "comment_created",
            comment_id=str(comment.comment_id),
            decision=result.decision.value,
        )

        return CreateCommentResult(
            success=True,
            decision=result.decision,
            message=message,
            comment=None
            if result.decision == Decision.PENDING
            else self.store.to_public(comment),
        )

    # ==========================================================================
    # Owner operations
    # ==========================================================================

    async def _require_owner(self, comment_id: UUID, user: UserResponse) -> None:
        owned = await self.store.owned_ids(user.id, [comment_id])
        if comment_id not in owned:
            raise PermissionDeniedError("You can only modify your own comments")

    async def update_comment(
        self, comment_id: UUID, content: str, user: UserResponse
    ) -> CommentPublicResponse:
        """Edit a comment's text. Only the author may edit.

        Raises:
            CommentNotFoundError: If the comment does not exist
            PermissionDeniedError: If the user is not the author
            InvalidCommentContentError: If the new text is rejected
        """
        if await self.store.get(comment_id) is None:
            raise CommentNotFoundError
        await self._require_owner(comment_id, user)

        sanitized = sanitize_content(content, self.config.max_length)
        if sanitized.rejected:
            raise InvalidCommentContentError(sanitized.reject_reason or "Invalid content")

        comment = await self.store.update_content(comment_id, sanitized.content)
        logger.info("comment_updated", comment_id=str(comment_id))
        return self.store.to_public(comment)

    async def delete_comment(self, comment_id: UUID, user: UserResponse) -> None:
        """Delete a comment. Authors delete their own; moderators any.

        Raises:
            CommentNotFoundError: If the comment does not exist
            PermissionDeniedError: If the user may not delete it
        """
        comment = await self.store.get(comment_id)
        if comment is None:
            raise CommentNotFoundError

        if not is_at_least_moderator(user.role):
            await self._require_owner(comment_id, user)

        await self.store.delete(comment_id)
        if comment.is_public:
            await self._invalidate_count(comment.target)

        logger.info("comment_deleted", comment_id=str(comment_id))

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def list_tree(
        self, target: CommentTarget, viewer: UserResponse | None = None
    ) -> CommentTreeResponse:
        """Visible comments of a target as a reply forest.

        ``liked_by_me`` and ``is_mine`` are filled for an authenticated viewer.
        """
        comments = await self.store.list_for_target(target)
        forest = build_comment_tree([self.store.to_public(c) for c in comments])

        if viewer is not None and forest:
            ids = collect_comment_ids(forest)
            attach_liked_by_me(forest, await self.store.liked_ids(viewer.id, ids))
            attach_is_mine(forest, await self.store.owned_ids(viewer.id, ids))

        return CommentTreeResponse(items=forest, total=count_comment_nodes(forest))

    async def count(self, target: CommentTarget) -> CommentCountResponse:
        """Number of visible comments on a target."""
        key = comment_count_key(target.target_type.value, str(target.target_id))

        cached = await self._cache_get(key)
        if cached is not None:
            return CommentCountResponse(
                target_type=target.target_type, target_id=target.target_id, count=int(cached)
            )

        comments = await self.store.list_for_target(target)
        total = len(comments)
        await self._cache_set(key, total)

        return CommentCountResponse(
            target_type=target.target_type, target_id=target.target_id, count=total
        )

    # ==========================================================================
    # Likes
    # ==========================================================================

    async def toggle_like(self, comment_id: UUID, user: UserResponse) -> LikeResponse:
        """Like a visible comment, or remove the like if already given.

        Raises:
            CommentNotFoundError: If the comment does not exist or is hidden
        """
        comment = await self.store.get(comment_id)
        if comment is None or not comment.is_public:
            raise CommentNotFoundError

        liked, like_count = await self.store.toggle_like(comment_id, user.id)
        return LikeResponse(comment_id=comment_id, liked=liked, like_count=like_count)

    # ==========================================================================
    # Cache
    # ==========================================================================

    async def _cache_get(self, key: str) -> str | None:
        if not self.redis:
            return None
        try:
            return await self.redis.get(key)
        except Exception as e:
            logger.warning("comment_count_cache_read_failed", error=str(e))
            return None

    async def _cache_set(self, key: str, value: int) -> None:
        if not self.redis:
            return
        try:
            await self.redis.setex(key, self.COUNT_CACHE_TTL_SECONDS, value)
        except Exception as e:
            logger.warning("comment_count_cache_write_failed", error=str(e))

    async def _invalidate_count(self, target: CommentTarget) -> None:
        """Drop the cached public count of a target."""
        if not self.redis:
            return
        try:
            await self.redis.delete(
                comment_count_key(target.target_type.value, str(target.target_id))
            )
        except Exception as e:
            logger.warning("comment_count_cache_invalidate_failed", error=str(e))
