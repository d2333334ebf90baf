"""Tests for the comment service layer."""

from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from commentgate.auth.schemas import UserResponse
from commentgate.comments.engine import DecisionEngine, EngineResult
from commentgate.comments.exceptions import (
    CommentNotFoundError,
    CommentPersistenceError,
    InvalidCommentContentError,
    PermissionDeniedError,
)
from commentgate.comments.models import (
    ClassifierVerdict,
    CommentTarget,
    Decision,
    TargetType,
    create_comment,
)
from commentgate.comments.service import ClientInfo, CommentService
from commentgate.comments.store import ModerationStore


def engine_result(decision: Decision, content: str = "Nice post") -> EngineResult:
    return EngineResult(
        decision=decision,
        reason="test",
        content=content,
        link_count=0,
        ip_hash="a" * 64,
        classifier_verdict=ClassifierVerdict.HAM,
    )


@pytest.fixture
def user() -> UserResponse:
    return UserResponse(
        id=uuid4(),
        email="Ana@Example.com",
        name="Ana",
        role="user",
        avatar_url="https://cdn.example.com/ana.png",
    )


@pytest.fixture
def store():
    s = Mock(spec=ModerationStore)
    for name in (
        "create",
        "get",
        "owned_ids",
        "update_content",
        "delete",
        "list_for_target",
        "liked_ids",
        "toggle_like",
    ):
        setattr(s, name, AsyncMock())
    s.to_public = ModerationStore.to_public
    s.owned_ids.return_value = set()
    s.liked_ids.return_value = set()
    return s


@pytest.fixture
def engine():
    e = Mock(spec=DecisionEngine)
    e.evaluate = AsyncMock(return_value=engine_result(Decision.APPROVED))
    return e


@pytest.fixture
def redis():
    r = AsyncMock()
    r.get = AsyncMock(return_value=None)
    r.setex = AsyncMock()
    r.delete = AsyncMock()
    return r


@pytest.fixture
def service(store, engine, config, redis) -> CommentService:
    return CommentService(store, engine, config, redis=redis)


class TestCreateComment:
    """Submission flow."""

    @pytest.mark.asyncio
    async def test_approved_is_persisted_and_projected(
        self, service, store, engine, redis, target, user
    ):
        result = await service.create_comment(
            target, "Nice post", user, client=ClientInfo(ip="203.0.113.7", user_agent="ua")
        )

        assert result.success is True
        assert result.decision == Decision.APPROVED
        assert result.message == "Comment posted successfully!"
        assert result.comment.author_name == "Ana"
        assert result.comment.author_avatar == "https://cdn.example.com/ana.png"

        comment, record = store.create.call_args.args
        assert comment.is_approved is True
        assert comment.is_spam is False
        assert record.author_id == user.id
        assert record.author_email == "ana@example.com"
        assert record.ip_hash == "a" * 64
        assert record.classifier_verdict == ClassifierVerdict.HAM

        submission = engine.evaluate.call_args.args[0]
        assert submission.client_ip == "203.0.113.7"
        assert submission.user_agent == "ua"
        assert submission.permalink == f"https://blog.example.com/posts/{target.target_id}"

        redis.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_public_projection_has_no_private_fields(self, service, target, user):
        result = await service.create_comment(target, "Nice post", user)

        payload = result.model_dump()["comment"]
        for field in ("author_email", "author_id", "ip_hash", "spam_score", "is_spam"):
            assert field not in payload

    @pytest.mark.asyncio
    async def test_pending_does_not_invalidate_count(
        self, service, store, engine, redis, target, user
    ):
        engine.evaluate.return_value = engine_result(Decision.PENDING)

        result = await service.create_comment(target, "Nice post", user)

        assert result.success is True
        assert result.decision == Decision.PENDING
        assert result.comment is None
        comment, _ = store.create.call_args.args
        assert (comment.is_approved, comment.is_spam) == (False, False)
        redis.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_spam_is_persisted_hidden(self, service, store, engine, target, user):
        engine.evaluate.return_value = engine_result(Decision.SPAM)

        result = await service.create_comment(target, "cheap pills", user)

        assert result.success is True
        assert result.message == "Your comment has been submitted for review."
        comment, _ = store.create.call_args.args
        assert (comment.is_approved, comment.is_spam) == (False, True)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("decision", [Decision.REJECT, Decision.RATE_LIMITED])
    async def test_unpersisted_decisions(self, service, store, engine, target, user, decision):
        engine.evaluate.return_value = engine_result(decision)

        result = await service.create_comment(target, "Nice post", user)

        assert result.success is False
        assert result.decision == decision
        assert result.comment is None
        store.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_persistence_failure(self, service, store, target, user):
        store.create.side_effect = CommentPersistenceError

        result = await service.create_comment(target, "Nice post", user)

        assert result.success is False
        assert result.decision is None
        assert result.message == "Failed to save comment. Please try again."

    @pytest.mark.asyncio
    async def test_sanitized_content_is_stored(self, service, store, engine, target, user):
        engine.evaluate.return_value = engine_result(Decision.APPROVED, content="clean")

        await service.create_comment(target, "  clean  ", user)

        comment, _ = store.create.call_args.args
        assert comment.content == "clean"

    @pytest.mark.asyncio
    async def test_anonymous_hides_name_and_avatar(self, service, store, engine, target, user):
        result = await service.create_comment(target, "Nice post", user, is_anonymous=True)

        assert result.comment.author_name == "Anonymous"
        assert result.comment.author_avatar is None
        _, record = store.create.call_args.args
        assert record.author_id == user.id
        assert engine.evaluate.call_args.args[0].author_name == "Anonymous"

    @pytest.mark.asyncio
    async def test_reply_to_existing_parent(self, service, store, target, user):
        parent = create_comment(target, "Bob", "First", is_approved=True, is_spam=False)
        store.get.return_value = parent

        result = await service.create_comment(
            target, "Reply", user, parent_id=parent.comment_id
        )

        assert result.comment.parent_id == parent.comment_id

    @pytest.mark.asyncio
    async def test_parent_missing(self, service, store, engine, target, user):
        store.get.return_value = None

        with pytest.raises(CommentNotFoundError, match="Parent comment not found"):
            await service.create_comment(target, "Reply", user, parent_id=uuid4())
        engine.evaluate.assert_not_called()

    @pytest.mark.asyncio
    async def test_parent_on_other_target(self, service, store, target, user):
        other = CommentTarget(TargetType.GALLERY_ITEM, target.target_id)
        store.get.return_value = create_comment(
            other, "Bob", "First", is_approved=True, is_spam=False
        )

        with pytest.raises(CommentNotFoundError):
            await service.create_comment(target, "Reply", user, parent_id=uuid4())


class TestOwnerOperations:
    """Edits and deletes."""

    @pytest.mark.asyncio
    async def test_update_by_owner(self, service, store, target, user):
        comment = create_comment(target, "Ana", "Old", is_approved=True, is_spam=False)
        store.get.return_value = comment
        store.owned_ids.return_value = {comment.comment_id}
        comment.content = "New text"
        store.update_content.return_value = comment

        response = await service.update_comment(comment.comment_id, "  New text\x07 ", user)

        assert response.content == "New text"
        store.update_content.assert_awaited_once_with(comment.comment_id, "New text")

    @pytest.mark.asyncio
    async def test_update_missing(self, service, store, user):
        store.get.return_value = None
        with pytest.raises(CommentNotFoundError):
            await service.update_comment(uuid4(), "text", user)

    @pytest.mark.asyncio
    async def test_update_by_other_user(self, service, store, target, user):
        store.get.return_value = create_comment(
            target, "Bob", "Old", is_approved=True, is_spam=False
        )
        with pytest.raises(PermissionDeniedError):
            await service.update_comment(uuid4(), "text", user)
        store.update_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_rejected_content(self, service, store, target, user):
        comment = create_comment(target, "Ana", "Old", is_approved=True, is_spam=False)
        store.get.return_value = comment
        store.owned_ids.return_value = {comment.comment_id}

        with pytest.raises(InvalidCommentContentError):
            await service.update_comment(comment.comment_id, "<script>alert(1)</script>", user)

    @pytest.mark.asyncio
    async def test_delete_by_owner_invalidates_count(self, service, store, redis, target, user):
        comment = create_comment(target, "Ana", "Hi", is_approved=True, is_spam=False)
        store.get.return_value = comment
        store.owned_ids.return_value = {comment.comment_id}

        await service.delete_comment(comment.comment_id, user)

        store.delete.assert_awaited_once_with(comment.comment_id)
        redis.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_by_moderator(self, service, store, target, user):
        comment = create_comment(target, "Bob", "Hi", is_approved=False, is_spam=True)
        store.get.return_value = comment
        moderator = user.model_copy(update={"role": "moderator"})

        await service.delete_comment(comment.comment_id, moderator)

        store.owned_ids.assert_not_called()
        store.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_by_other_user(self, service, store, target, user):
        store.get.return_value = create_comment(
            target, "Bob", "Hi", is_approved=True, is_spam=False
        )
        with pytest.raises(PermissionDeniedError):
            await service.delete_comment(uuid4(), user)
        store.delete.assert_not_called()


class TestReads:
    """Trees and counts."""

    @pytest.mark.asyncio
    async def test_tree_anonymous_viewer(self, service, store, target):
        root = create_comment(target, "Ana", "Root", is_approved=True, is_spam=False)
        reply = create_comment(
            target, "Bob", "Reply", is_approved=True, is_spam=False, parent_id=root.comment_id
        )
        store.list_for_target.return_value = [root, reply]

        response = await service.list_tree(target)

        assert response.total == 2
        assert len(response.items) == 1
        assert response.items[0].replies[0].id == reply.comment_id
        store.liked_ids.assert_not_called()

    @pytest.mark.asyncio
    async def test_tree_marks_viewer_state(self, service, store, target, user):
        mine = create_comment(target, "Ana", "Mine", is_approved=True, is_spam=False)
        liked = create_comment(target, "Bob", "Liked", is_approved=True, is_spam=False)
        store.list_for_target.return_value = [mine, liked]
        store.liked_ids.return_value = {liked.comment_id}
        store.owned_ids.return_value = {mine.comment_id}

        response = await service.list_tree(target, user)

        by_id = {node.id: node for node in response.items}
        assert by_id[mine.comment_id].is_mine is True
        assert by_id[mine.comment_id].liked_by_me is False
        assert by_id[liked.comment_id].liked_by_me is True
        assert by_id[liked.comment_id].is_mine is False

    @pytest.mark.asyncio
    async def test_count_cache_miss(self, service, store, redis, target):
        store.list_for_target.return_value = [
            create_comment(target, "Ana", "x", is_approved=True, is_spam=False)
        ]

        response = await service.count(target)

        assert response.count == 1
        redis.setex.assert_awaited_once_with(
            f"comments:count:post:{target.target_id}", 300, 1
        )

    @pytest.mark.asyncio
    async def test_count_cache_hit(self, service, store, redis, target):
        redis.get.return_value = "7"

        response = await service.count(target)

        assert response.count == 7
        store.list_for_target.assert_not_called()

    @pytest.mark.asyncio
    async def test_count_redis_error_falls_back(self, service, store, redis, target):
        redis.get.side_effect = ConnectionError("redis down")
        redis.setex.side_effect = ConnectionError("redis down")
        store.list_for_target.return_value = []

        response = await service.count(target)

        assert response.count == 0

    @pytest.mark.asyncio
    async def test_count_without_redis(self, store, engine, config, target):
        store.list_for_target.return_value = []
        service = CommentService(store, engine, config)

        response = await service.count(target)

        assert response.count == 0


class TestLikes:
    @pytest.mark.asyncio
    async def test_toggle_like(self, service, store, target, user):
        comment = create_comment(target, "Bob", "Hi", is_approved=True, is_spam=False)
        store.get.return_value = comment
        store.toggle_like.return_value = (True, 3)

        response = await service.toggle_like(comment.comment_id, user)

        assert response.liked is True
        assert response.like_count == 3
        store.toggle_like.assert_awaited_once_with(comment.comment_id, user.id)

    @pytest.mark.asyncio
    async def test_hidden_comment_cannot_be_liked(self, service, store, target, user):
        store.get.return_value = create_comment(
            target, "Bob", "Hi", is_approved=False, is_spam=False
        )
        with pytest.raises(CommentNotFoundError):
            await service.toggle_like(uuid4(), user)
        store.toggle_like.assert_not_called()
