"""Fixtures for comment moderation tests."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest
from cassandra.cluster import Session

from commentgate.comments.config import ModerationConfig
from commentgate.comments.models import CommentTarget, TargetType


@pytest.fixture
def mock_session():
    """Mock Cassandra session with awaitable aexecute (cassandra-asyncio-driver)."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: Mock(name="prepared", query_string=cql))
    session.aexecute = AsyncMock(return_value=[])
    return session


@pytest.fixture
def config() -> ModerationConfig:
    return ModerationConfig(ip_hash_salt="test-salt", site_url="https://blog.example.com")


@pytest.fixture
def target() -> CommentTarget:
    return CommentTarget(TargetType.POST, uuid4())


@pytest.fixture
def comment_row():
    """Factory for rows of the comments table."""

    def _row(
        target: CommentTarget,
        comment_id: UUID | None = None,
        parent_id: UUID | None = None,
        is_approved: bool = True,
        is_spam: bool = False,
        content: str = "Nice post",
        created_at: datetime | None = None,
    ) -> SimpleNamespace:
        created = created_at or datetime.now(UTC)
        return SimpleNamespace(
            comment_id=comment_id or uuid4(),
            target_type=target.target_type.value,
            target_id=target.target_id,
            parent_id=parent_id,
            author_name="Ana",
            author_avatar=None,
            content=content,
            is_approved=is_approved,
            is_spam=is_spam,
            created_at=created,
            updated_at=created,
        )

    return _row


@pytest.fixture
def record_row():
    """Factory for rows of the comment_moderation table."""

    def _row(
        comment_id: UUID,
        author_id: UUID | None = None,
        classifier_verdict: str | None = None,
        author_email: str = "ana@example.com",
    ) -> SimpleNamespace:
        return SimpleNamespace(
            comment_id=comment_id,
            author_id=author_id or uuid4(),
            author_email=author_email,
            ip_hash="a" * 64,
            spam_score=None,
            spam_reason="Passed all checks",
            link_count=0,
            classifier_verdict=classifier_verdict,
            created_at=datetime.now(UTC),
        )

    return _row
