"""Pydantic schemas for the comment system.

Request/Response models for:
- Public comment submission, editing and likes
- Comment trees annotated for the viewer
- Admin moderation queue, actions and blacklist
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import (
    BlacklistEntryType,
    ClassifierVerdict,
    Decision,
    TargetType,
)


MAX_RAW_CONTENT_LENGTH = 10000
MAX_BULK_IDS = 100


# ==============================================================================
# Request Schemas
# ==============================================================================


class CreateCommentRequest(BaseModel):
    """Request to submit a new comment."""

    target_type: TargetType
    target_id: UUID
    parent_id: UUID | None = None
    # Length is enforced after sanitization; this only bounds the payload
    content: str = Field(..., max_length=MAX_RAW_CONTENT_LENGTH)
    # Hidden form field; humans leave it empty
    honeypot: str | None = Field(None, max_length=500)
    captcha_token: str | None = Field(None, max_length=4000)
    # Publish as "Anonymous" without avatar; identity is still recorded
    is_anonymous: bool = False


class UpdateCommentRequest(BaseModel):
    """Request to edit one's own comment."""

    content: str = Field(..., min_length=1, max_length=MAX_RAW_CONTENT_LENGTH)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Strip whitespace and validate content."""
        v = v.strip()
        if not v:
            msg = "Content cannot be empty"
            raise ValueError(msg)
        return v


class BulkActionRequest(BaseModel):
    """Admin action over several comments at once."""

    comment_ids: list[UUID] = Field(..., min_length=1, max_length=MAX_BULK_IDS)


class CreateBlacklistEntryRequest(BaseModel):
    """Request to add a deny-list entry."""

    entry_type: BlacklistEntryType
    value: str = Field(..., min_length=1, max_length=500)
    reason: str | None = Field(None, max_length=500)

    @field_validator("value")
    @classmethod
    def validate_value(cls, v: str) -> str:
        """Normalize and validate value."""
        v = v.strip().lower()
        if not v:
            msg = "Value cannot be empty"
            raise ValueError(msg)
        return v


# ==============================================================================
# Response Schemas
# ==============================================================================


class CommentPublicResponse(BaseModel):
    """Public projection of a comment. Built only from Comment fields."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    target_type: TargetType
    target_id: UUID
    parent_id: UUID | None = None
    author_name: str
    author_avatar: str | None = None
    content: str
    like_count: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_comment(cls, comment: Any) -> "CommentPublicResponse":
        """Create response from Comment entity."""
        return cls(
            id=comment.comment_id,
            target_type=comment.target_type,
            target_id=comment.target_id,
            parent_id=comment.parent_id,
            author_name=comment.author_name,
            author_avatar=comment.author_avatar,
            content=comment.content,
            like_count=comment.like_count,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )


class CommentNode(CommentPublicResponse):
    """A comment inside a reply tree, annotated for the viewer."""

    liked_by_me: bool = False
    is_mine: bool = False
    replies: list["CommentNode"] = Field(default_factory=list)


class CommentTreeResponse(BaseModel):
    """All visible comments of a target as a reply forest."""

    items: list[CommentNode]
    total: int


class CommentCountResponse(BaseModel):
    target_type: TargetType
    target_id: UUID
    count: int


class CreateCommentResult(BaseModel):
    """Outcome of a submission.

    ``comment`` is set only for approved and spam decisions.
    """

    success: bool
    decision: Decision | None = None
    message: str
    comment: CommentPublicResponse | None = None


class LikeResponse(BaseModel):
    comment_id: UUID
    liked: bool
    like_count: int


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str
    success: bool = True


class AdminActionResult(BaseModel):
    """Outcome of an admin moderation action."""

    success: bool
    message: str | None = None
    error: str | None = None
    count: int = 0


class AdminCommentResponse(BaseModel):
    """Privileged view of a comment with its moderation record."""

    id: UUID
    target_type: TargetType
    target_id: UUID
    parent_id: UUID | None = None
    author_name: str
    author_avatar: str | None = None
    content: str
    is_approved: bool
    is_spam: bool
    like_count: int = 0
    created_at: datetime
    updated_at: datetime
    author_id: UUID | None = None
    author_email: str | None = None
    ip_hash: str | None = None
    spam_score: float | None = None
    spam_reason: str | None = None
    link_count: int = 0
    classifier_verdict: ClassifierVerdict | None = None

    @classmethod
    def from_view(cls, view: Any) -> "AdminCommentResponse":
        """Create response from AdminCommentView."""
        comment, record = view.comment, view.record
        data: dict[str, Any] = {
            "id": comment.comment_id,
            "target_type": comment.target_type,
            "target_id": comment.target_id,
            "parent_id": comment.parent_id,
            "author_name": comment.author_name,
            "author_avatar": comment.author_avatar,
            "content": comment.content,
            "is_approved": comment.is_approved,
            "is_spam": comment.is_spam,
            "like_count": comment.like_count,
            "created_at": comment.created_at,
            "updated_at": comment.updated_at,
        }
        if record is not None:
            data.update(
                author_id=record.author_id,
                author_email=record.author_email,
                ip_hash=record.ip_hash,
                spam_score=record.spam_score,
                spam_reason=record.spam_reason,
                link_count=record.link_count,
                classifier_verdict=record.classifier_verdict,
            )
        return cls(**data)


class AdminCommentListResponse(BaseModel):
    items: list[AdminCommentResponse]
    total: int


class BlacklistEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entry_type: BlacklistEntryType
    value: str
    reason: str | None = None
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: Any) -> "BlacklistEntryResponse":
        return cls(
            id=entry.entry_id,
            entry_type=entry.entry_type,
            value=entry.value,
            reason=entry.reason,
            created_at=entry.created_at,
        )


class BlacklistListResponse(BaseModel):
    items: list[BlacklistEntryResponse]
    total: int


class SweepResponse(BaseModel):
    deleted: int
