"""Comment system API endpoints.

Provides routes for:
- Moderated comment submission
- Reply trees and counts per target
- Owner edits and deletes
- Likes
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Query, status
from fastapi.responses import ORJSONResponse

from commentgate.auth.dependencies import CurrentUser, OptionalUser

from .dependencies import ClientInfoDep, CommentServiceDep, handle_comment_error
from .exceptions import CommentError
from .models import CommentTarget, Decision, TargetType
from .schemas import (
    CommentCountResponse,
    CommentPublicResponse,
    CommentTreeResponse,
    CreateCommentRequest,
    CreateCommentResult,
    LikeResponse,
    UpdateCommentRequest,
)


logger = structlog.get_logger(__name__)


router = APIRouter(prefix="/v1/comments", tags=["comments"])


@router.post(
    "",
    response_model=CreateCommentResult,
    status_code=status.HTTP_201_CREATED,
    summary="Submit comment",
    responses={
        400: {"model": CreateCommentResult},
        429: {"model": CreateCommentResult},
    },
)
async def create_comment(
    data: CreateCommentRequest,
    comment_service: CommentServiceDep,
    client: ClientInfoDep,
    user: CurrentUser,
):
    """Submit a comment for moderation.

    Rejected submissions answer 400, throttled ones 429. Persisted ones
    (approved, pending review or held as spam) answer 201; approved and spam
    outcomes carry the public projection of the comment.
    """
    try:
        result = await comment_service.create_comment(
            target=CommentTarget(data.target_type, data.target_id),
            content=data.content,
            identity=user,
            parent_id=data.parent_id,
            honeypot_value=data.honeypot,
            captcha_token=data.captcha_token,
            client=client,
            is_anonymous=data.is_anonymous,
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    if result.success:
        return result

    if result.decision == Decision.RATE_LIMITED:
        status_code = status.HTTP_429_TOO_MANY_REQUESTS
    elif result.decision is None:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    return ORJSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.get(
    "",
    response_model=CommentTreeResponse,
    summary="List comments of a target",
)
async def list_comments(
    comment_service: CommentServiceDep,
    user: OptionalUser,
    target_type: TargetType = Query(...),
    target_id: UUID = Query(...),
) -> CommentTreeResponse:
    """Get approved comments of a post or gallery item as a reply tree.

    ``liked_by_me`` and ``is_mine`` are filled when a token is sent.
    """
    return await comment_service.list_tree(CommentTarget(target_type, target_id), user)


@router.get(
    "/count",
    response_model=CommentCountResponse,
    summary="Count comments of a target",
)
async def count_comments(
    comment_service: CommentServiceDep,
    target_type: TargetType = Query(...),
    target_id: UUID = Query(...),
) -> CommentCountResponse:
    return await comment_service.count(CommentTarget(target_type, target_id))


@router.patch(
    "/{comment_id}",
    response_model=CommentPublicResponse,
    summary="Update comment",
)
async def update_comment(
    comment_id: UUID,
    data: UpdateCommentRequest,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> CommentPublicResponse:
    """Edit the text of one's own comment. The new text is sanitized again."""
    try:
        return await comment_service.update_comment(comment_id, data.content, user)
    except CommentError as e:
        raise handle_comment_error(e) from e


@router.delete(
    "/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete comment",
)
async def delete_comment(
    comment_id: UUID,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> None:
    """Delete a comment.

    Authors can delete their own comments; moderators can delete any.
    """
    try:
        await comment_service.delete_comment(comment_id, user)
    except CommentError as e:
        raise handle_comment_error(e) from e


@router.post(
    "/{comment_id}/like",
    response_model=LikeResponse,
    summary="Toggle like",
)
async def toggle_like(
    comment_id: UUID,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> LikeResponse:
    try:
        return await comment_service.toggle_like(comment_id, user)
    except CommentError as e:
        raise handle_comment_error(e) from e
