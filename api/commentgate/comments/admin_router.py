"""Admin comment moderation endpoints.

Provides routes for:
- Moderation queue (pending, spam, approved)
- Approve / mark as spam / delete, singly and in bulk
- Blacklist management
- Rate-limit window cleanup
- Classifier key check

All routes require the ADMIN role.
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Query, status
from fastapi.responses import ORJSONResponse

from commentgate.auth.dependencies import AdminUser

from .dependencies import (
    AdminServiceDep,
    BlacklistDep,
    RateLimiterDep,
    handle_comment_error,
)
from .exceptions import CommentError
from .models import CommentStatus
from .schemas import (
    AdminActionResult,
    AdminCommentListResponse,
    AdminCommentResponse,
    BlacklistEntryResponse,
    BlacklistListResponse,
    BulkActionRequest,
    CreateBlacklistEntryRequest,
    MessageResponse,
    SweepResponse,
)


logger = structlog.get_logger(__name__)


router = APIRouter(prefix="/v1/admin/comments", tags=["admin-comments"])


def _action_response(result: AdminActionResult):
    if result.success:
        return result
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=result.model_dump(mode="json"),
    )


# ==============================================================================
# Moderation queue
# ==============================================================================


@router.get(
    "",
    response_model=AdminCommentListResponse,
    summary="List moderation queue",
)
async def list_queue(
    admin_service: AdminServiceDep,
    _admin: AdminUser,
    comment_status: CommentStatus = Query(CommentStatus.PENDING, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
) -> AdminCommentListResponse:
    """Comments with their moderation records, newest first."""
    views = await admin_service.store.list_for_admin(comment_status, limit)
    items = [AdminCommentResponse.from_view(view) for view in views]
    return AdminCommentListResponse(items=items, total=len(items))


# ==============================================================================
# Bulk actions
# ==============================================================================


@router.post(
    "/bulk/approve",
    response_model=AdminActionResult,
    summary="Approve several comments",
)
async def bulk_approve(
    data: BulkActionRequest,
    admin_service: AdminServiceDep,
    admin: AdminUser,
):
    logger.info("admin_bulk_approve", admin_id=str(admin.id), count=len(data.comment_ids))
    return _action_response(await admin_service.bulk_approve(data.comment_ids))


@router.post(
    "/bulk/spam",
    response_model=AdminActionResult,
    summary="Mark several comments as spam",
)
async def bulk_mark_spam(
    data: BulkActionRequest,
    admin_service: AdminServiceDep,
    admin: AdminUser,
):
    logger.info("admin_bulk_spam", admin_id=str(admin.id), count=len(data.comment_ids))
    return _action_response(await admin_service.bulk_mark_spam(data.comment_ids))


@router.post(
    "/bulk/delete",
    response_model=AdminActionResult,
    summary="Delete several comments",
)
async def bulk_delete(
    data: BulkActionRequest,
    admin_service: AdminServiceDep,
    admin: AdminUser,
):
    logger.info("admin_bulk_delete", admin_id=str(admin.id), count=len(data.comment_ids))
    return _action_response(await admin_service.bulk_delete(data.comment_ids))


# ==============================================================================
# Blacklist
# ==============================================================================


@router.get(
    "/blacklist",
    response_model=BlacklistListResponse,
    summary="List blacklist entries",
)
async def list_blacklist(
    blacklist: BlacklistDep,
    _admin: AdminUser,
) -> BlacklistListResponse:
    entries = await blacklist.list_entries()
    items = [BlacklistEntryResponse.from_entry(entry) for entry in entries]
    return BlacklistListResponse(items=items, total=len(items))


@router.post(
    "/blacklist",
    response_model=BlacklistEntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add blacklist entry",
)
async def add_blacklist_entry(
    data: CreateBlacklistEntryRequest,
    blacklist: BlacklistDep,
    _admin: AdminUser,
) -> BlacklistEntryResponse:
    """Add an email, IP, keyword or domain entry.

    Raw IP addresses are stored as salted hashes.
    """
    entry = await blacklist.add_entry(data.entry_type, data.value, data.reason)
    return BlacklistEntryResponse.from_entry(entry)


@router.delete(
    "/blacklist/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove blacklist entry",
)
async def remove_blacklist_entry(
    entry_id: UUID,
    blacklist: BlacklistDep,
    _admin: AdminUser,
) -> None:
    try:
        await blacklist.remove_entry(entry_id)
    except CommentError as e:
        raise handle_comment_error(e) from e


# ==============================================================================
# Maintenance
# ==============================================================================


@router.post(
    "/rate-limits/sweep",
    response_model=SweepResponse,
    summary="Delete expired rate-limit windows",
)
async def sweep_rate_limits(
    rate_limiter: RateLimiterDep,
    _admin: AdminUser,
) -> SweepResponse:
    return SweepResponse(deleted=await rate_limiter.sweep())


@router.get(
    "/classifier/verify",
    response_model=MessageResponse,
    summary="Verify classifier key",
)
async def verify_classifier(
    admin_service: AdminServiceDep,
    _admin: AdminUser,
) -> MessageResponse:
    """Check the configured Akismet key."""
    if not admin_service.classifier.is_configured:
        return MessageResponse(message="Classifier not configured", success=False)
    valid = await admin_service.classifier.verify_key()
    return MessageResponse(
        message="Classifier key is valid" if valid else "Classifier key is invalid",
        success=valid,
    )


# ==============================================================================
# Single comment actions
# ==============================================================================


@router.post(
    "/{comment_id}/approve",
    response_model=AdminActionResult,
    summary="Approve comment",
)
async def approve_comment(
    comment_id: UUID,
    admin_service: AdminServiceDep,
    admin: AdminUser,
):
    logger.info("admin_approve", admin_id=str(admin.id), comment_id=str(comment_id))
    return _action_response(await admin_service.approve(comment_id))


@router.post(
    "/{comment_id}/spam",
    response_model=AdminActionResult,
    summary="Mark comment as spam",
)
async def mark_spam(
    comment_id: UUID,
    admin_service: AdminServiceDep,
    admin: AdminUser,
):
    logger.info("admin_mark_spam", admin_id=str(admin.id), comment_id=str(comment_id))
    return _action_response(await admin_service.mark_spam(comment_id))


@router.delete(
    "/{comment_id}",
    response_model=AdminActionResult,
    summary="Delete comment",
)
async def delete_comment(
    comment_id: UUID,
    admin_service: AdminServiceDep,
    admin: AdminUser,
):
    logger.info("admin_delete", admin_id=str(admin.id), comment_id=str(comment_id))
    return _action_response(await admin_service.delete(comment_id))
