"""FastAPI dependencies for comment system.

Provides dependency injection for:
- Comment service and admin moderation service
- Blacklist filter and rate limiter (admin maintenance)
- Request client metadata
- Error handlers
"""

from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status

from commentgate.utils.ip import get_client_ip

from .admin import AdminModerationService
from .blacklist import BlacklistFilter
from .exceptions import CommentError
from .rate_limit import RateLimiter
from .service import ClientInfo, CommentService


def _from_state(request: Request, name: str) -> Any:
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Comment service not available",
        )
    return component


async def get_comment_service(request: Request) -> CommentService:
    """Get comment service from app state.

    Raises:
        HTTPException(503): If storage was not initialized
    """
    return _from_state(request, "comment_service")


async def get_admin_service(request: Request) -> AdminModerationService:
    return _from_state(request, "admin_service")


async def get_blacklist(request: Request) -> BlacklistFilter:
    return _from_state(request, "blacklist")


async def get_rate_limiter(request: Request) -> RateLimiter:
    return _from_state(request, "rate_limiter")


def get_client_info(request: Request) -> ClientInfo:
    """Moderation metadata of the calling client."""
    return ClientInfo(
        ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
        referrer=request.headers.get("referer", ""),
    )


# Type aliases for dependency injection
CommentServiceDep = Annotated[CommentService, Depends(get_comment_service)]
AdminServiceDep = Annotated[AdminModerationService, Depends(get_admin_service)]
BlacklistDep = Annotated[BlacklistFilter, Depends(get_blacklist)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
ClientInfoDep = Annotated[ClientInfo, Depends(get_client_info)]


def handle_comment_error(error: CommentError) -> HTTPException:
    """Convert comment errors to HTTP exceptions.

    Args:
        error: Comment error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "comment_not_found": status.HTTP_404_NOT_FOUND,
        "permission_denied": status.HTTP_403_FORBIDDEN,
        "invalid_content": status.HTTP_400_BAD_REQUEST,
        "persistence_failed": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
