"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current user extraction from JWT
- Optional user for endpoints open to anonymous readers
- Role-based access control for moderation endpoints
"""

from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from commentgate.auth.permissions import UserRole, has_permission
from commentgate.auth.schemas import UserResponse
from commentgate.auth.security import decode_access_token
from commentgate.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


def _user_from_payload(payload: dict[str, Any]) -> UserResponse:
    user_id = payload["sub"]
    set_user_id(user_id)
    return UserResponse(
        id=user_id,
        email=payload["email"],
        role=payload["role"],
        name=payload.get("name"),
        avatar_url=payload.get("avatar_url"),
    )


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> UserResponse:
    """Get current authenticated user from JWT token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(token)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    return _user_from_payload(payload)


async def get_current_user_optional(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> UserResponse | None:
    """Get current user if authenticated, None otherwise."""
    if not token:
        return None

    try:
        return _user_from_payload(decode_access_token(token))
    except JWTError:
        return None


def require_permission(required_role: UserRole):
    """Create dependency requiring at least a permission level.

    Uses hierarchical comparison: ADMIN >= MODERATOR >= USER
    """

    async def permission_checker(
        user: Annotated[UserResponse, Depends(get_current_user)],
    ) -> UserResponse:
        if not has_permission(user.role, required_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

        return user

    return permission_checker


CurrentUser = Annotated[UserResponse, Depends(get_current_user)]
OptionalUser = Annotated[UserResponse | None, Depends(get_current_user_optional)]
ModeratorUser = Annotated[UserResponse, Depends(require_permission(UserRole.MODERATOR))]
AdminUser = Annotated[UserResponse, Depends(require_permission(UserRole.ADMIN))]
