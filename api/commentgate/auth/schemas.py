"""Pydantic schemas for the authenticated identity."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict


class UserResponse(BaseModel):
    """Identity decoded from an access token.

    Users are managed by an upstream identity provider; only the claims the
    comment system needs are carried here.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str | None = None
    role: str
    avatar_url: str | None = None

    @property
    def display_name(self) -> str:
        """Name shown on public comments."""
        return self.name or self.email.split("@")[0]
