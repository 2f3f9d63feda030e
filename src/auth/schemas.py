"""Pydantic schemas for the authenticated caller."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.auth.permissions import UserRole, is_admin


class AuthenticatedUser(BaseModel):
    """Identity supplied by the access token.

    The enrollment engine never authenticates; it only authorizes with the
    id and role carried by a token issued by the identity service.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    email: str | None = None
    role: UserRole = Field(default=UserRole.USER)
    issued_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return is_admin(self.role)
