"""User session models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Application role."""

    ADMIN = "admin"
    USER = "user"


class UserSession(BaseModel):
    """The authenticated user for the lifetime of a login."""

    user_id: str
    email: str | None = None
    role: UserRole = UserRole.USER
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
