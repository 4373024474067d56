"""Authentication schemas."""

from enum import Enum

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    SUPER_OWNER = "SUPER_OWNER"
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    AGENT = "AGENT"


class AuthPrincipal(BaseModel):
    """Normalized authenticated principal used by business services."""

    user_id: str = Field(min_length=1)
    role: UserRole = UserRole.AGENT
    organization_id: str | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role is UserRole.SUPER_OWNER

    @property
    def scope_organization_id(self) -> str | None:
        """Organization filter for tenant-scoped reads; ``None`` means cross-tenant."""
        if self.is_privileged:
            return None
        return self.organization_id
