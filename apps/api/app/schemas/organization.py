"""Organization and membership API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, EmailStr, Field

from app.domain.quota import (
    ABSOLUTE_MAX_CONCURRENT_JOBS,
    ABSOLUTE_MAX_USERS,
    MIN_LIMIT,
)
from app.schemas.auth import UserRole


class OrganizationLifecycle(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class CreateOrganizationRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    contact_number: str | None = Field(default=None, max_length=20)
    max_users: int | None = Field(default=None, ge=MIN_LIMIT, le=ABSOLUTE_MAX_USERS)
    max_concurrent_jobs: int | None = Field(default=None, ge=MIN_LIMIT, le=ABSOLUTE_MAX_CONCURRENT_JOBS)


class UpdateOrganizationRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    email: EmailStr | None = None
    contact_number: str | None = Field(default=None, max_length=20)
    max_users: int | None = Field(default=None, ge=MIN_LIMIT, le=ABSOLUTE_MAX_USERS)
    max_concurrent_jobs: int | None = Field(default=None, ge=MIN_LIMIT, le=ABSOLUTE_MAX_CONCURRENT_JOBS)


class Organization(BaseModel):
    id: str
    name: str
    email: str
    contact_number: str | None = None
    max_users: int
    max_concurrent_jobs: int
    total_member_count: int
    lifecycle: OrganizationLifecycle
    created_at: datetime
    updated_at: datetime | None = None
    archived_at: datetime | None = None


class QuotaUsage(BaseModel):
    current: int
    limit: int


class OrganizationUsage(BaseModel):
    organization_id: str
    users: QuotaUsage
    concurrent_jobs: QuotaUsage
    jobs_by_status: dict[str, int]


class CreateUserRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1, max_length=200)
    role: UserRole = UserRole.AGENT


class User(BaseModel):
    id: str
    organization_id: str
    email: str
    full_name: str
    role: UserRole
    created_at: datetime
