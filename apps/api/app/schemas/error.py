"""API error response schemas."""

from typing import Any, Literal

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class QuotaExceededErrorDetails(BaseModel):
    organization_id: str
    limit_type: Literal["users", "concurrent_jobs"]
    current_count: int
    max_limit: int


class QuotaExceededErrorResponse(BaseModel):
    code: Literal["USER_LIMIT_EXCEEDED", "CONCURRENT_JOB_LIMIT_EXCEEDED"]
    message: str
    details: QuotaExceededErrorDetails
