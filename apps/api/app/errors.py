"""Application exception types."""

from __future__ import annotations

from enum import Enum
from typing import Any

from app.schemas.error import ErrorResponse


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    QUOTA_EXCEEDED = "quota_exceeded"
    NOT_FOUND = "not_found"
    AUTH = "auth"
    CONFLICT = "conflict"
    STORAGE = "storage"
    PERSISTENCE = "persistence"
    CONSISTENCY = "consistency"
    UPSTREAM = "upstream"


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    kind: ErrorKind | None = None

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


class ValidationError(ApiError):
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(status_code=400, code="VALIDATION_ERROR", message=message, details=details)


class QuotaExceededError(ApiError):
    """Admission denied because an organization ceiling has been reached."""

    kind = ErrorKind.QUOTA_EXCEEDED
    limit_type = "quota"

    def __init__(self, code: str, message: str, *, organization_id: str, current_count: int, max_limit: int) -> None:
        self.organization_id = organization_id
        self.current_count = current_count
        self.max_limit = max_limit
        super().__init__(
            status_code=403,
            code=code,
            message=message,
            details={
                "organization_id": organization_id,
                "limit_type": self.limit_type,
                "current_count": current_count,
                "max_limit": max_limit,
            },
        )


class UserLimitExceededError(QuotaExceededError):
    limit_type = "users"

    def __init__(self, *, organization_id: str, current_count: int, max_limit: int) -> None:
        super().__init__(
            code="USER_LIMIT_EXCEEDED",
            message=(
                f"You have reached your user limit of {max_limit}. "
                f"Current members: {current_count}."
            ),
            organization_id=organization_id,
            current_count=current_count,
            max_limit=max_limit,
        )


class ConcurrentJobLimitExceededError(QuotaExceededError):
    limit_type = "concurrent_jobs"

    def __init__(self, *, organization_id: str, current_count: int, max_limit: int) -> None:
        super().__init__(
            code="CONCURRENT_JOB_LIMIT_EXCEEDED",
            message=(
                f"You have reached your concurrent-job limit of {max_limit}. "
                f"Active jobs: {current_count}. Please wait for existing jobs to complete."
            ),
            organization_id=organization_id,
            current_count=current_count,
            max_limit=max_limit,
        )


class NotFoundError(ApiError):
    """Absent and out-of-scope entities share this exact payload."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self) -> None:
        super().__init__(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")


class AuthError(ApiError):
    kind = ErrorKind.AUTH

    def __init__(self, message: str) -> None:
        super().__init__(status_code=401, code="UNAUTHORIZED", message=message)


class ForbiddenError(ApiError):
    kind = ErrorKind.AUTH

    def __init__(self, message: str = "Insufficient role for this operation") -> None:
        super().__init__(status_code=403, code="FORBIDDEN", message=message)


class ConflictError(ApiError):
    kind = ErrorKind.CONFLICT

    def __init__(self, code: str, message: str, details: dict | None = None) -> None:
        super().__init__(status_code=409, code=code, message=message, details=details)


class StorageError(ApiError):
    kind = ErrorKind.STORAGE

    def __init__(self, message: str) -> None:
        super().__init__(status_code=502, code="STORAGE_ERROR", message=message)


class PersistenceError(ApiError):
    kind = ErrorKind.PERSISTENCE

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(status_code=500, code="PERSISTENCE_ERROR", message=message, details=details)


class ConsistencyError(ApiError):
    """A partial failure left state that needs operator attention."""

    kind = ErrorKind.CONSISTENCY

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(status_code=500, code="CONSISTENCY_ERROR", message=message, details=details)


class WorkerDispatchError(ApiError):
    kind = ErrorKind.UPSTREAM

    def __init__(self, message: str = "Failed to trigger processing workflow") -> None:
        super().__init__(status_code=502, code="WORKER_DISPATCH_FAILED", message=message)


__all__ = [
    "ApiError",
    "AuthError",
    "ConcurrentJobLimitExceededError",
    "ConflictError",
    "ConsistencyError",
    "ErrorKind",
    "ForbiddenError",
    "NotFoundError",
    "PersistenceError",
    "QuotaExceededError",
    "StorageError",
    "UserLimitExceededError",
    "ValidationError",
    "WorkerDispatchError",
]
