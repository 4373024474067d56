"""Organization resource ceilings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

DEFAULT_MAX_USERS = 10
DEFAULT_MAX_CONCURRENT_JOBS = 5
MIN_LIMIT = 1
ABSOLUTE_MAX_USERS = 1000
ABSOLUTE_MAX_CONCURRENT_JOBS = 50


def effective_limit(configured: int | None, *, default: int) -> int:
    """Resolve a stored ceiling: ``None`` falls back to the default, non-positive values clamp to 1."""
    if configured is None:
        return default
    return max(configured, MIN_LIMIT)


def effective_max_users(configured: int | None) -> int:
    return effective_limit(configured, default=DEFAULT_MAX_USERS)


def effective_max_concurrent_jobs(configured: int | None) -> int:
    return effective_limit(configured, default=DEFAULT_MAX_CONCURRENT_JOBS)


@dataclass(frozen=True, slots=True)
class QuotaSnapshot:
    organization_id: str
    resource: Literal["users", "concurrent_jobs"]
    current: int
    limit: int

    @property
    def allowed(self) -> bool:
        return self.current < self.limit

    @property
    def remaining(self) -> int:
        return max(self.limit - self.current, 0)
