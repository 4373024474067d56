"""Worker outcomes applied to a job."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.schemas.job import JobStatus


@dataclass(frozen=True, slots=True)
class CompletedOutcome:
    transcript: str | None
    sentiment: str | None
    metadata: dict[str, Any] | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.transcript) and bool(self.sentiment)


@dataclass(frozen=True, slots=True)
class FailedOutcome:
    error: str | None = None


JobOutcome = CompletedOutcome | FailedOutcome


@dataclass(frozen=True, slots=True)
class OutcomeApplication:
    """What happened when an outcome reached a job.

    ``replayed`` is true when the job was already terminal and nothing was written.
    """

    job_id: str
    status: JobStatus
    replayed: bool
