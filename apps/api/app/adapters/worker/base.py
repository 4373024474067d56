"""Outbound processing-worker interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


class WorkerDispatchFailure(Exception):
    """Raised when the processing worker could not be triggered."""


@dataclass(frozen=True, slots=True)
class WorkerDispatchReceipt:
    status_code: int
    external_reference_id: str | None = None


class WorkerDispatcher(ABC):
    """Hands a pending job to the external analysis workflow."""

    @abstractmethod
    def dispatch(self, *, job_id: str, file_url: str) -> WorkerDispatchReceipt | None:
        """Trigger processing; ``None`` means dispatch is not configured and was skipped."""


__all__ = ["WorkerDispatchFailure", "WorkerDispatchReceipt", "WorkerDispatcher"]
