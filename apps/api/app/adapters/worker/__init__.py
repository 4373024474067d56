"""Processing-worker adapters."""

from app.adapters.worker.base import WorkerDispatchFailure, WorkerDispatchReceipt, WorkerDispatcher
from app.adapters.worker.http_dispatcher import HttpWorkerDispatcher
from app.core.config import Settings


def create_worker_dispatcher(settings: Settings) -> WorkerDispatcher:
    return HttpWorkerDispatcher(
        url=settings.worker_webhook_url,
        secret=settings.webhook_secret,
        secret_header=settings.webhook_secret_header,
        timeout_seconds=settings.worker_webhook_timeout_seconds,
    )


__all__ = [
    "HttpWorkerDispatcher",
    "WorkerDispatchFailure",
    "WorkerDispatchReceipt",
    "WorkerDispatcher",
    "create_worker_dispatcher",
]
