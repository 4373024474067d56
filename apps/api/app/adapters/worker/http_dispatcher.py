"""HTTP trigger for the external analysis workflow."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import Any

import httpx

from app.adapters.worker.base import WorkerDispatchFailure, WorkerDispatchReceipt, WorkerDispatcher
from app.core.logging_safety import safe_log_identifier

logger = logging.getLogger(__name__)


def _reference_from_body(response: httpx.Response) -> str | None:
    try:
        body: Any = response.json()
    except ValueError:
        return None
    if isinstance(body, list):
        body = body[0] if body else None
    if not isinstance(body, dict):
        return None
    reference = body.get("transcriptId") or body.get("id")
    return str(reference) if reference else None


class HttpWorkerDispatcher(WorkerDispatcher):
    def __init__(
        self,
        *,
        url: str | None,
        secret: str,
        secret_header: str,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url
        self._secret = secret
        self._secret_header = secret_header
        self._timeout = timeout_seconds
        self._transport = transport

    def dispatch(self, *, job_id: str, file_url: str) -> WorkerDispatchReceipt | None:
        safe_job_id = safe_log_identifier(job_id, prefix="job")
        if not self._url:
            logger.warning("worker.dispatch_skipped job_id=%s reason=url_not_configured", safe_job_id)
            return None

        payload = {
            "jobId": job_id,
            "fileUrl": file_url,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(
                    self._url,
                    json=payload,
                    headers={self._secret_header: self._secret},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "worker.dispatch_failed job_id=%s status_code=%s",
                safe_job_id,
                exc.response.status_code,
            )
            raise WorkerDispatchFailure(f"worker responded with HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("worker.dispatch_failed job_id=%s error=%s", safe_job_id, type(exc).__name__)
            raise WorkerDispatchFailure(str(exc) or type(exc).__name__) from exc

        receipt = WorkerDispatchReceipt(
            status_code=response.status_code,
            external_reference_id=_reference_from_body(response),
        )
        logger.info("worker.dispatched job_id=%s status_code=%s", safe_job_id, receipt.status_code)
        return receipt


__all__ = ["HttpWorkerDispatcher"]
