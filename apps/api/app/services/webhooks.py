"""Worker webhook ingestion."""

import logging
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from app.core.logging_safety import safe_log_identifier
from app.domain.outcomes import CompletedOutcome, FailedOutcome, JobOutcome
from app.errors import ValidationError
from app.repositories.memory import InMemoryStore
from app.schemas.job import JobStatus
from app.schemas.webhook import WebhookCallbackRequest, WebhookResponse
from app.services.jobs import JobLifecycleManager

logger = logging.getLogger(__name__)

UNKNOWN_STATUS_MESSAGE = "Unknown status in webhook callback"


def _is_job_id(value: str) -> bool:
    try:
        UUID(value)
    except (TypeError, ValueError):
        return False
    return True


def _outcome_from(payload: WebhookCallbackRequest) -> JobOutcome | None:
    if payload.status is None:
        return None
    status = payload.status.strip().lower()
    if status == JobStatus.COMPLETED.value:
        return CompletedOutcome(
            transcript=payload.transcript,
            sentiment=payload.sentiment,
            metadata=payload.metadata,
        )
    if status == JobStatus.FAILED.value:
        return FailedOutcome(error=payload.error)
    return None


class WebhookIngestionHandler:
    """Turns an authenticated worker callback into a job outcome.

    The shared secret is checked by the route dependency before this runs.
    """

    def __init__(self, store: InMemoryStore) -> None:
        self._jobs = JobLifecycleManager(store)

    def parse(self, body: Any) -> WebhookCallbackRequest:
        # Some workflow engines wrap a single item in an array.
        if isinstance(body, list):
            if not body:
                raise ValidationError("Webhook payload is empty")
            body = body[0]
        if not isinstance(body, dict):
            raise ValidationError("Webhook payload must be a JSON object")
        try:
            return WebhookCallbackRequest.model_validate(body)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid webhook payload",
                details={"errors": [error["msg"] for error in exc.errors()]},
            ) from exc

    def handle(self, body: Any) -> WebhookResponse:
        payload = self.parse(body)
        if not _is_job_id(payload.job_id):
            logger.warning("webhook.rejected reason=invalid_job_id")
            raise ValidationError("Invalid job id in webhook payload")

        safe_job_id = safe_log_identifier(payload.job_id, prefix="job")
        outcome = _outcome_from(payload)
        if outcome is None:
            logger.warning("webhook.rejected job_id=%s reason=unknown_status", safe_job_id)
            self._jobs.fail_malformed_callback(payload.job_id, reason=UNKNOWN_STATUS_MESSAGE)
            raise ValidationError(UNKNOWN_STATUS_MESSAGE, details={"status": payload.status})

        application = self._jobs.apply_webhook_outcome(payload.job_id, outcome)
        if application.replayed:
            return WebhookResponse(success=True, message=f"Job already {application.status.value}")
        return WebhookResponse(success=True, message=f"Job {application.status.value}")
