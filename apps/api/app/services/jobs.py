"""Job lifecycle service layer."""

from datetime import UTC, datetime
import logging

from app.core.logging_safety import safe_log_identifier
from app.domain.job_fsm import ensure_transition, is_terminal
from app.domain.outcomes import CompletedOutcome, FailedOutcome, JobOutcome, OutcomeApplication
from app.errors import NotFoundError, PersistenceError, ValidationError
from app.repositories.memory import InMemoryStore, JobRecord, StoreError
from app.schemas.job import (
    AnalysisResultResponse,
    JobDescriptor,
    JobFileSummary,
    JobListResponse,
    JobStatus,
    JobStatusResponse,
)
from app.services.quota import QuotaEvaluator

logger = logging.getLogger(__name__)

MISSING_RESULT_MESSAGE = "Missing transcript or sentiment in completed webhook"
UNKNOWN_WORKER_ERROR = "Unknown error from processing worker"
_TERMINAL_COMMIT_ATTEMPTS = 2


class JobLifecycleManager:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store
        self._quota = QuotaEvaluator(store)

    def create_job(self, *, file_id: str, organization_id: str) -> JobDescriptor:
        """Admit and insert a pending job; the quota check and insert share one transaction."""
        with self._store.transaction():
            storage = self._store.get_storage(file_id, organization_id=organization_id)
            if storage is None or self._store.is_storage_delete_pending(storage.id):
                raise NotFoundError()
            self._quota.ensure_job_admission(organization_id)
            job = self._store.insert_job(file_id=storage.id, organization_id=organization_id)

        logger.info(
            "job.created job_id=%s organization_id=%s status=%s",
            safe_log_identifier(job.id, prefix="job"),
            safe_log_identifier(organization_id, prefix="org"),
            job.status,
        )
        return JobDescriptor(
            job_id=job.id,
            file_id=job.file_id,
            status=job.status,
            message="Job created and queued for processing",
        )

    def mark_processing(self, job_id: str, *, external_reference_id: str | None = None) -> JobRecord:
        with self._store.transaction():
            job = self._store.get_job(job_id)
            if job is None:
                raise NotFoundError()
            # A fast worker can finish before the dispatch response arrives.
            if job.status is not JobStatus.PENDING:
                return job
            ensure_transition(job.status, JobStatus.PROCESSING)
            updated = self._store.update_job(
                job_id,
                status=JobStatus.PROCESSING,
                started_at=datetime.now(UTC),
                external_reference_id=external_reference_id or job.external_reference_id,
            )

        logger.info("job.processing job_id=%s", safe_log_identifier(job_id, prefix="job"))
        return updated

    def mark_dispatch_failed(self, job_id: str, *, reason: str) -> JobRecord:
        with self._store.transaction():
            job = self._store.get_job(job_id)
            if job is None:
                raise NotFoundError()
            if is_terminal(job.status):
                return job
            ensure_transition(job.status, JobStatus.FAILED)
            updated = self._store.update_job(
                job_id,
                status=JobStatus.FAILED,
                error=reason,
                completed_at=datetime.now(UTC),
            )

        logger.warning("job.dispatch_failed job_id=%s", safe_log_identifier(job_id, prefix="job"))
        return updated

    def apply_webhook_outcome(self, job_id: str, outcome: JobOutcome) -> OutcomeApplication:
        """Move a job to its terminal state exactly once.

        Replays against a terminal job succeed without writing. A "completed"
        outcome with no transcript or sentiment fails the job and is then
        reported to the caller as a validation error.
        """
        safe_job_id = safe_log_identifier(job_id, prefix="job")
        job = self._store.get_job(job_id)
        if job is None:
            logger.warning("webhook.rejected job_id=%s code=RESOURCE_NOT_FOUND", safe_job_id)
            raise NotFoundError()

        if is_terminal(job.status):
            logger.info("webhook.replayed job_id=%s current_status=%s", safe_job_id, job.status)
            return OutcomeApplication(job_id=job.id, status=job.status, replayed=True)

        if isinstance(outcome, CompletedOutcome) and not outcome.is_complete:
            application = self._commit_terminal(job_id, FailedOutcome(error=MISSING_RESULT_MESSAGE))
            if application.replayed:
                return application
            raise ValidationError(MISSING_RESULT_MESSAGE, details={"job_id": job_id})

        return self._commit_terminal(job_id, outcome)

    def fail_malformed_callback(self, job_id: str, *, reason: str) -> OutcomeApplication:
        job = self._store.get_job(job_id)
        if job is None:
            raise NotFoundError()
        if is_terminal(job.status):
            return OutcomeApplication(job_id=job.id, status=job.status, replayed=True)
        return self._commit_terminal(job_id, FailedOutcome(error=reason))

    def _commit_terminal(self, job_id: str, outcome: JobOutcome) -> OutcomeApplication:
        safe_job_id = safe_log_identifier(job_id, prefix="job")
        target = JobStatus.COMPLETED if isinstance(outcome, CompletedOutcome) else JobStatus.FAILED
        last_error: StoreError | None = None

        for attempt in range(1, _TERMINAL_COMMIT_ATTEMPTS + 1):
            try:
                with self._store.transaction():
                    job = self._store.get_job(job_id)
                    if job is None:
                        raise NotFoundError()
                    # Another delivery may have won the race since the caller's read.
                    if is_terminal(job.status):
                        logger.info("webhook.replayed job_id=%s current_status=%s", safe_job_id, job.status)
                        return OutcomeApplication(job_id=job.id, status=job.status, replayed=True)

                    ensure_transition(job.status, target)
                    now = datetime.now(UTC)
                    if isinstance(outcome, CompletedOutcome):
                        if self._store.get_result_for_job(job_id) is None:
                            self._store.insert_analysis_result(
                                job_id=job_id,
                                organization_id=job.organization_id,
                                transcript=outcome.transcript or "",
                                sentiment=outcome.sentiment or "",
                                metadata=outcome.metadata,
                            )
                        self._store.update_job(job_id, status=target, completed_at=now, error=None)
                    else:
                        self._store.update_job(
                            job_id,
                            status=target,
                            completed_at=now,
                            error=outcome.error or UNKNOWN_WORKER_ERROR,
                        )
            except StoreError as exc:
                last_error = exc
                if attempt < _TERMINAL_COMMIT_ATTEMPTS:
                    logger.warning(
                        "webhook.commit_retry job_id=%s attempted_status=%s attempt=%s",
                        safe_job_id,
                        target.value,
                        attempt,
                    )
                continue

            logger.info("webhook.applied job_id=%s new_status=%s", safe_job_id, target.value)
            return OutcomeApplication(job_id=job_id, status=target, replayed=False)

        logger.error(
            "webhook.commit_failed job_id=%s attempted_status=%s error=%s",
            safe_job_id,
            target.value,
            last_error,
        )
        raise PersistenceError(
            "Failed to persist job outcome",
            details={"job_id": job_id, "attempted_status": target.value},
        ) from last_error

    def get_job_status(self, job_id: str, *, organization_id: str | None = None) -> JobStatusResponse:
        job = self._store.get_job(job_id, organization_id=organization_id)
        if job is None:
            raise NotFoundError()
        return self._to_status(job)

    def get_job_result(self, job_id: str, *, organization_id: str | None = None) -> AnalysisResultResponse:
        job = self._store.get_job(job_id, organization_id=organization_id)
        if job is None:
            raise NotFoundError()
        result = self._store.get_result_for_job(job.id, organization_id=organization_id)
        if result is None:
            raise NotFoundError()
        return AnalysisResultResponse(
            id=result.id,
            job_id=result.job_id,
            transcript=result.transcript,
            sentiment=result.sentiment,
            metadata=result.metadata,
            created_at=result.created_at,
            job_status=job.status,
        )

    def list_jobs(
        self,
        *,
        organization_id: str | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> JobListResponse:
        records = self._store.list_jobs(organization_id=organization_id, status=status)
        page = records[offset : offset + limit]
        return JobListResponse(jobs=[self._to_status(job) for job in page], total=len(records))

    def _to_status(self, job: JobRecord) -> JobStatusResponse:
        storage = self._store.get_storage(job.file_id)
        file_summary = None
        if storage is not None:
            file_summary = JobFileSummary(
                id=storage.id,
                filename=storage.filename,
                size=storage.size,
                mimetype=storage.mimetype,
            )
        return JobStatusResponse(
            id=job.id,
            status=job.status,
            organization_id=job.organization_id,
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            error=job.error,
            external_reference_id=job.external_reference_id,
            file=file_summary,
        )
