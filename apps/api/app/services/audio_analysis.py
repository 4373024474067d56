"""Upload-and-analyse workflow."""

import logging
from pathlib import PurePath

from app.adapters.blob import BlobStore
from app.adapters.worker import WorkerDispatchFailure, WorkerDispatcher
from app.core.logging_safety import safe_log_filename, safe_log_identifier
from app.errors import ValidationError, WorkerDispatchError
from app.repositories.memory import InMemoryStore
from app.schemas.job import JobDescriptor, JobStatus
from app.services.jobs import JobLifecycleManager
from app.services.quota import QuotaEvaluator
from app.services.storage import StorageRecordManager

logger = logging.getLogger(__name__)

MP3_MIMETYPES: frozenset[str] = frozenset(
    {
        "audio/mpeg",
        "audio/mp3",
        "audio/mpeg3",
        "audio/x-mpeg-3",
        "application/octet-stream",
    }
)


def is_mp3_upload(*, filename: str, mimetype: str | None) -> bool:
    if (mimetype or "").strip().lower() in MP3_MIMETYPES:
        return True
    return PurePath(filename or "").suffix.lower() == ".mp3"


class AudioAnalysisService:
    def __init__(
        self,
        store: InMemoryStore,
        blob_store: BlobStore,
        dispatcher: WorkerDispatcher,
        *,
        max_audio_upload_bytes: int,
        presign_ttl_seconds: int = 3600,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._max_audio_upload_bytes = max_audio_upload_bytes
        self._jobs = JobLifecycleManager(store)
        self._quota = QuotaEvaluator(store)
        self._storage = StorageRecordManager(
            store,
            blob_store,
            max_upload_bytes=max_audio_upload_bytes,
            presign_ttl_seconds=presign_ttl_seconds,
        )

    def upload_and_process(
        self,
        *,
        data: bytes,
        filename: str,
        mimetype: str | None,
        organization_id: str,
    ) -> JobDescriptor:
        if not data:
            raise ValidationError("No file uploaded")
        if not is_mp3_upload(filename=filename, mimetype=mimetype):
            raise ValidationError("Only MP3 files are allowed", details={"mimetype": mimetype})
        if len(data) > self._max_audio_upload_bytes:
            raise ValidationError(
                "File size exceeds the maximum allowed size",
                details={"size": len(data), "max_size": self._max_audio_upload_bytes},
            )

        # Fail before the upload; create_job repeats the check atomically.
        self._quota.ensure_job_admission(organization_id)

        logger.info(
            "analysis.upload_started organization_id=%s filename=%s size=%s",
            safe_log_identifier(organization_id, prefix="org"),
            safe_log_filename(filename),
            len(data),
        )
        stored = self._storage.upload(
            data=data,
            filename=filename,
            mimetype=mimetype or "audio/mpeg",
            organization_id=organization_id,
        )
        return self.start_job(file_id=stored.id, organization_id=organization_id)

    def start_job(self, *, file_id: str, organization_id: str) -> JobDescriptor:
        descriptor = self._jobs.create_job(file_id=file_id, organization_id=organization_id)
        storage = self._store.get_storage(file_id, organization_id=organization_id)
        file_url = storage.url if storage is not None else ""

        try:
            receipt = self._dispatcher.dispatch(job_id=descriptor.job_id, file_url=file_url)
        except WorkerDispatchFailure as exc:
            reason = f"Failed to trigger processing workflow: {exc}"
            self._jobs.mark_dispatch_failed(descriptor.job_id, reason=reason)
            raise WorkerDispatchError(reason) from exc

        if receipt is None:
            return descriptor

        job = self._jobs.mark_processing(
            descriptor.job_id,
            external_reference_id=receipt.external_reference_id,
        )
        return descriptor.model_copy(
            update={
                "status": job.status,
                "message": "Job created and sent for processing"
                if job.status is JobStatus.PROCESSING
                else descriptor.message,
            }
        )
