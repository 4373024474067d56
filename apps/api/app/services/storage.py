"""Storage record service layer.

Every record pairs one blob with one metadata row. Writes touch the blob
first: an upload only inserts the row once the blob exists, and a delete only
removes the row once the blob is gone. A failure between the two steps is
either compensated (upload) or reported as a consistency error (delete).
"""

from datetime import UTC, datetime
import logging
import secrets

from app.adapters.blob import BlobStore, BlobStoreError, clean_key_segment
from app.core.logging_safety import safe_log_filename, safe_log_identifier
from app.domain.job_fsm import ACTIVE_STATES
from app.errors import (
    ConflictError,
    ConsistencyError,
    NotFoundError,
    PersistenceError,
    StorageError,
    ValidationError,
)
from app.repositories.memory import InMemoryStore, IntegrityViolation, StorageRecord, StoreError
from app.schemas.storage import PresignedUrlResponse, StoredFile, StoredFileDeleteResponse

logger = logging.getLogger(__name__)

DEFAULT_PRESIGN_TTL_SECONDS = 3600


def build_object_key(*, organization_id: str, filename: str) -> str:
    """Return a collision-resistant key: millisecond timestamp plus a random token."""
    millis = int(datetime.now(UTC).timestamp() * 1000)
    return f"{clean_key_segment(organization_id)}/{millis}-{secrets.token_hex(4)}-{clean_key_segment(filename)}"


class StorageRecordManager:
    def __init__(
        self,
        store: InMemoryStore,
        blob_store: BlobStore,
        *,
        max_upload_bytes: int,
        presign_ttl_seconds: int = DEFAULT_PRESIGN_TTL_SECONDS,
    ) -> None:
        self._store = store
        self._blob_store = blob_store
        self._max_upload_bytes = max_upload_bytes
        self._presign_ttl_seconds = presign_ttl_seconds

    def upload(
        self,
        *,
        data: bytes,
        filename: str,
        mimetype: str,
        organization_id: str,
        max_bytes: int | None = None,
    ) -> StoredFile:
        limit = max_bytes if max_bytes is not None else self._max_upload_bytes
        if self._store.get_active_organization(organization_id) is None:
            raise NotFoundError()
        if not data:
            raise ValidationError("Uploaded file is empty")
        if len(data) > limit:
            raise ValidationError(
                "Uploaded file exceeds the maximum allowed size",
                details={"size": len(data), "max_size": limit},
            )

        safe_org_id = safe_log_identifier(organization_id, prefix="org")
        key = build_object_key(organization_id=organization_id, filename=filename)
        try:
            url = self._blob_store.put(key, data, content_type=mimetype)
        except BlobStoreError as exc:
            logger.warning(
                "storage.upload_failed organization_id=%s filename=%s stage=blob",
                safe_org_id,
                safe_log_filename(filename),
            )
            raise StorageError("Failed to store uploaded file") from exc

        try:
            record = self._store.insert_storage(
                url=url,
                filename=filename,
                mimetype=mimetype,
                size=len(data),
                organization_id=organization_id,
            )
        except StoreError as exc:
            self._compensate_upload(url=url, key=key)
            raise PersistenceError("Failed to record uploaded file") from exc

        logger.info(
            "storage.uploaded storage_id=%s organization_id=%s size=%s",
            safe_log_identifier(record.id, prefix="file"),
            safe_org_id,
            record.size,
        )
        return self._to_stored_file(record)

    def _compensate_upload(self, *, url: str, key: str) -> None:
        try:
            self._blob_store.delete(url)
        except BlobStoreError as exc:
            logger.error("storage.compensation_failed key=%s error=%s", key, exc)
            return
        logger.warning("storage.compensated key=%s", key)

    def get(self, storage_id: str, *, organization_id: str | None = None) -> StoredFile:
        return self._to_stored_file(self._require(storage_id, organization_id))

    def list_files(self, *, organization_id: str | None = None) -> list[StoredFile]:
        return [self._to_stored_file(record) for record in self._store.list_storage(organization_id=organization_id)]

    def update(
        self,
        storage_id: str,
        *,
        organization_id: str | None = None,
        filename: str | None = None,
        mimetype: str | None = None,
    ) -> StoredFile:
        self._require(storage_id, organization_id)
        try:
            record = self._store.update_storage(storage_id, filename=filename, mimetype=mimetype)
        except StoreError as exc:
            raise PersistenceError("Failed to update stored file") from exc
        return self._to_stored_file(record)

    def delete(self, storage_id: str, *, organization_id: str | None = None) -> StoredFileDeleteResponse:
        # The active-job check and the reservation share one transaction, so no
        # job can be admitted against the file until the delete finishes.
        with self._store.transaction():
            record = self._require(storage_id, organization_id)
            jobs = self._store.list_jobs(organization_id=record.organization_id)
            dependent_jobs = [job for job in jobs if job.file_id == record.id]
            if any(job.status in ACTIVE_STATES for job in dependent_jobs):
                raise ConflictError(
                    code="STORAGE_IN_USE",
                    message="File is referenced by an active job",
                    details={"file_id": record.id},
                )
            if not self._store.reserve_storage_delete(record.id):
                raise NotFoundError()

        try:
            return self._delete_reserved(record, dependent_jobs=len(dependent_jobs))
        finally:
            self._store.release_storage_delete(record.id)

    def _delete_reserved(self, record: StorageRecord, *, dependent_jobs: int) -> StoredFileDeleteResponse:
        safe_storage_id = safe_log_identifier(record.id, prefix="file")
        try:
            self._blob_store.delete(record.url)
        except BlobStoreError as exc:
            logger.warning("storage.delete_failed storage_id=%s stage=blob", safe_storage_id)
            raise StorageError("Failed to delete stored file") from exc

        try:
            with self._store.transaction():
                if self._store.get_storage(record.id) is None:
                    raise NotFoundError()
                for job in self._store.list_jobs(organization_id=record.organization_id):
                    if job.file_id != record.id:
                        continue
                    if job.status in ACTIVE_STATES:
                        raise IntegrityViolation(f"storage {record.id} gained an active job during delete")
                    self._store.delete_results_for_job(job.id)
                    self._store.delete_job(job.id)
                self._store.delete_storage(record.id)
        except StoreError as exc:
            logger.error(
                "storage.consistency_error storage_id=%s url=%s reason=metadata_delete_failed_after_blob_delete",
                record.id,
                record.url,
            )
            raise ConsistencyError(
                "Stored file was deleted but its record could not be removed",
                details={"file_id": record.id},
            ) from exc

        logger.info("storage.deleted storage_id=%s jobs_removed=%s", safe_storage_id, dependent_jobs)
        return StoredFileDeleteResponse(success=True, id=record.id)

    def get_presigned_url(self, storage_id: str, *, organization_id: str | None = None) -> PresignedUrlResponse:
        record = self._require(storage_id, organization_id)
        try:
            url = self._blob_store.presign(record.url, expires_in=self._presign_ttl_seconds)
        except BlobStoreError as exc:
            raise StorageError("Failed to generate download URL") from exc
        return PresignedUrlResponse(url=url, expires_in=self._presign_ttl_seconds)

    def _require(self, storage_id: str, organization_id: str | None) -> StorageRecord:
        record = self._store.get_storage(storage_id, organization_id=organization_id)
        if record is None:
            raise NotFoundError()
        return record

    @staticmethod
    def _to_stored_file(record: StorageRecord) -> StoredFile:
        return StoredFile(
            id=record.id,
            url=record.url,
            filename=record.filename,
            mimetype=record.mimetype,
            size=record.size,
            uploaded_at=record.uploaded_at,
            organization_id=record.organization_id,
        )
