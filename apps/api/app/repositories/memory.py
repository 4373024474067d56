"""In-memory relational store used by the API and tests.

The store mirrors the guarantees the services rely on from a relational
database: serialisable transactions with rollback, foreign keys that refuse
to delete a parent with live children, and a unique AnalysisResult per job.
Writers are serialised by a single re-entrant lock, which stands in for the
row locks a database would take on the organization and job rows.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
import threading
from typing import Any
from uuid import uuid4

from app.domain.job_fsm import ACTIVE_STATES
from app.schemas.auth import UserRole
from app.schemas.job import JobStatus
from app.schemas.organization import OrganizationLifecycle


class StoreError(RuntimeError):
    """Raised when the store cannot complete a read or write."""


class IntegrityViolation(StoreError):
    """Raised when a write would break a foreign-key or uniqueness constraint."""


@dataclass(slots=True)
class OrganizationRecord:
    id: str
    name: str
    email: str
    contact_number: str | None
    max_users: int | None
    max_concurrent_jobs: int | None
    total_member_count: int
    created_at: datetime
    updated_at: datetime | None = None
    archived_at: datetime | None = None

    @property
    def lifecycle(self) -> OrganizationLifecycle:
        if self.archived_at is None:
            return OrganizationLifecycle.ACTIVE
        return OrganizationLifecycle.ARCHIVED


@dataclass(slots=True)
class UserRecord:
    id: str
    organization_id: str
    email: str
    full_name: str
    role: UserRole
    created_at: datetime


@dataclass(slots=True)
class StorageRecord:
    id: str
    url: str
    filename: str
    mimetype: str
    size: int
    uploaded_at: datetime
    organization_id: str | None


@dataclass(slots=True)
class JobRecord:
    id: str
    file_id: str
    organization_id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    external_reference_id: str | None = None


@dataclass(slots=True)
class AnalysisResultRecord:
    id: str
    job_id: str
    organization_id: str
    transcript: str
    sentiment: str
    metadata: dict[str, Any] | None
    created_at: datetime


@dataclass(slots=True)
class _Failpoint:
    remaining: int
    message: str


@dataclass(slots=True)
class InMemoryStore:
    """Simple, deterministic persistence layer for the API and tests."""

    organizations: dict[str, OrganizationRecord] = field(default_factory=dict)
    users: dict[str, UserRecord] = field(default_factory=dict)
    storage: dict[str, StorageRecord] = field(default_factory=dict)
    jobs: dict[str, JobRecord] = field(default_factory=dict)
    analysis_results: dict[str, AnalysisResultRecord] = field(default_factory=dict)
    storage_write_count: int = 0
    job_write_count: int = 0
    result_write_count: int = 0
    _deleting_storage: set[str] = field(default_factory=set, repr=False)
    _failpoints: dict[str, _Failpoint] = field(default_factory=dict, repr=False)
    _journal: list[Callable[[], None]] | None = field(default=None, repr=False)
    _lock: Any = field(default_factory=threading.RLock, repr=False)

    # -- transactions -----------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[InMemoryStore]:
        """Run a block atomically; any exception rolls every write back.

        Nested calls join the outermost transaction.
        """
        with self._lock:
            if self._journal is not None:
                yield self
                return

            self._journal = []
            try:
                yield self
            except BaseException:
                for undo in reversed(self._journal):
                    undo()
                raise
            finally:
                self._journal = None

    def fail_next(self, operation: str, *, times: int = 1, message: str = "Injected store failure") -> None:
        """Make the next ``times`` calls of ``operation`` raise ``StoreError``."""
        with self._lock:
            self._failpoints[operation] = _Failpoint(remaining=times, message=message)

    def _maybe_fail(self, operation: str) -> None:
        failpoint = self._failpoints.get(operation)
        if failpoint is None:
            return
        failpoint.remaining -= 1
        if failpoint.remaining <= 0:
            del self._failpoints[operation]
        raise StoreError(failpoint.message)

    def _record_undo(self, undo: Callable[[], None]) -> None:
        if self._journal is not None:
            self._journal.append(undo)

    def _put(self, table: dict[str, Any], key: str, record: Any) -> None:
        had_previous = key in table
        previous = table.get(key)
        table[key] = record

        def undo() -> None:
            if had_previous:
                table[key] = previous
            else:
                table.pop(key, None)

        self._record_undo(undo)

    def _pop(self, table: dict[str, Any], key: str) -> Any:
        previous = table.pop(key)

        def undo() -> None:
            table[key] = previous

        self._record_undo(undo)
        return previous

    def _bump(self, counter: str) -> None:
        previous = getattr(self, counter)
        setattr(self, counter, previous + 1)
        self._record_undo(lambda: setattr(self, counter, previous))

    # -- organizations ----------------------------------------------------

    def create_organization(
        self,
        *,
        name: str,
        email: str,
        contact_number: str | None = None,
        max_users: int | None = None,
        max_concurrent_jobs: int | None = None,
    ) -> OrganizationRecord:
        with self.transaction():
            self._maybe_fail("create_organization")
            now = datetime.now(UTC)
            organization = OrganizationRecord(
                id=str(uuid4()),
                name=name,
                email=email,
                contact_number=contact_number,
                max_users=max_users,
                max_concurrent_jobs=max_concurrent_jobs,
                total_member_count=0,
                created_at=now,
                updated_at=now,
            )
            self._put(self.organizations, organization.id, organization)
            return organization

    def get_organization(self, organization_id: str) -> OrganizationRecord | None:
        with self._lock:
            return self.organizations.get(organization_id)

    def get_active_organization(self, organization_id: str) -> OrganizationRecord | None:
        with self._lock:
            organization = self.organizations.get(organization_id)
            if organization is None or organization.archived_at is not None:
                return None
            return organization

    def find_active_organization_by_email(self, email: str) -> OrganizationRecord | None:
        normalized = email.strip().lower()
        with self._lock:
            for organization in self.organizations.values():
                if organization.archived_at is None and organization.email.lower() == normalized:
                    return organization
            return None

    def list_active_organizations(self) -> list[OrganizationRecord]:
        with self._lock:
            organizations = [record for record in self.organizations.values() if record.archived_at is None]
        organizations.sort(key=lambda record: record.created_at, reverse=True)
        return organizations

    def list_organizations_archived_before(self, cutoff: datetime) -> list[OrganizationRecord]:
        with self._lock:
            archived = [
                record
                for record in self.organizations.values()
                if record.archived_at is not None and record.archived_at <= cutoff
            ]
        archived.sort(key=lambda record: record.archived_at)
        return archived

    def update_organization(self, organization_id: str, **changes: Any) -> OrganizationRecord:
        with self.transaction():
            self._maybe_fail("update_organization")
            current = self.organizations.get(organization_id)
            if current is None:
                raise StoreError(f"organization {organization_id} does not exist")
            updated = replace(current, updated_at=datetime.now(UTC), **changes)
            self._put(self.organizations, organization_id, updated)
            return updated

    def delete_organization(self, organization_id: str) -> None:
        with self.transaction():
            self._maybe_fail("delete_organization")
            if organization_id not in self.organizations:
                raise StoreError(f"organization {organization_id} does not exist")
            children = (
                any(user.organization_id == organization_id for user in self.users.values())
                or any(record.organization_id == organization_id for record in self.storage.values())
                or any(job.organization_id == organization_id for job in self.jobs.values())
                or any(result.organization_id == organization_id for result in self.analysis_results.values())
            )
            if children:
                raise IntegrityViolation(f"organization {organization_id} still has dependent rows")
            self._pop(self.organizations, organization_id)

    # -- users --------------------------------------------------------------

    def create_user(self, *, organization_id: str, email: str, full_name: str, role: UserRole) -> UserRecord:
        """Insert a user and bump the organization's member counter in the same transaction."""
        with self.transaction():
            self._maybe_fail("create_user")
            organization = self.organizations.get(organization_id)
            if organization is None:
                raise IntegrityViolation(f"organization {organization_id} does not exist")
            if self.find_user_by_email(email) is not None:
                raise IntegrityViolation("user email must be unique")
            user = UserRecord(
                id=str(uuid4()),
                organization_id=organization_id,
                email=email,
                full_name=full_name,
                role=role,
                created_at=datetime.now(UTC),
            )
            self._put(self.users, user.id, user)
            self._put(
                self.organizations,
                organization_id,
                replace(organization, total_member_count=organization.total_member_count + 1),
            )
            return user

    def find_user_by_email(self, email: str) -> UserRecord | None:
        normalized = email.strip().lower()
        with self._lock:
            for user in self.users.values():
                if user.email.lower() == normalized:
                    return user
            return None

    def get_user(self, user_id: str) -> UserRecord | None:
        with self._lock:
            return self.users.get(user_id)

    def list_users(self, organization_id: str) -> list[UserRecord]:
        with self._lock:
            users = [user for user in self.users.values() if user.organization_id == organization_id]
        users.sort(key=lambda record: record.created_at)
        return users

    def count_users(self, organization_id: str) -> int:
        with self._lock:
            return sum(1 for user in self.users.values() if user.organization_id == organization_id)

    def delete_user(self, user_id: str) -> UserRecord:
        with self.transaction():
            self._maybe_fail("delete_user")
            user = self.users.get(user_id)
            if user is None:
                raise StoreError(f"user {user_id} does not exist")
            self._pop(self.users, user_id)
            organization = self.organizations.get(user.organization_id)
            if organization is not None:
                self._put(
                    self.organizations,
                    organization.id,
                    replace(organization, total_member_count=max(organization.total_member_count - 1, 0)),
                )
            return user

    def delete_users_for_organization(self, organization_id: str) -> int:
        with self.transaction():
            self._maybe_fail("delete_users_for_organization")
            user_ids = [user.id for user in self.users.values() if user.organization_id == organization_id]
            for user_id in user_ids:
                self._pop(self.users, user_id)
            organization = self.organizations.get(organization_id)
            if organization is not None and user_ids:
                self._put(self.organizations, organization_id, replace(organization, total_member_count=0))
            return len(user_ids)

    # -- storage ------------------------------------------------------------

    def insert_storage(
        self,
        *,
        url: str,
        filename: str,
        mimetype: str,
        size: int,
        organization_id: str | None,
    ) -> StorageRecord:
        with self.transaction():
            self._maybe_fail("insert_storage")
            if organization_id is not None and organization_id not in self.organizations:
                raise IntegrityViolation(f"organization {organization_id} does not exist")
            record = StorageRecord(
                id=str(uuid4()),
                url=url,
                filename=filename,
                mimetype=mimetype,
                size=size,
                uploaded_at=datetime.now(UTC),
                organization_id=organization_id,
            )
            self._put(self.storage, record.id, record)
            self._bump("storage_write_count")
            return record

    def get_storage(self, storage_id: str, *, organization_id: str | None = None) -> StorageRecord | None:
        """Return a record, or ``None`` when absent or owned by another organization.

        ``organization_id=None`` is the privileged cross-tenant lookup.
        """
        with self._lock:
            record = self.storage.get(storage_id)
        if record is None:
            return None
        if organization_id is not None and record.organization_id != organization_id:
            return None
        return record

    def list_storage(self, *, organization_id: str | None = None) -> list[StorageRecord]:
        with self._lock:
            records = [
                record
                for record in self.storage.values()
                if organization_id is None or record.organization_id == organization_id
            ]
        records.sort(key=lambda record: record.uploaded_at, reverse=True)
        return records

    def update_storage(self, storage_id: str, *, filename: str | None = None, mimetype: str | None = None) -> StorageRecord:
        with self.transaction():
            self._maybe_fail("update_storage")
            current = self.storage.get(storage_id)
            if current is None:
                raise StoreError(f"storage {storage_id} does not exist")
            updated = replace(
                current,
                filename=filename if filename is not None else current.filename,
                mimetype=mimetype if mimetype is not None else current.mimetype,
            )
            self._put(self.storage, storage_id, updated)
            self._bump("storage_write_count")
            return updated

    def delete_storage(self, storage_id: str) -> StorageRecord:
        with self.transaction():
            self._maybe_fail("delete_storage")
            if storage_id not in self.storage:
                raise StoreError(f"storage {storage_id} does not exist")
            if any(job.file_id == storage_id for job in self.jobs.values()):
                raise IntegrityViolation(f"storage {storage_id} is still referenced by jobs")
            record = self._pop(self.storage, storage_id)
            self._bump("storage_write_count")
            return record

    def reserve_storage_delete(self, storage_id: str) -> bool:
        """Mark a record as being deleted; ``False`` when another delete already holds it."""
        with self._lock:
            if storage_id in self._deleting_storage:
                return False
            self._deleting_storage.add(storage_id)
            return True

    def release_storage_delete(self, storage_id: str) -> None:
        with self._lock:
            self._deleting_storage.discard(storage_id)

    def is_storage_delete_pending(self, storage_id: str) -> bool:
        with self._lock:
            return storage_id in self._deleting_storage

    def delete_storage_for_organization(self, organization_id: str) -> int:
        with self.transaction():
            self._maybe_fail("delete_storage_for_organization")
            storage_ids = [record.id for record in self.storage.values() if record.organization_id == organization_id]
            for storage_id in storage_ids:
                self.delete_storage(storage_id)
            return len(storage_ids)

    # -- jobs ---------------------------------------------------------------

    def insert_job(self, *, file_id: str, organization_id: str) -> JobRecord:
        with self.transaction():
            self._maybe_fail("insert_job")
            if file_id not in self.storage:
                raise IntegrityViolation(f"storage {file_id} does not exist")
            now = datetime.now(UTC)
            job = JobRecord(
                id=str(uuid4()),
                file_id=file_id,
                organization_id=organization_id,
                status=JobStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self._put(self.jobs, job.id, job)
            self._bump("job_write_count")
            return job

    def get_job(self, job_id: str, *, organization_id: str | None = None) -> JobRecord | None:
        with self._lock:
            job = self.jobs.get(job_id)
        if job is None:
            return None
        if organization_id is not None and job.organization_id != organization_id:
            return None
        return job

    def list_jobs(
        self,
        *,
        organization_id: str | None = None,
        status: JobStatus | None = None,
    ) -> list[JobRecord]:
        with self._lock:
            jobs = [
                job
                for job in self.jobs.values()
                if (organization_id is None or job.organization_id == organization_id)
                and (status is None or job.status is status)
            ]
        jobs.sort(key=lambda record: record.created_at, reverse=True)
        return jobs

    def count_active_jobs(self, organization_id: str) -> int:
        with self._lock:
            return sum(
                1
                for job in self.jobs.values()
                if job.organization_id == organization_id and job.status in ACTIVE_STATES
            )

    def count_jobs_by_status(self, organization_id: str) -> dict[str, int]:
        with self._lock:
            counts = Counter(job.status.value for job in self.jobs.values() if job.organization_id == organization_id)
        return dict(counts)

    def update_job(self, job_id: str, **changes: Any) -> JobRecord:
        with self.transaction():
            self._maybe_fail("update_job")
            current = self.jobs.get(job_id)
            if current is None:
                raise StoreError(f"job {job_id} does not exist")
            updated = replace(current, updated_at=datetime.now(UTC), **changes)
            self._put(self.jobs, job_id, updated)
            self._bump("job_write_count")
            return updated

    def delete_job(self, job_id: str) -> JobRecord:
        with self.transaction():
            self._maybe_fail("delete_job")
            if job_id not in self.jobs:
                raise StoreError(f"job {job_id} does not exist")
            if any(result.job_id == job_id for result in self.analysis_results.values()):
                raise IntegrityViolation(f"job {job_id} still has an analysis result")
            record = self._pop(self.jobs, job_id)
            self._bump("job_write_count")
            return record

    def delete_jobs_for_organization(self, organization_id: str) -> int:
        with self.transaction():
            self._maybe_fail("delete_jobs_for_organization")
            job_ids = [job.id for job in self.jobs.values() if job.organization_id == organization_id]
            for job_id in job_ids:
                self.delete_job(job_id)
            return len(job_ids)

    # -- analysis results ---------------------------------------------------

    def insert_analysis_result(
        self,
        *,
        job_id: str,
        organization_id: str,
        transcript: str,
        sentiment: str,
        metadata: dict[str, Any] | None = None,
    ) -> AnalysisResultRecord:
        with self.transaction():
            self._maybe_fail("insert_analysis_result")
            if job_id not in self.jobs:
                raise IntegrityViolation(f"job {job_id} does not exist")
            if self.get_result_for_job(job_id) is not None:
                raise IntegrityViolation(f"job {job_id} already has an analysis result")
            result = AnalysisResultRecord(
                id=str(uuid4()),
                job_id=job_id,
                organization_id=organization_id,
                transcript=transcript,
                sentiment=sentiment,
                metadata=dict(metadata) if metadata is not None else None,
                created_at=datetime.now(UTC),
            )
            self._put(self.analysis_results, result.id, result)
            self._bump("result_write_count")
            return result

    def get_result_for_job(self, job_id: str, *, organization_id: str | None = None) -> AnalysisResultRecord | None:
        with self._lock:
            for result in self.analysis_results.values():
                if result.job_id != job_id:
                    continue
                if organization_id is not None and result.organization_id != organization_id:
                    return None
                return result
            return None

    def delete_results_for_job(self, job_id: str) -> int:
        with self.transaction():
            result_ids = [result.id for result in self.analysis_results.values() if result.job_id == job_id]
            for result_id in result_ids:
                self._pop(self.analysis_results, result_id)
                self._bump("result_write_count")
            return len(result_ids)

    def delete_results_for_organization(self, organization_id: str) -> int:
        with self.transaction():
            self._maybe_fail("delete_results_for_organization")
            result_ids = [
                result.id for result in self.analysis_results.values() if result.organization_id == organization_id
            ]
            for result_id in result_ids:
                self._pop(self.analysis_results, result_id)
                self._bump("result_write_count")
            return len(result_ids)
