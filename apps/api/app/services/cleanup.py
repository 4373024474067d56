"""Retention sweep for archived organizations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
import logging

from app.adapters.blob import BlobStore
from app.core.logging_safety import safe_log_identifier
from app.repositories.memory import InMemoryStore, OrganizationRecord
from app.schemas.admin import CleanupSummary

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90


@dataclass(frozen=True, slots=True)
class PurgeCounts:
    analysis_results: int
    jobs: int
    storage: int
    users: int

    @property
    def total(self) -> int:
        return self.analysis_results + self.jobs + self.storage + self.users + 1


class OrganizationCleanupScheduler:
    """Hard-deletes organizations archived for longer than the retention window.

    Each organization is purged on its own: blobs first, then one metadata
    transaction. A failure is logged and counted, and the sweep moves on.
    """

    def __init__(
        self,
        store: InMemoryStore,
        blob_store: BlobStore,
        *,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        interval_seconds: float = 24 * 60 * 60,
    ) -> None:
        self._store = store
        self._blob_store = blob_store
        self._retention = timedelta(days=retention_days)
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    def cutoff(self, now: datetime | None = None) -> datetime:
        return (now or datetime.now(UTC)) - self._retention

    def run_manual_cleanup(self, now: datetime | None = None) -> CleanupSummary:
        cutoff = self.cutoff(now)
        candidates = self._store.list_organizations_archived_before(cutoff)
        logger.info("cleanup.started candidates=%s cutoff=%s", len(candidates), cutoff.isoformat())

        deleted = 0
        errors = 0
        for organization in candidates:
            try:
                self.purge_organization(organization)
            except Exception:
                errors += 1
                logger.exception(
                    "cleanup.organization_failed organization_id=%s",
                    safe_log_identifier(organization.id, prefix="org"),
                )
                continue
            deleted += 1

        summary = CleanupSummary(processed=len(candidates), deleted=deleted, errors=errors)
        logger.info(
            "cleanup.finished processed=%s deleted=%s errors=%s",
            summary.processed,
            summary.deleted,
            summary.errors,
        )
        return summary

    def purge_organization(self, organization: OrganizationRecord) -> PurgeCounts:
        safe_org_id = safe_log_identifier(organization.id, prefix="org")

        for record in self._store.list_storage(organization_id=organization.id):
            self._blob_store.delete(record.url)

        with self._store.transaction():
            counts = PurgeCounts(
                analysis_results=self._store.delete_results_for_organization(organization.id),
                jobs=self._store.delete_jobs_for_organization(organization.id),
                storage=self._store.delete_storage_for_organization(organization.id),
                users=self._store.delete_users_for_organization(organization.id),
            )
            self._store.delete_organization(organization.id)

        logger.debug(
            "cleanup.organization_purged organization_id=%s analysis_results=%s jobs=%s storage=%s users=%s",
            safe_org_id,
            counts.analysis_results,
            counts.jobs,
            counts.storage,
            counts.users,
        )
        return counts

    async def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._task is not None:
            return

        async def sweep_loop() -> None:
            while True:
                await asyncio.sleep(self._interval_seconds)
                try:
                    await asyncio.to_thread(self.run_manual_cleanup)
                except Exception:
                    logger.exception("cleanup.sweep_failed")

        self._task = asyncio.create_task(sweep_loop())
        logger.info("cleanup.scheduled interval_seconds=%s", self._interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
