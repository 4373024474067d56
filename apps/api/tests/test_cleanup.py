"""Retention sweep tests for archived organizations."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
import os
import unittest

from fastapi.testclient import TestClient

from app.adapters.blob import InMemoryBlobStore
from app.core.config import get_settings
from app.main import create_app
from app.repositories.memory import InMemoryStore
from app.schemas.auth import UserRole
from app.schemas.job import JobStatus
from app.services.cleanup import OrganizationCleanupScheduler

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


def _seed_organization(
    store: InMemoryStore,
    blob_store: InMemoryBlobStore,
    *,
    name: str,
    archived_days_ago: int | None,
    users: int = 3,
    jobs: int = 2,
) -> str:
    organization = store.create_organization(name=name, email=f"ops@{name.lower()}.com")
    for index in range(users):
        store.create_user(
            organization_id=organization.id,
            email=f"user{index}@{name.lower()}.com",
            full_name=f"User {index}",
            role=UserRole.AGENT,
        )
    url = blob_store.put(f"{organization.id}/call.mp3", b"ID3-audio", content_type="audio/mpeg")
    storage = store.insert_storage(
        url=url,
        filename="call.mp3",
        mimetype="audio/mpeg",
        size=9,
        organization_id=organization.id,
    )
    for index in range(jobs):
        job = store.insert_job(file_id=storage.id, organization_id=organization.id)
        if index == 0:
            store.insert_analysis_result(
                job_id=job.id,
                organization_id=organization.id,
                transcript="hello",
                sentiment="neutral",
            )
            store.update_job(job.id, status=JobStatus.COMPLETED)
        else:
            store.update_job(job.id, status=JobStatus.FAILED, error="boom")
    if archived_days_ago is not None:
        store.update_organization(organization.id, archived_at=NOW - timedelta(days=archived_days_ago))
    return organization.id


def _owned_rows(store: InMemoryStore, organization_id: str) -> dict[str, int]:
    return {
        "users": store.count_users(organization_id),
        "storage": len(store.list_storage(organization_id=organization_id)),
        "jobs": len(store.list_jobs(organization_id=organization_id)),
        "results": sum(1 for result in store.analysis_results.values() if result.organization_id == organization_id),
    }


class CleanupSchedulerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.blob_store = InMemoryBlobStore()
        self.scheduler = OrganizationCleanupScheduler(self.store, self.blob_store, retention_days=90)

    def test_organization_past_retention_is_purged_with_everything_it_owns(self) -> None:
        organization_id = _seed_organization(self.store, self.blob_store, name="Acme", archived_days_ago=91)

        summary = self.scheduler.run_manual_cleanup(now=NOW)

        self.assertEqual((summary.processed, summary.deleted, summary.errors), (1, 1, 0))
        self.assertIsNone(self.store.get_organization(organization_id))
        self.assertEqual(_owned_rows(self.store, organization_id), {"users": 0, "storage": 0, "jobs": 0, "results": 0})
        self.assertEqual(self.blob_store.objects, {})

    def test_recently_archived_and_active_organizations_are_kept(self) -> None:
        recent = _seed_organization(self.store, self.blob_store, name="Recent", archived_days_ago=89)
        active = _seed_organization(self.store, self.blob_store, name="Active", archived_days_ago=None)

        summary = self.scheduler.run_manual_cleanup(now=NOW)

        self.assertEqual((summary.processed, summary.deleted, summary.errors), (0, 0, 0))
        for organization_id in (recent, active):
            with self.subTest(organization_id=organization_id):
                self.assertIsNotNone(self.store.get_organization(organization_id))
                self.assertEqual(
                    _owned_rows(self.store, organization_id),
                    {"users": 3, "storage": 1, "jobs": 2, "results": 1},
                )

    def test_blob_failure_skips_only_that_organization(self) -> None:
        failing = _seed_organization(self.store, self.blob_store, name="Oldest", archived_days_ago=120)
        purged = _seed_organization(self.store, self.blob_store, name="Older", archived_days_ago=95)
        self.blob_store.fail_next("delete")

        with self.assertLogs("app.services.cleanup", level="ERROR") as captured:
            summary = self.scheduler.run_manual_cleanup(now=NOW)

        self.assertEqual((summary.processed, summary.deleted, summary.errors), (2, 1, 1))
        self.assertIsNotNone(self.store.get_organization(failing))
        self.assertEqual(
            _owned_rows(self.store, failing),
            {"users": 3, "storage": 1, "jobs": 2, "results": 1},
        )
        self.assertIsNone(self.store.get_organization(purged))
        self.assertTrue(any("cleanup.organization_failed" in line for line in captured.output))

    def test_metadata_failure_rolls_back_the_whole_organization(self) -> None:
        organization_id = _seed_organization(self.store, self.blob_store, name="Acme", archived_days_ago=91)
        self.store.fail_next("delete_organization")

        with self.assertLogs("app.services.cleanup", level="ERROR"):
            summary = self.scheduler.run_manual_cleanup(now=NOW)

        self.assertEqual((summary.processed, summary.deleted, summary.errors), (1, 0, 1))
        self.assertIsNotNone(self.store.get_organization(organization_id))
        self.assertEqual(
            _owned_rows(self.store, organization_id),
            {"users": 3, "storage": 1, "jobs": 2, "results": 1},
        )

    def test_second_sweep_finds_nothing(self) -> None:
        _seed_organization(self.store, self.blob_store, name="Acme", archived_days_ago=91)

        self.scheduler.run_manual_cleanup(now=NOW)
        summary = self.scheduler.run_manual_cleanup(now=NOW)

        self.assertEqual((summary.processed, summary.deleted, summary.errors), (0, 0, 0))

    def test_purge_reports_row_counts(self) -> None:
        organization_id = _seed_organization(self.store, self.blob_store, name="Acme", archived_days_ago=91)

        counts = self.scheduler.purge_organization(self.store.get_organization(organization_id))

        self.assertEqual((counts.analysis_results, counts.jobs, counts.storage, counts.users), (1, 2, 1, 3))
        self.assertEqual(counts.total, 8)


class CleanupLoopTests(unittest.IsolatedAsyncioTestCase):
    async def test_start_runs_periodic_sweeps_until_stopped(self) -> None:
        store = InMemoryStore()
        blob_store = InMemoryBlobStore()
        organization_id = _seed_organization(store, blob_store, name="Acme", archived_days_ago=None)
        store.update_organization(organization_id, archived_at=datetime.now(UTC) - timedelta(days=91))
        scheduler = OrganizationCleanupScheduler(store, blob_store, retention_days=90, interval_seconds=0.01)

        await scheduler.start()
        self.assertTrue(scheduler.running)
        for _ in range(100):
            if store.get_organization(organization_id) is None:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        self.assertFalse(scheduler.running)
        self.assertIsNone(store.get_organization(organization_id))

    async def test_stop_without_start_is_a_no_op(self) -> None:
        scheduler = OrganizationCleanupScheduler(InMemoryStore(), InMemoryBlobStore())

        await scheduler.stop()

        self.assertFalse(scheduler.running)


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "AURALIS_AUTH_PROVIDER",
        "AURALIS_WEBHOOK_SECRET",
        "AURALIS_WORKER_WEBHOOK_URL",
        "AURALIS_CLEANUP_ENABLED",
        "AURALIS_BLOB_BACKEND",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        os.environ["AURALIS_AUTH_PROVIDER"] = "mock"
        os.environ["AURALIS_WEBHOOK_SECRET"] = "test-webhook-secret"
        os.environ["AURALIS_CLEANUP_ENABLED"] = "false"
        os.environ["AURALIS_BLOB_BACKEND"] = "memory"
        os.environ.pop("AURALIS_WORKER_WEBHOOK_URL", None)
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()


class CleanupApiTests(_SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        self.app = create_app()
        self.client = TestClient(self.app)

    def test_manual_cleanup_requires_super_owner(self) -> None:
        missing = self.client.post("/api/v1/admin/organizations/cleanup")
        owner = self.client.post(
            "/api/v1/admin/organizations/cleanup",
            headers={"Authorization": "Bearer test:owner-1:owner:org-1"},
        )

        self.assertEqual(missing.status_code, 401)
        self.assertEqual(owner.status_code, 403)
        self.assertEqual(owner.json()["code"], "FORBIDDEN")

    def test_manual_cleanup_returns_summary(self) -> None:
        store = self.app.state.store
        organization_id = _seed_organization(
            store,
            self.app.state.blob_store,
            name="Acme",
            archived_days_ago=None,
        )
        store.update_organization(organization_id, archived_at=datetime.now(UTC) - timedelta(days=91))

        response = self.client.post(
            "/api/v1/admin/organizations/cleanup",
            headers={"Authorization": "Bearer test:root-1:super_owner"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"processed": 1, "deleted": 1, "errors": 0})
        self.assertIsNone(store.get_organization(organization_id))

    def test_lifespan_starts_and_stops_scheduler_when_enabled(self) -> None:
        os.environ["AURALIS_CLEANUP_ENABLED"] = "true"
        get_settings.cache_clear()
        app = create_app()

        with TestClient(app):
            self.assertTrue(app.state.cleanup_scheduler.running)

        self.assertFalse(app.state.cleanup_scheduler.running)


if __name__ == "__main__":
    unittest.main()
