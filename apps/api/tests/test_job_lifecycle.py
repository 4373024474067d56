"""Job lifecycle manager tests: admission, terminal writes and tenant scope."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import threading
import unittest

from app.core.logging_safety import safe_log_identifier
from app.domain.outcomes import CompletedOutcome, FailedOutcome
from app.errors import ConcurrentJobLimitExceededError, NotFoundError, PersistenceError, ValidationError
from app.repositories.memory import InMemoryStore
from app.schemas.job import JobStatus
from app.services.jobs import MISSING_RESULT_MESSAGE, UNKNOWN_WORKER_ERROR, JobLifecycleManager


class JobLifecycleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.manager = JobLifecycleManager(self.store)
        self.organization = self.store.create_organization(name="Acme", email="ops@acme.com", max_concurrent_jobs=1)
        self.other_organization = self.store.create_organization(name="Globex", email="ops@globex.com")
        self.storage_id = self._storage(self.organization.id)

    def _storage(self, organization_id: str) -> str:
        record = self.store.insert_storage(
            url=f"memory://audio-uploads/{organization_id}/call.mp3",
            filename="call.mp3",
            mimetype="audio/mpeg",
            size=1024,
            organization_id=organization_id,
        )
        return record.id

    def test_create_job_returns_pending_descriptor(self) -> None:
        descriptor = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id)

        self.assertEqual(descriptor.status, JobStatus.PENDING)
        self.assertEqual(descriptor.file_id, self.storage_id)
        self.assertTrue(descriptor.message)
        self.assertEqual(self.store.jobs[descriptor.job_id].organization_id, self.organization.id)

    def test_create_job_for_foreign_or_missing_file_is_not_found(self) -> None:
        foreign_storage_id = self._storage(self.other_organization.id)

        for file_id in (foreign_storage_id, "missing-file"):
            with self.subTest(file_id=file_id):
                with self.assertRaises(NotFoundError):
                    self.manager.create_job(file_id=file_id, organization_id=self.organization.id)
        self.assertEqual(self.store.jobs, {})

    def test_quota_slot_is_freed_by_terminal_outcome(self) -> None:
        first = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id)

        with self.assertRaises(ConcurrentJobLimitExceededError):
            self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id)

        self.manager.apply_webhook_outcome(first.job_id, CompletedOutcome(transcript="hi", sentiment="positive"))
        result = self.manager.get_job_result(first.job_id, organization_id=self.organization.id)
        self.assertEqual((result.transcript, result.sentiment), ("hi", "positive"))

        second = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id)
        self.assertEqual(second.status, JobStatus.PENDING)

    def test_completed_outcome_writes_exactly_one_result(self) -> None:
        job_id = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id).job_id
        outcome = CompletedOutcome(transcript="hello", sentiment="neutral", metadata={"duration": 12})

        first = self.manager.apply_webhook_outcome(job_id, outcome)
        job_writes = self.store.job_write_count
        result_writes = self.store.result_write_count
        second = self.manager.apply_webhook_outcome(job_id, outcome)

        self.assertFalse(first.replayed)
        self.assertTrue(second.replayed)
        self.assertEqual(second.status, JobStatus.COMPLETED)
        self.assertEqual(self.store.job_write_count, job_writes)
        self.assertEqual(self.store.result_write_count, result_writes)
        self.assertEqual(len(self.store.analysis_results), 1)
        self.assertIsNotNone(self.store.jobs[job_id].completed_at)
        self.assertEqual(self.store.get_result_for_job(job_id).metadata, {"duration": 12})

    def test_terminal_status_never_flips(self) -> None:
        for first, second in (
            (FailedOutcome(error="boom"), CompletedOutcome(transcript="hi", sentiment="positive")),
            (CompletedOutcome(transcript="hi", sentiment="positive"), FailedOutcome(error="late failure")),
        ):
            with self.subTest(first=first, second=second):
                storage_id = self._storage(self.other_organization.id)
                job_id = self.manager.create_job(file_id=storage_id, organization_id=self.other_organization.id).job_id
                applied = self.manager.apply_webhook_outcome(job_id, first)

                replay = self.manager.apply_webhook_outcome(job_id, second)

                self.assertTrue(replay.replayed)
                self.assertEqual(self.store.jobs[job_id].status, applied.status)

    def test_failed_outcome_without_error_uses_default_message(self) -> None:
        job_id = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id).job_id

        self.manager.apply_webhook_outcome(job_id, FailedOutcome())

        self.assertEqual(self.store.jobs[job_id].status, JobStatus.FAILED)
        self.assertEqual(self.store.jobs[job_id].error, UNKNOWN_WORKER_ERROR)

    def test_completed_without_transcript_fails_job_and_raises_validation_error(self) -> None:
        job_id = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id).job_id

        with self.assertRaises(ValidationError):
            self.manager.apply_webhook_outcome(job_id, CompletedOutcome(transcript=None, sentiment="positive"))

        job = self.store.jobs[job_id]
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIn("Missing transcript or sentiment", job.error)
        self.assertEqual(job.error, MISSING_RESULT_MESSAGE)
        with self.assertRaises(NotFoundError):
            self.manager.get_job_result(job_id, organization_id=self.organization.id)

    def test_unknown_job_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            self.manager.apply_webhook_outcome("missing-job", FailedOutcome(error="boom"))

    def test_terminal_write_is_retried_once(self) -> None:
        job_id = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id).job_id
        self.store.fail_next("update_job", times=1)

        with self.assertLogs("app.services.jobs", level="WARNING") as captured:
            application = self.manager.apply_webhook_outcome(
                job_id,
                CompletedOutcome(transcript="hi", sentiment="positive"),
            )

        self.assertFalse(application.replayed)
        self.assertEqual(self.store.jobs[job_id].status, JobStatus.COMPLETED)
        self.assertEqual(len(self.store.analysis_results), 1)
        self.assertTrue(any("webhook.commit_retry" in line for line in captured.output))

    def test_exhausted_retry_surfaces_persistence_error_with_operator_log(self) -> None:
        job_id = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id).job_id
        self.store.fail_next("update_job", times=2)

        with self.assertLogs("app.services.jobs", level="ERROR") as captured:
            with self.assertRaises(PersistenceError) as context:
                self.manager.apply_webhook_outcome(job_id, CompletedOutcome(transcript="hi", sentiment="positive"))

        self.assertEqual(context.exception.status_code, 500)
        self.assertEqual(context.exception.payload.details["attempted_status"], "completed")
        error_lines = [line for line in captured.output if line.startswith("ERROR")]
        self.assertEqual(len(error_lines), 1)
        self.assertIn(safe_log_identifier(job_id, prefix="job"), error_lines[0])
        self.assertNotIn(job_id, error_lines[0])
        self.assertEqual(context.exception.payload.details["job_id"], job_id)
        self.assertIn("attempted_status=completed", error_lines[0])
        self.assertEqual(self.store.jobs[job_id].status, JobStatus.PENDING)
        self.assertEqual(self.store.analysis_results, {})

    def test_mark_processing_records_reference_and_start_time(self) -> None:
        job_id = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id).job_id

        job = self.manager.mark_processing(job_id, external_reference_id="tr-42")

        self.assertEqual(job.status, JobStatus.PROCESSING)
        self.assertEqual(job.external_reference_id, "tr-42")
        self.assertIsNotNone(job.started_at)

    def test_mark_processing_does_not_reopen_terminal_job(self) -> None:
        job_id = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id).job_id
        self.manager.apply_webhook_outcome(job_id, FailedOutcome(error="boom"))

        job = self.manager.mark_processing(job_id, external_reference_id="tr-42")

        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertIsNone(job.started_at)

    def test_cross_tenant_read_is_identical_to_missing_job(self) -> None:
        job_id = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id).job_id

        with self.assertRaises(NotFoundError) as foreign:
            self.manager.get_job_status(job_id, organization_id=self.other_organization.id)
        with self.assertRaises(NotFoundError) as missing:
            self.manager.get_job_status("missing-job", organization_id=self.other_organization.id)

        self.assertEqual(foreign.exception.status_code, missing.exception.status_code)
        self.assertEqual(
            foreign.exception.payload.model_dump(),
            missing.exception.payload.model_dump(),
        )
        self.assertEqual(self.manager.get_job_status(job_id).id, job_id)

    def test_job_status_includes_file_summary(self) -> None:
        job_id = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id).job_id

        status = self.manager.get_job_status(job_id, organization_id=self.organization.id)

        self.assertEqual(status.file.id, self.storage_id)
        self.assertEqual(status.file.filename, "call.mp3")
        self.assertEqual(status.file.size, 1024)

    def test_list_jobs_filters_by_organization_and_status(self) -> None:
        first = self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id).job_id
        self.manager.apply_webhook_outcome(first, FailedOutcome(error="boom"))
        self.manager.create_job(file_id=self.storage_id, organization_id=self.organization.id)
        foreign_storage_id = self._storage(self.other_organization.id)
        self.manager.create_job(file_id=foreign_storage_id, organization_id=self.other_organization.id)

        own = self.manager.list_jobs(organization_id=self.organization.id)
        failed = self.manager.list_jobs(organization_id=self.organization.id, status=JobStatus.FAILED)
        everything = self.manager.list_jobs()
        page = self.manager.list_jobs(limit=1, offset=1)

        self.assertEqual(own.total, 2)
        self.assertEqual([job.id for job in failed.jobs], [first])
        self.assertEqual(everything.total, 3)
        self.assertEqual(len(page.jobs), 1)
        self.assertEqual(page.total, 3)


class ConcurrentDeliveryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.manager = JobLifecycleManager(self.store)
        organization = self.store.create_organization(name="Acme", email="ops@acme.com")
        storage = self.store.insert_storage(
            url="memory://audio-uploads/acme/call.mp3",
            filename="call.mp3",
            mimetype="audio/mpeg",
            size=1024,
            organization_id=organization.id,
        )
        self.job_id = self.manager.create_job(file_id=storage.id, organization_id=organization.id).job_id

    def _race(self, outcomes: list) -> list:
        barrier = threading.Barrier(len(outcomes))

        def deliver(outcome):
            barrier.wait()
            return self.manager.apply_webhook_outcome(self.job_id, outcome)

        with ThreadPoolExecutor(max_workers=len(outcomes)) as pool:
            return list(pool.map(deliver, outcomes))

    def test_parallel_duplicate_deliveries_write_once(self) -> None:
        job_writes = self.store.job_write_count
        outcome = CompletedOutcome(transcript="hello", sentiment="positive")

        applications = self._race([outcome] * 10)

        self.assertEqual(self.store.result_write_count, 1)
        self.assertEqual(self.store.job_write_count, job_writes + 1)
        self.assertEqual([application.replayed for application in applications].count(False), 1)
        self.assertEqual([application.replayed for application in applications].count(True), 9)
        self.assertTrue(all(application.status is JobStatus.COMPLETED for application in applications))

    def test_parallel_conflicting_deliveries_keep_the_first_terminal_state(self) -> None:
        outcomes = [
            CompletedOutcome(transcript="hello", sentiment="positive") if index % 2 else FailedOutcome(error="boom")
            for index in range(10)
        ]

        applications = self._race(outcomes)

        winners = [application for application in applications if not application.replayed]
        self.assertEqual(len(winners), 1)
        final_status = self.store.jobs[self.job_id].status
        self.assertIs(winners[0].status, final_status)
        self.assertTrue(all(application.status is final_status for application in applications))
        self.assertEqual(self.store.result_write_count, 1 if final_status is JobStatus.COMPLETED else 0)


if __name__ == "__main__":
    unittest.main()
