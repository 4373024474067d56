"""Job lifecycle transition tests."""

from __future__ import annotations

import unittest

from app.domain.job_fsm import ACTIVE_STATES, TERMINAL_STATES, allowed_next_statuses, ensure_transition, is_terminal
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.schemas.auth import UserRole
from app.schemas.job import JobStatus


class JobFsmUnitTests(unittest.TestCase):
    def test_allowed_transition_examples_across_lifecycle(self) -> None:
        allowed_pairs = [
            (JobStatus.PENDING, JobStatus.PROCESSING),
            (JobStatus.PENDING, JobStatus.COMPLETED),
            (JobStatus.PENDING, JobStatus.FAILED),
            (JobStatus.PROCESSING, JobStatus.COMPLETED),
            (JobStatus.PROCESSING, JobStatus.FAILED),
        ]
        for old_status, new_status in allowed_pairs:
            with self.subTest(old_status=old_status, new_status=new_status):
                ensure_transition(old_status, new_status)

    def test_backward_and_self_transitions_return_contract_shape(self) -> None:
        invalid_pairs = [
            (JobStatus.PROCESSING, JobStatus.PENDING),
            (JobStatus.PENDING, JobStatus.PENDING),
            (JobStatus.PROCESSING, JobStatus.PROCESSING),
        ]
        for old_status, new_status in invalid_pairs:
            with self.subTest(old_status=old_status, new_status=new_status):
                with self.assertRaises(ApiError) as context:
                    ensure_transition(old_status, new_status)
                self.assertEqual(context.exception.status_code, 409)
                self.assertEqual(context.exception.payload.code, "FSM_TRANSITION_INVALID")
                details = context.exception.payload.details
                self.assertEqual(details["current_status"], old_status)
                self.assertEqual(details["attempted_status"], new_status)
                self.assertEqual(details["allowed_next_statuses"], allowed_next_statuses(old_status))

    def test_terminal_states_are_immutable(self) -> None:
        for terminal_status in (JobStatus.COMPLETED, JobStatus.FAILED):
            for attempted in JobStatus:
                with self.subTest(terminal_status=terminal_status, attempted=attempted):
                    with self.assertRaises(ApiError) as context:
                        ensure_transition(terminal_status, attempted)
                    self.assertEqual(context.exception.payload.code, "FSM_TERMINAL_IMMUTABLE")
                    self.assertEqual(context.exception.payload.details["allowed_next_statuses"], [])

    def test_active_and_terminal_sets_partition_statuses(self) -> None:
        self.assertEqual(ACTIVE_STATES | TERMINAL_STATES, frozenset(JobStatus))
        self.assertFalse(ACTIVE_STATES & TERMINAL_STATES)
        self.assertTrue(is_terminal(JobStatus.COMPLETED))
        self.assertFalse(is_terminal(JobStatus.PROCESSING))

    def test_allowed_next_statuses_are_deterministically_ordered(self) -> None:
        self.assertEqual(
            allowed_next_statuses(JobStatus.PENDING),
            [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.PROCESSING],
        )
        self.assertEqual(allowed_next_statuses(JobStatus.FAILED), [])


class StoreTransactionTests(unittest.TestCase):
    def _seed(self) -> tuple[InMemoryStore, str, str]:
        store = InMemoryStore()
        organization = store.create_organization(name="Acme", email="ops@acme.com")
        storage = store.insert_storage(
            url="memory://audio-uploads/acme/call.mp3",
            filename="call.mp3",
            mimetype="audio/mpeg",
            size=10,
            organization_id=organization.id,
        )
        return store, organization.id, storage.id

    def test_update_job_bumps_write_counter_and_timestamp(self) -> None:
        store, organization_id, storage_id = self._seed()
        job = store.insert_job(file_id=storage_id, organization_id=organization_id)
        before_writes = store.job_write_count

        updated = store.update_job(job.id, status=JobStatus.PROCESSING)

        self.assertEqual(updated.status, JobStatus.PROCESSING)
        self.assertGreaterEqual(updated.updated_at, job.updated_at)
        self.assertEqual(store.job_write_count, before_writes + 1)
        self.assertEqual(job.status, JobStatus.PENDING)

    def test_exception_inside_transaction_rolls_back_every_write(self) -> None:
        store, organization_id, storage_id = self._seed()
        job = store.insert_job(file_id=storage_id, organization_id=organization_id)
        before_writes = store.job_write_count

        with self.assertRaises(RuntimeError):
            with store.transaction():
                store.update_job(job.id, status=JobStatus.COMPLETED)
                store.insert_analysis_result(
                    job_id=job.id,
                    organization_id=organization_id,
                    transcript="hello",
                    sentiment="positive",
                )
                raise RuntimeError("boom")

        self.assertEqual(store.jobs[job.id].status, JobStatus.PENDING)
        self.assertIsNone(store.get_result_for_job(job.id))
        self.assertEqual(store.job_write_count, before_writes)

    def test_nested_transaction_joins_outer_and_rolls_back_together(self) -> None:
        store, organization_id, _ = self._seed()

        with self.assertRaises(RuntimeError):
            with store.transaction():
                store.create_user(
                    organization_id=organization_id,
                    email="agent@acme.com",
                    full_name="Agent",
                    role=UserRole.AGENT,
                )
                with store.transaction():
                    store.update_organization(organization_id, name="Renamed")
                raise RuntimeError("boom")

        self.assertEqual(store.count_users(organization_id), 0)
        self.assertEqual(store.organizations[organization_id].name, "Acme")
        self.assertEqual(store.organizations[organization_id].total_member_count, 0)

    def test_foreign_keys_block_parent_deletes(self) -> None:
        store, organization_id, storage_id = self._seed()
        job = store.insert_job(file_id=storage_id, organization_id=organization_id)
        store.insert_analysis_result(
            job_id=job.id,
            organization_id=organization_id,
            transcript="hello",
            sentiment="neutral",
        )

        with self.assertRaises(RuntimeError):
            store.delete_job(job.id)
        with self.assertRaises(RuntimeError):
            store.delete_storage(storage_id)
        with self.assertRaises(RuntimeError):
            store.delete_organization(organization_id)

        self.assertIn(job.id, store.jobs)
        self.assertIn(storage_id, store.storage)
        self.assertIn(organization_id, store.organizations)

    def test_second_analysis_result_for_job_is_rejected(self) -> None:
        store, organization_id, storage_id = self._seed()
        job = store.insert_job(file_id=storage_id, organization_id=organization_id)
        store.insert_analysis_result(job_id=job.id, organization_id=organization_id, transcript="a", sentiment="b")

        with self.assertRaises(RuntimeError):
            store.insert_analysis_result(job_id=job.id, organization_id=organization_id, transcript="c", sentiment="d")

        self.assertEqual(len(store.analysis_results), 1)

    def test_failpoint_fires_the_requested_number_of_times(self) -> None:
        store, organization_id, storage_id = self._seed()
        job = store.insert_job(file_id=storage_id, organization_id=organization_id)
        store.fail_next("update_job", times=2)

        for _ in range(2):
            with self.assertRaises(RuntimeError):
                store.update_job(job.id, status=JobStatus.PROCESSING)
        store.update_job(job.id, status=JobStatus.PROCESSING)

        self.assertEqual(store.jobs[job.id].status, JobStatus.PROCESSING)


if __name__ == "__main__":
    unittest.main()
