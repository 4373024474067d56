"""Organization quota admission."""

import logging

from app.core.logging_safety import safe_log_identifier
from app.domain.quota import QuotaSnapshot, effective_max_concurrent_jobs, effective_max_users
from app.errors import ConcurrentJobLimitExceededError, NotFoundError, UserLimitExceededError
from app.repositories.memory import InMemoryStore, OrganizationRecord

logger = logging.getLogger(__name__)


class QuotaEvaluator:
    """Answers "may this organization take on one more X?".

    The ``ensure_*`` checks are only race-free when the caller holds
    ``store.transaction()`` across the check and the insert that follows it.
    """

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def _active_organization(self, organization_id: str) -> OrganizationRecord:
        organization = self._store.get_active_organization(organization_id)
        if organization is None:
            raise NotFoundError()
        return organization

    def job_quota(self, organization_id: str) -> QuotaSnapshot:
        organization = self._active_organization(organization_id)
        return QuotaSnapshot(
            organization_id=organization.id,
            resource="concurrent_jobs",
            current=self._store.count_active_jobs(organization.id),
            limit=effective_max_concurrent_jobs(organization.max_concurrent_jobs),
        )

    def user_quota(self, organization_id: str) -> QuotaSnapshot:
        organization = self._active_organization(organization_id)
        return QuotaSnapshot(
            organization_id=organization.id,
            resource="users",
            current=self._store.count_users(organization.id),
            limit=effective_max_users(organization.max_users),
        )

    def can_admit_job(self, organization_id: str) -> bool:
        return self.job_quota(organization_id).allowed

    def can_admit_user(self, organization_id: str) -> bool:
        return self.user_quota(organization_id).allowed

    def ensure_job_admission(self, organization_id: str) -> QuotaSnapshot:
        snapshot = self.job_quota(organization_id)
        if not snapshot.allowed:
            logger.warning(
                "quota.rejected organization_id=%s resource=%s current=%s limit=%s",
                safe_log_identifier(organization_id, prefix="org"),
                snapshot.resource,
                snapshot.current,
                snapshot.limit,
            )
            raise ConcurrentJobLimitExceededError(
                organization_id=organization_id,
                current_count=snapshot.current,
                max_limit=snapshot.limit,
            )
        return snapshot

    def ensure_user_admission(self, organization_id: str) -> QuotaSnapshot:
        snapshot = self.user_quota(organization_id)
        if not snapshot.allowed:
            logger.warning(
                "quota.rejected organization_id=%s resource=%s current=%s limit=%s",
                safe_log_identifier(organization_id, prefix="org"),
                snapshot.resource,
                snapshot.current,
                snapshot.limit,
            )
            raise UserLimitExceededError(
                organization_id=organization_id,
                current_count=snapshot.current,
                max_limit=snapshot.limit,
            )
        return snapshot
