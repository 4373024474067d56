"""Organization and membership service layer."""

from datetime import UTC, datetime
import logging

from app.core.logging_safety import safe_log_identifier
from app.domain.quota import effective_max_concurrent_jobs, effective_max_users
from app.errors import ConflictError, NotFoundError, ValidationError
from app.repositories.memory import InMemoryStore, OrganizationRecord, UserRecord
from app.schemas.auth import UserRole
from app.schemas.organization import (
    CreateOrganizationRequest,
    CreateUserRequest,
    Organization,
    OrganizationUsage,
    QuotaUsage,
    UpdateOrganizationRequest,
    User,
)
from app.services.quota import QuotaEvaluator

logger = logging.getLogger(__name__)


def _email_conflict() -> ConflictError:
    return ConflictError(
        code="ORGANIZATION_EMAIL_CONFLICT",
        message="An active organization with this email already exists",
    )


class OrganizationService:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store
        self._quota = QuotaEvaluator(store)

    def create(self, payload: CreateOrganizationRequest) -> Organization:
        with self._store.transaction():
            if self._store.find_active_organization_by_email(payload.email) is not None:
                raise _email_conflict()
            record = self._store.create_organization(
                name=payload.name,
                email=payload.email,
                contact_number=payload.contact_number,
                max_users=payload.max_users,
                max_concurrent_jobs=payload.max_concurrent_jobs,
            )

        logger.info("organization.created organization_id=%s", safe_log_identifier(record.id, prefix="org"))
        return self._to_organization(record)

    def list_organizations(self) -> list[Organization]:
        return [self._to_organization(record) for record in self._store.list_active_organizations()]

    def get(self, organization_id: str) -> Organization:
        return self._to_organization(self._require_active(organization_id))

    def update(self, organization_id: str, payload: UpdateOrganizationRequest) -> Organization:
        changes = {
            field: value
            for field, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or field == "contact_number"
        }
        with self._store.transaction():
            current = self._require_active(organization_id)
            email = changes.get("email")
            if email is not None and email.lower() != current.email.lower():
                existing = self._store.find_active_organization_by_email(email)
                if existing is not None and existing.id != organization_id:
                    raise _email_conflict()
            record = self._store.update_organization(organization_id, **changes)

        logger.info(
            "organization.updated organization_id=%s fields=%s",
            safe_log_identifier(organization_id, prefix="org"),
            ",".join(sorted(changes)),
        )
        return self._to_organization(record)

    def archive(self, organization_id: str) -> Organization:
        """Soft-delete: the row stays until the retention sweep purges it."""
        with self._store.transaction():
            current = self._store.get_organization(organization_id)
            if current is None:
                raise NotFoundError()
            if current.archived_at is not None:
                raise ValidationError("Organization is already archived")
            record = self._store.update_organization(organization_id, archived_at=datetime.now(UTC))

        logger.info("organization.archived organization_id=%s", safe_log_identifier(organization_id, prefix="org"))
        return self._to_organization(record)

    def add_user(self, organization_id: str, payload: CreateUserRequest) -> User:
        if payload.role is UserRole.SUPER_OWNER:
            raise ValidationError("SUPER_OWNER cannot be assigned to an organization member")

        with self._store.transaction():
            self._quota.ensure_user_admission(organization_id)
            if self._store.find_user_by_email(payload.email) is not None:
                raise ConflictError(code="USER_EMAIL_CONFLICT", message="A user with this email already exists")
            record = self._store.create_user(
                organization_id=organization_id,
                email=payload.email,
                full_name=payload.full_name,
                role=payload.role,
            )

        logger.info(
            "organization.user_added organization_id=%s user_id=%s role=%s",
            safe_log_identifier(organization_id, prefix="org"),
            safe_log_identifier(record.id, prefix="uid"),
            record.role.value,
        )
        return self._to_user(record)

    def remove_user(self, organization_id: str, user_id: str) -> User:
        with self._store.transaction():
            self._require_active(organization_id)
            user = self._store.get_user(user_id)
            if user is None or user.organization_id != organization_id:
                raise NotFoundError()
            record = self._store.delete_user(user_id)

        logger.info(
            "organization.user_removed organization_id=%s user_id=%s",
            safe_log_identifier(organization_id, prefix="org"),
            safe_log_identifier(user_id, prefix="uid"),
        )
        return self._to_user(record)

    def list_users(self, organization_id: str) -> list[User]:
        self._require_active(organization_id)
        return [self._to_user(record) for record in self._store.list_users(organization_id)]

    def usage(self, organization_id: str) -> OrganizationUsage:
        users = self._quota.user_quota(organization_id)
        jobs = self._quota.job_quota(organization_id)
        return OrganizationUsage(
            organization_id=organization_id,
            users=QuotaUsage(current=users.current, limit=users.limit),
            concurrent_jobs=QuotaUsage(current=jobs.current, limit=jobs.limit),
            jobs_by_status=self._store.count_jobs_by_status(organization_id),
        )

    def _require_active(self, organization_id: str) -> OrganizationRecord:
        record = self._store.get_active_organization(organization_id)
        if record is None:
            raise NotFoundError()
        return record

    @staticmethod
    def _to_organization(record: OrganizationRecord) -> Organization:
        return Organization(
            id=record.id,
            name=record.name,
            email=record.email,
            contact_number=record.contact_number,
            max_users=effective_max_users(record.max_users),
            max_concurrent_jobs=effective_max_concurrent_jobs(record.max_concurrent_jobs),
            total_member_count=record.total_member_count,
            lifecycle=record.lifecycle,
            created_at=record.created_at,
            updated_at=record.updated_at,
            archived_at=record.archived_at,
        )

    @staticmethod
    def _to_user(record: UserRecord) -> User:
        return User(
            id=record.id,
            organization_id=record.organization_id,
            email=record.email,
            full_name=record.full_name,
            role=record.role,
            created_at=record.created_at,
        )
