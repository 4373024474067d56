"""Dependency wiring for routes."""

from __future__ import annotations

from collections.abc import Callable
import logging
from secrets import compare_digest
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Query, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.adapters.auth import (
    AuthVerificationError,
    FirebaseTokenVerifier,
    MockTokenVerifier,
    TokenVerifier,
)
from app.adapters.blob import BlobStore
from app.adapters.worker import WorkerDispatcher
from app.core.config import Settings, get_settings
from app.core.logging_safety import safe_log_identifier
from app.errors import AuthError, ForbiddenError, NotFoundError, ValidationError
from app.repositories.memory import InMemoryStore
from app.schemas.auth import AuthPrincipal, UserRole
from app.services.audio_analysis import AudioAnalysisService
from app.services.cleanup import OrganizationCleanupScheduler
from app.services.jobs import JobLifecycleManager
from app.services.organizations import OrganizationService
from app.services.storage import StorageRecordManager
from app.services.webhooks import WebhookIngestionHandler

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
logger = logging.getLogger(__name__)

MEMBER_ROLES: tuple[UserRole, ...] = (UserRole.OWNER, UserRole.ADMIN, UserRole.AGENT, UserRole.SUPER_OWNER)
MANAGER_ROLES: tuple[UserRole, ...] = (UserRole.OWNER, UserRole.ADMIN, UserRole.SUPER_OWNER)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


def get_token_verifier(settings: Annotated[Settings, Depends(get_settings)]) -> TokenVerifier:
    """Resolve provider adapter from configuration."""
    if settings.auth_provider == "firebase":
        return FirebaseTokenVerifier(
            project_id=settings.firebase_project_id,
            audience=settings.firebase_audience,
        )
    return MockTokenVerifier()


async def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal:
    """Validate bearer token and attach normalized principal to request context."""
    safe_correlation_id = safe_log_identifier(_request_correlation_id(request), prefix="cid")
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=invalid_or_missing_bearer",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise AuthError("Invalid or missing bearer token")

    try:
        principal = verifier.verify_token(credentials.credentials)
    except AuthVerificationError as exc:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=token_verification_failed",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise AuthError(str(exc) or "Invalid bearer token") from exc

    logger.info(
        "auth.accepted correlation_id=%s method=%s path=%s principal_id=%s role=%s",
        safe_correlation_id,
        request.method,
        request.url.path,
        safe_log_identifier(principal.user_id, prefix="pid"),
        principal.role.value,
    )
    request.state.auth_principal = principal
    return principal


def require_roles(*roles: UserRole) -> Callable[..., AuthPrincipal]:
    allowed = frozenset(roles)

    async def dependency(
        principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    ) -> AuthPrincipal:
        if principal.role not in allowed:
            raise ForbiddenError()
        return principal

    return dependency


async def get_target_organization_id(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    organization_id: Annotated[str | None, Query()] = None,
) -> str:
    """Organization that receives new uploads and jobs for this request."""
    if principal.is_privileged:
        if not organization_id:
            raise ValidationError("organization_id is required for SUPER_OWNER requests")
        return organization_id
    if not principal.organization_id:
        raise ForbiddenError("Principal is not a member of an organization")
    return principal.organization_id


async def get_scope_organization_id(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
) -> str | None:
    """Organization filter for tenant-scoped reads; ``None`` only for privileged callers."""
    if principal.is_privileged:
        return None
    if not principal.organization_id:
        raise ForbiddenError("Principal is not a member of an organization")
    return principal.organization_id


def ensure_organization_access(
    principal: AuthPrincipal,
    organization_id: str,
    *,
    roles: tuple[UserRole, ...] = MEMBER_ROLES,
) -> None:
    """Privileged callers reach every organization; others only their own."""
    if principal.is_privileged:
        return
    if principal.organization_id != organization_id:
        raise NotFoundError()
    if principal.role not in roles:
        raise ForbiddenError()


async def require_webhook_secret(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Validate the shared secret sent by the processing worker."""
    safe_correlation_id = safe_log_identifier(_request_correlation_id(request), prefix="cid")
    supplied = request.headers.get(settings.webhook_secret_header)
    if supplied is None or not compare_digest(supplied.encode("utf-8"), settings.webhook_secret.encode("utf-8")):
        logger.warning(
            "webhook.auth_rejected correlation_id=%s method=%s path=%s reason=invalid_webhook_secret",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise AuthError("Invalid webhook secret")


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_worker_dispatcher(request: Request) -> WorkerDispatcher:
    return request.app.state.worker_dispatcher


def get_cleanup_scheduler(request: Request) -> OrganizationCleanupScheduler:
    return request.app.state.cleanup_scheduler


def get_storage_manager(
    store: Annotated[InMemoryStore, Depends(get_store)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> StorageRecordManager:
    return StorageRecordManager(
        store,
        blob_store,
        max_upload_bytes=settings.max_upload_bytes,
        presign_ttl_seconds=settings.presign_ttl_seconds,
    )


def get_job_manager(store: Annotated[InMemoryStore, Depends(get_store)]) -> JobLifecycleManager:
    return JobLifecycleManager(store)


def get_audio_analysis_service(
    store: Annotated[InMemoryStore, Depends(get_store)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    dispatcher: Annotated[WorkerDispatcher, Depends(get_worker_dispatcher)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AudioAnalysisService:
    return AudioAnalysisService(
        store,
        blob_store,
        dispatcher,
        max_audio_upload_bytes=settings.max_audio_upload_bytes,
        presign_ttl_seconds=settings.presign_ttl_seconds,
    )


def get_webhook_handler(store: Annotated[InMemoryStore, Depends(get_store)]) -> WebhookIngestionHandler:
    return WebhookIngestionHandler(store)


def get_organization_service(store: Annotated[InMemoryStore, Depends(get_store)]) -> OrganizationService:
    return OrganizationService(store)
