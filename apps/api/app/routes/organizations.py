"""Organization routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status

from app.routes.dependencies import (
    MANAGER_ROLES,
    MEMBER_ROLES,
    ensure_organization_access,
    get_authenticated_principal,
    get_organization_service,
    require_roles,
)
from app.schemas.auth import AuthPrincipal, UserRole
from app.schemas.error import ErrorResponse, NoLeakNotFoundError, QuotaExceededErrorResponse
from app.schemas.organization import (
    CreateOrganizationRequest,
    CreateUserRequest,
    Organization,
    OrganizationUsage,
    UpdateOrganizationRequest,
    User,
)
from app.services.organizations import OrganizationService

router = APIRouter(prefix="/organizations", tags=["Organizations"])

_OWNER_ROLES: tuple[UserRole, ...] = (UserRole.OWNER,)


@router.post(
    "",
    response_model=Organization,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_organization(
    payload: CreateOrganizationRequest,
    _: Annotated[AuthPrincipal, Depends(require_roles(UserRole.SUPER_OWNER))],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> Organization:
    return service.create(payload)


@router.get("", response_model=list[Organization], responses={403: {"model": ErrorResponse}})
async def list_organizations(
    _: Annotated[AuthPrincipal, Depends(require_roles(UserRole.SUPER_OWNER))],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> list[Organization]:
    return service.list_organizations()


@router.get(
    "/{orgId}",
    response_model=Organization,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def get_organization(
    organization_id: Annotated[str, Path(alias="orgId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> Organization:
    ensure_organization_access(principal, organization_id, roles=_OWNER_ROLES)
    return service.get(organization_id)


@router.patch(
    "/{orgId}",
    response_model=Organization,
    responses={404: {"model": NoLeakNotFoundError}, 409: {"model": ErrorResponse}},
)
async def update_organization(
    organization_id: Annotated[str, Path(alias="orgId")],
    payload: UpdateOrganizationRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> Organization:
    ensure_organization_access(principal, organization_id, roles=_OWNER_ROLES)
    return service.update(organization_id, payload)


@router.delete(
    "/{orgId}",
    response_model=Organization,
    responses={400: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def archive_organization(
    organization_id: Annotated[str, Path(alias="orgId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> Organization:
    ensure_organization_access(principal, organization_id, roles=_OWNER_ROLES)
    return service.archive(organization_id)


@router.get(
    "/{orgId}/usage",
    response_model=OrganizationUsage,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def get_organization_usage(
    organization_id: Annotated[str, Path(alias="orgId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> OrganizationUsage:
    ensure_organization_access(principal, organization_id, roles=MEMBER_ROLES)
    return service.usage(organization_id)


@router.post(
    "/{orgId}/users",
    response_model=User,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": QuotaExceededErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": ErrorResponse},
    },
)
async def add_organization_user(
    organization_id: Annotated[str, Path(alias="orgId")],
    payload: CreateUserRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> User:
    ensure_organization_access(principal, organization_id, roles=MANAGER_ROLES)
    return service.add_user(organization_id, payload)


@router.get(
    "/{orgId}/users",
    response_model=list[User],
    responses={404: {"model": NoLeakNotFoundError}},
)
async def list_organization_users(
    organization_id: Annotated[str, Path(alias="orgId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> list[User]:
    ensure_organization_access(principal, organization_id, roles=MANAGER_ROLES)
    return service.list_users(organization_id)


@router.delete(
    "/{orgId}/users/{userId}",
    response_model=User,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def remove_organization_user(
    organization_id: Annotated[str, Path(alias="orgId")],
    user_id: Annotated[str, Path(alias="userId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[OrganizationService, Depends(get_organization_service)],
) -> User:
    ensure_organization_access(principal, organization_id, roles=MANAGER_ROLES)
    return service.remove_user(organization_id, user_id)
