"""Administrative routes."""

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from app.routes.dependencies import get_cleanup_scheduler, require_roles
from app.schemas.admin import CleanupSummary
from app.schemas.auth import AuthPrincipal, UserRole
from app.schemas.error import ErrorResponse
from app.services.cleanup import OrganizationCleanupScheduler

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post(
    "/organizations/cleanup",
    response_model=CleanupSummary,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def run_organization_cleanup(
    _: Annotated[AuthPrincipal, Depends(require_roles(UserRole.SUPER_OWNER))],
    scheduler: Annotated[OrganizationCleanupScheduler, Depends(get_cleanup_scheduler)],
) -> CleanupSummary:
    return await run_in_threadpool(scheduler.run_manual_cleanup)
