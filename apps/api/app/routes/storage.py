"""Storage routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Path, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from app.routes.dependencies import (
    MANAGER_ROLES,
    MEMBER_ROLES,
    get_scope_organization_id,
    get_storage_manager,
    get_target_organization_id,
    require_roles,
)
from app.schemas.auth import AuthPrincipal
from app.schemas.error import ErrorResponse, NoLeakNotFoundError
from app.schemas.storage import (
    PresignedUrlResponse,
    StoredFile,
    StoredFileDeleteResponse,
    UpdateStoredFileRequest,
)
from app.services.storage import StorageRecordManager

router = APIRouter(prefix="/storage", tags=["Storage"])


@router.post(
    "",
    response_model=StoredFile,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def upload_file(
    file: Annotated[UploadFile, File()],
    _: Annotated[AuthPrincipal, Depends(require_roles(*MEMBER_ROLES))],
    organization_id: Annotated[str, Depends(get_target_organization_id)],
    manager: Annotated[StorageRecordManager, Depends(get_storage_manager)],
) -> StoredFile:
    data = await file.read()
    return await run_in_threadpool(
        manager.upload,
        data=data,
        filename=file.filename or "upload",
        mimetype=file.content_type or "application/octet-stream",
        organization_id=organization_id,
    )


@router.get("", response_model=list[StoredFile])
async def list_files(
    scope: Annotated[str | None, Depends(get_scope_organization_id)],
    manager: Annotated[StorageRecordManager, Depends(get_storage_manager)],
) -> list[StoredFile]:
    return manager.list_files(organization_id=scope)


@router.get(
    "/{fileId}",
    response_model=StoredFile,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def get_file(
    file_id: Annotated[str, Path(alias="fileId")],
    scope: Annotated[str | None, Depends(get_scope_organization_id)],
    manager: Annotated[StorageRecordManager, Depends(get_storage_manager)],
) -> StoredFile:
    return manager.get(file_id, organization_id=scope)


@router.get(
    "/{fileId}/presigned-url",
    response_model=PresignedUrlResponse,
    responses={404: {"model": NoLeakNotFoundError}, 502: {"model": ErrorResponse}},
)
async def get_presigned_url(
    file_id: Annotated[str, Path(alias="fileId")],
    scope: Annotated[str | None, Depends(get_scope_organization_id)],
    manager: Annotated[StorageRecordManager, Depends(get_storage_manager)],
) -> PresignedUrlResponse:
    return await run_in_threadpool(manager.get_presigned_url, file_id, organization_id=scope)


@router.patch(
    "/{fileId}",
    response_model=StoredFile,
    responses={403: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def update_file(
    file_id: Annotated[str, Path(alias="fileId")],
    payload: UpdateStoredFileRequest,
    _: Annotated[AuthPrincipal, Depends(require_roles(*MANAGER_ROLES))],
    scope: Annotated[str | None, Depends(get_scope_organization_id)],
    manager: Annotated[StorageRecordManager, Depends(get_storage_manager)],
) -> StoredFile:
    return manager.update(file_id, organization_id=scope, filename=payload.filename, mimetype=payload.mimetype)


@router.delete(
    "/{fileId}",
    response_model=StoredFileDeleteResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def delete_file(
    file_id: Annotated[str, Path(alias="fileId")],
    _: Annotated[AuthPrincipal, Depends(require_roles(*MANAGER_ROLES))],
    scope: Annotated[str | None, Depends(get_scope_organization_id)],
    manager: Annotated[StorageRecordManager, Depends(get_storage_manager)],
) -> StoredFileDeleteResponse:
    return await run_in_threadpool(manager.delete, file_id, organization_id=scope)
