"""Audio analysis routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Path, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from app.routes.dependencies import (
    MEMBER_ROLES,
    get_audio_analysis_service,
    get_job_manager,
    get_scope_organization_id,
    get_target_organization_id,
    require_roles,
)
from app.schemas.auth import AuthPrincipal
from app.schemas.error import ErrorResponse, NoLeakNotFoundError, QuotaExceededErrorResponse
from app.schemas.job import (
    AnalysisResultResponse,
    CreateJobRequest,
    JobDescriptor,
    JobListResponse,
    JobStatus,
    JobStatusResponse,
)
from app.services.audio_analysis import AudioAnalysisService
from app.services.jobs import JobLifecycleManager

router = APIRouter(prefix="/audio-analysis", tags=["Audio Analysis"])

_ADMISSION_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": QuotaExceededErrorResponse},
    404: {"model": NoLeakNotFoundError},
    502: {"model": ErrorResponse},
}


@router.post(
    "/upload",
    response_model=JobDescriptor,
    status_code=status.HTTP_201_CREATED,
    responses=_ADMISSION_RESPONSES,
)
async def upload_and_process(
    file: Annotated[UploadFile, File()],
    _: Annotated[AuthPrincipal, Depends(require_roles(*MEMBER_ROLES))],
    organization_id: Annotated[str, Depends(get_target_organization_id)],
    service: Annotated[AudioAnalysisService, Depends(get_audio_analysis_service)],
) -> JobDescriptor:
    data = await file.read()
    return await run_in_threadpool(
        service.upload_and_process,
        data=data,
        filename=file.filename or "upload.mp3",
        mimetype=file.content_type,
        organization_id=organization_id,
    )


@router.post(
    "/jobs",
    response_model=JobDescriptor,
    status_code=status.HTTP_201_CREATED,
    responses=_ADMISSION_RESPONSES,
)
async def start_job(
    payload: CreateJobRequest,
    _: Annotated[AuthPrincipal, Depends(require_roles(*MEMBER_ROLES))],
    organization_id: Annotated[str, Depends(get_target_organization_id)],
    service: Annotated[AudioAnalysisService, Depends(get_audio_analysis_service)],
) -> JobDescriptor:
    return await run_in_threadpool(service.start_job, file_id=payload.file_id, organization_id=organization_id)


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(
    scope: Annotated[str | None, Depends(get_scope_organization_id)],
    manager: Annotated[JobLifecycleManager, Depends(get_job_manager)],
    job_status: Annotated[JobStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> JobListResponse:
    return manager.list_jobs(organization_id=scope, status=job_status, limit=limit, offset=offset)


@router.get(
    "/jobs/{jobId}",
    response_model=JobStatusResponse,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def get_job_status(
    job_id: Annotated[str, Path(alias="jobId")],
    scope: Annotated[str | None, Depends(get_scope_organization_id)],
    manager: Annotated[JobLifecycleManager, Depends(get_job_manager)],
) -> JobStatusResponse:
    return manager.get_job_status(job_id, organization_id=scope)


@router.get(
    "/jobs/{jobId}/results",
    response_model=AnalysisResultResponse,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def get_job_results(
    job_id: Annotated[str, Path(alias="jobId")],
    scope: Annotated[str | None, Depends(get_scope_organization_id)],
    manager: Annotated[JobLifecycleManager, Depends(get_job_manager)],
) -> AnalysisResultResponse:
    return manager.get_job_result(job_id, organization_id=scope)
