"""Job API schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class CreateJobRequest(BaseModel):
    file_id: str = Field(min_length=1)


class JobDescriptor(BaseModel):
    job_id: str
    file_id: str
    status: JobStatus
    message: str


class JobFileSummary(BaseModel):
    id: str
    filename: str
    size: int
    mimetype: str


class JobStatusResponse(BaseModel):
    id: str
    status: JobStatus
    organization_id: str
    created_at: datetime
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    external_reference_id: str | None = None
    file: JobFileSummary | None = None


class JobListResponse(BaseModel):
    jobs: list[JobStatusResponse]
    total: int


class AnalysisResultResponse(BaseModel):
    id: str
    job_id: str
    transcript: str
    sentiment: str
    metadata: dict[str, Any] | None = None
    created_at: datetime
    job_status: JobStatus
