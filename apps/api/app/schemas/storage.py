"""Storage record API schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class StoredFile(BaseModel):
    id: str
    url: str
    filename: str
    mimetype: str
    size: int
    uploaded_at: datetime
    organization_id: str | None = None


class UpdateStoredFileRequest(BaseModel):
    filename: str | None = Field(default=None, min_length=1, max_length=255)
    mimetype: str | None = Field(default=None, min_length=1, max_length=127)


class PresignedUrlResponse(BaseModel):
    url: str
    expires_in: int


class StoredFileDeleteResponse(BaseModel):
    success: bool
    id: str
