"""Worker webhook schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WebhookCallbackRequest(BaseModel):
    """Callback body sent by the external transcription worker.

    ``status`` is kept as free text so that an unknown value can still be
    traced onto the job it names instead of being rejected at the edge.
    """

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    status: str | None = None
    transcript: str | None = None
    sentiment: str | None = None
    metadata: dict[str, Any] | None = None
    error: str | None = None


class WebhookResponse(BaseModel):
    success: bool
    message: str | None = None
