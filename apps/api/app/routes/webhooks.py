"""Processing-worker webhook routes."""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends

from app.routes.dependencies import get_webhook_handler, require_webhook_secret
from app.schemas.error import ErrorResponse, NoLeakNotFoundError
from app.schemas.webhook import WebhookResponse
from app.services.webhooks import WebhookIngestionHandler

router = APIRouter(prefix="/audio-analysis", tags=["Webhooks"])


@router.post(
    "/webhook",
    response_model=WebhookResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        500: {"model": ErrorResponse},
    },
)
async def receive_webhook(
    body: Annotated[Any, Body()],
    __: Annotated[None, Depends(require_webhook_secret)],
    handler: Annotated[WebhookIngestionHandler, Depends(get_webhook_handler)],
) -> WebhookResponse:
    return handler.handle(body)
