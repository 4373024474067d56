"""FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.adapters.blob import create_blob_store
from app.adapters.worker import create_worker_dispatcher
from app.core.config import get_settings
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.routes import (
    admin_router,
    audio_analysis_router,
    organizations_router,
    storage_router,
    webhooks_router,
)
from app.schemas.error import ErrorResponse
from app.services.cleanup import OrganizationCleanupScheduler

logger = logging.getLogger(__name__)

_ERROR_RESPONSE_REF = "#/components/schemas/ErrorResponse"


def _apply_validation_error_responses(schema: dict) -> None:
    """Document request validation failures as the 400 error envelope the handler returns."""
    for path_item in schema.get("paths", {}).values():
        for operation in path_item.values():
            responses = operation.get("responses")
            if not responses or "422" not in responses:
                continue
            responses.pop("422")
            responses.setdefault(
                "400",
                {
                    "description": "Validation Error",
                    "content": {"application/json": {"schema": {"$ref": _ERROR_RESPONSE_REF}}},
                },
            )


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    scheduler: OrganizationCleanupScheduler = app.state.cleanup_scheduler
    if settings.cleanup_enabled:
        await scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Auralis API", version="1.0.0", lifespan=_lifespan)
    app.state.store = InMemoryStore()
    app.state.blob_store = create_blob_store(settings)
    app.state.worker_dispatcher = create_worker_dispatcher(settings)
    app.state.cleanup_scheduler = OrganizationCleanupScheduler(
        app.state.store,
        app.state.blob_store,
        retention_days=settings.retention_days,
        interval_seconds=settings.cleanup_interval_seconds,
    )

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info(
            "request.invalid method=%s path=%s errors=%s",
            request.method,
            request.url.path,
            len(exc.errors()),
        )
        payload = ErrorResponse(
            code="VALIDATION_ERROR",
            message="Invalid request payload",
            details={"errors": jsonable_encoder(exc.errors())},
        )
        return JSONResponse(status_code=400, content=payload.model_dump(mode="json"))

    api_prefix = "/api/v1"
    app.include_router(storage_router, prefix=api_prefix)
    app.include_router(audio_analysis_router, prefix=api_prefix)
    app.include_router(webhooks_router, prefix=api_prefix)
    app.include_router(organizations_router, prefix=api_prefix)
    app.include_router(admin_router, prefix=api_prefix)

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        _apply_validation_error_responses(schema)
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app
