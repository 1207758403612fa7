"""
FastAPI application factory for the CRM local store.

This module creates the FastAPI app with:
- Store lifecycle management (initialize and migrate on startup)
- CORS configuration for the desktop frontend
- Error envelope handlers mapping StoreError codes to HTTP statuses
- API routes under /api

Error envelope:
    {"statusCode": 404, "message": "...", "error": "NOT_FOUND", "details": {...}}
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..config import AppConfig
from ..errors import (
    ConflictError,
    InvalidTemplateError,
    NotFoundError,
    NotInitializedError,
    StoreError,
    ValidationError,
)
from ..models.database import CURRENT_DATABASE_VERSION
from ..services import Services
from ..storage.store import PersistentStore
from .routes import router

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[StoreError], int] = {
    NotFoundError: 404,
    ValidationError: 400,
    InvalidTemplateError: 400,
    ConflictError: 409,
    NotInitializedError: 503,
}


def status_for(error: StoreError) -> int:
    """HTTP status for a store error; unlisted errors are server faults."""
    for cls in type(error).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


def error_envelope(
    status_code: int, message: str, error: str, details: dict | None = None
) -> JSONResponse:
    content = {"statusCode": status_code, "message": message, "error": error}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc}")
    return error_envelope(status_code, exc.message, exc.code, exc.details)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields: dict[str, list[str]] = {}
    for item in exc.errors():
        location = ".".join(str(part) for part in item["loc"] if part != "body") or "body"
        fields.setdefault(location, []).append(item["msg"])
    return error_envelope(400, "Invalid request", ValidationError.default_code, {"fields": fields})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    return error_envelope(500, "Internal server error", "InternalError")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize the store before serving requests."""
    store: PersistentStore = app.state.store
    await store.initialize()
    app.state.services = Services(store)

    yield

    logger.info(f"Shutting down; data is in {store.root}")


def create_app(config: AppConfig | None = None, store: PersistentStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application configuration (defaults to AppConfig())
        store: Store to serve (defaults to one on config.storage.root)
    """
    config = config or AppConfig()

    app = FastAPI(
        title="CRM Local Store",
        description="Local API over the offers, invoices and settings of one storage root.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store or PersistentStore(config.storage.root)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.http.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "service": "crm-local-store",
            "version": __version__,
            "databaseVersion": CURRENT_DATABASE_VERSION,
        }

    return app
