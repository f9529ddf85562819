"""
PlaceShare Backend: FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers.
Who:   uvicorn placeshare.main:app

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────┐ ┌─────────────────┐ ┌──────┐ ┌──────┐ │
    │  │ Req ID   │→│  Logging        │→│ GZip │→│ CORS │ │
    │  └──────────┘ └─────────────────┘ └──────┘ └──────┘ │
    │                                                     │
    │  Routes:                                            │
    │  ┌────────────┐ ┌───────────┐ ┌─────────┐ ┌───────┐ │
    │  │ /api/places│ │ /api/users│ │/uploads │ │/health│ │
    │  └────────────┘ └───────────┘ └─────────┘ └───────┘ │
    │                                                     │
    │  Exception Handlers:                                │
    │  422 validation │ 401 │ 403 │ 404 │ 503 │ 500       │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config check → storage directory
    Shutdown: dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from placeshare import __version__
from placeshare.config import settings
from placeshare.database import dispose_engine
from placeshare.exceptions import (
    DuplicateEmailError,
    FileStorageError,
    ForbiddenError,
    GeocodeError,
    GeocoderUnavailableError,
    NotFoundError,
    PlaceShareError,
    StoreError,
    UnauthorizedError,
    ValidationError,
)
from placeshare.middleware.logging import RequestLoggingMiddleware
from placeshare.middleware.request_id import RequestIDMiddleware, request_id_var
from placeshare.routes import files, health, places, users
from placeshare.services.file_service import file_service

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR = "An internal error occurred. Please try again later."


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("PlaceShare Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: reads and /health still work without these keys
        logger.error("Configuration error: %s", str(e))

    logger.info("Upload directory: %s", file_service.storage_root / file_service.upload_dir)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("PlaceShare Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[dict] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes.

        RequestValidationError    → 422 (FastAPI schema validation)
        ValidationError           → 422
        DuplicateEmailError       → 422
        GeocodeError              → 422
        UnauthorizedError         → 401
        ForbiddenError            → 403
        NotFoundError             → 404
        GeocoderUnavailableError  → 503 with Retry-After
        FileStorageError          → 500
        StoreError                → 500
        PlaceShareError (base)    → 500
        Exception (fallback)      → 500

    Server-side failures never leak their context to the client; it is
    logged instead.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning("[%s] Request validation failed: %d errors", request_id_var.get(""), len(exc.errors()))
        return _error_response(
            422,
            "validation_error",
            "Invalid inputs passed, please check your data",
            details={"errors": jsonable_encoder(exc.errors(), exclude={"ctx", "input"})},
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(422, "validation_error", exc.message, details=exc.context)

    @app.exception_handler(DuplicateEmailError)
    async def handle_duplicate_email(request: Request, exc: DuplicateEmailError):
        return _error_response(422, "duplicate_email", exc.message)

    @app.exception_handler(GeocodeError)
    async def handle_geocode_error(request: Request, exc: GeocodeError):
        return _error_response(422, "geocode_error", exc.message)

    @app.exception_handler(UnauthorizedError)
    async def handle_unauthorized(request: Request, exc: UnauthorizedError):
        return _error_response(
            401,
            "unauthorized",
            exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(ForbiddenError)
    async def handle_forbidden(request: Request, exc: ForbiddenError):
        return _error_response(403, "forbidden", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(GeocoderUnavailableError)
    async def handle_geocoder_unavailable(request: Request, exc: GeocoderUnavailableError):
        logger.error("[%s] Geocoder unavailable: %s", request_id_var.get(""), exc.message)
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error_response(503, "service_unavailable", exc.message, headers=headers)

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error("[%s] File storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        logger.error("[%s] Store error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "server_error", GENERIC_SERVER_ERROR)

    @app.exception_handler(PlaceShareError)
    async def handle_placeshare_error(request: Request, exc: PlaceShareError):
        logger.error("[%s] Unhandled application error: %s", request_id_var.get(""), exc.message)
        return _error_response(500, "server_error", GENERIC_SERVER_ERROR)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="PlaceShare API",
        description=(
            "Share places with pictures and geocoded addresses, and bookmark "
            "places shared by others."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Executed in reverse order of addition: RequestID runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_origins_list != ["*"],
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(places.router)
    app.include_router(users.router)
    app.include_router(files.router)
    app.include_router(health.router)

    return app


app = create_app()
