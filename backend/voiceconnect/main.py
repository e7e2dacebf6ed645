"""
VoiceConnect Backend: FastAPI Application Factory
===================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires middleware, exception handlers and routers;
       uvicorn serves the module-level `app` (uvicorn voiceconnect.main:app).

Application Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                     FastAPI App                         │
    │                                                         │
    │  Middleware: RequestID → RateLimit → Logging → GZip → CORS
    │                                                         │
    │  Routers:                                               │
    │    /api/auth  /api/users  /api/connections  /api/posts  │
    │    /api/comments  /api/contact  /api/notifications      │
    │    /health  /api                                        │
    │                                                         │
    │  Exception handlers → {success: false, message, error,  │
    │                        request_id, errors?, details?}   │
    └─────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, config validation (logged, not fatal), upload dir
    Shutdown: flush the notification queue, dispose the engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from voiceconnect import __version__
from voiceconnect.config import settings
from voiceconnect.database import dispose_engine
from voiceconnect.exceptions import (
    CircuitBreakerOpenError,
    DatabaseError,
    RateLimitExceededError,
    StorageServiceError,
    ValidationError,
    VoiceConnectError,
)
from voiceconnect.middleware.logging import RequestLoggingMiddleware
from voiceconnect.middleware.rate_limit import RateLimitMiddleware
from voiceconnect.middleware.request_id import RequestIDMiddleware, request_id_var
from voiceconnect.routes import (
    auth,
    comments,
    connections,
    contact,
    health,
    notifications,
    posts,
    users,
)
from voiceconnect.services.notification_service import notification_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Chatty at INFO: one line per query, per request, per discovery lookup
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("VoiceConnect Backend %s starting up (%s)", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Not fatal: health checks and non-Drive routes still work
        logger.error("Configuration error: %s", str(e))

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Upload spool directory: %s", upload_dir.resolve())
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("VoiceConnect Backend shutting down...")
    if notification_service.pending:
        logger.info("Flushing %d queued notifications", notification_service.pending)
    await notification_service.drain()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    errors: Optional[list] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "success": False,
        "message": message,
        "error": error,
        "request_id": request_id_var.get(""),
    }
    if errors is not None:
        content["errors"] = errors
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Maps every error to the `{success: false, ...}` envelope.

        VoiceConnectError        → its own status_code / error_code
        RequestValidationError   → 400 "Validation failed" + per-field errors
        IntegrityError           → 400 "Resource already exists"
        Starlette 404            → 404 "Route not found: <path>"
        Exception                → 500, details only in the server log
    """

    @app.exception_handler(VoiceConnectError)
    async def handle_app_error(request: Request, exc: VoiceConnectError):
        rid = request_id_var.get("")
        details: Dict[str, Any] = {}
        headers: Dict[str, str] = {}
        message = exc.message

        if isinstance(exc, ValidationError) and exc.field:
            details["field"] = exc.field
        if isinstance(exc, RateLimitExceededError):
            details["retry_after"] = exc.retry_after
            headers["Retry-After"] = str(exc.retry_after)
        if isinstance(exc, CircuitBreakerOpenError):
            details["recovery_time"] = exc.recovery_time
            headers["Retry-After"] = str(exc.recovery_time)
        if isinstance(exc, StorageServiceError) and exc.retry_after:
            details["retry_after"] = exc.retry_after
            headers["Retry-After"] = str(exc.retry_after)

        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
            if isinstance(exc, DatabaseError):
                message = "An internal error occurred. Please try again later."
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)

        return _error_response(
            exc.status_code, exc.error_code, message, details=details, headers=headers or None
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        logger.warning("[%s] Request validation failed: %s", request_id_var.get(""), errors)
        return _error_response(400, "validation_error", "Validation failed", errors=errors)

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError):
        logger.warning("[%s] Integrity error: %s", request_id_var.get(""), str(exc.orig))
        return _error_response(400, "duplicate_resource", "Resource already exists")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error_response(404, "not_found", f"Route not found: {request.url.path}")
        return _error_response(
            exc.status_code,
            "http_error",
            str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

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
        title="VoiceConnect API",
        description=(
            "Audio-first social network: short voice posts stored in each user's "
            "Google Drive, threaded audio comments, connections and contact reveal."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Executes in reverse order of addition: RequestID runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(connections.router)
    app.include_router(posts.router)
    app.include_router(comments.router)
    app.include_router(contact.router)
    app.include_router(notifications.router)
    app.include_router(health.router)

    return app


app = create_app()
