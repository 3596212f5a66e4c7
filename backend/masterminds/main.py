"""
MasterMinds Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn masterminds.main:app).

Application Architecture:
    ┌───────────────────────────────────────────────────────────┐
    │                       FastAPI App                         │
    │                                                           │
    │  Middleware Chain:                                        │
    │  ┌────────────┐ ┌────────┐ ┌─────────┐ ┌──────────────┐   │
    │  │ Rate Limit │→│ Req ID │→│ Logging │→│ Sec. Headers │   │
    │  └────────────┘ └────────┘ └─────────┘ └──────────────┘   │
    │                                                           │
    │  Routes (/api and /api/v1):                               │
    │  ┌─────────────┐ ┌───────────────────┐ ┌──────────────┐   │
    │  │ /auth/*     │ │ /applications/*   │ │ /health      │   │
    │  └─────────────┘ └───────────────────┘ └──────────────┘   │
    │                                                           │
    │  Exception Handlers:                                      │
    │  ┌─────────────────────────────────────────────────────┐  │
    │  │ MasterMindsError→own status │ schema→400 │ 404 │ 500 │  │
    │  └─────────────────────────────────────────────────────┘  │
    └───────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (logged, not fatal)
    3. Select the storage backend (database, or in-memory fallback)

    Shutdown:
    1. Dispose database engine (close all connections)
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from masterminds import __version__
from masterminds.config import settings
from masterminds.database import dispose_engine
from masterminds.exceptions import (
    AccountLockedError,
    MasterMindsError,
    RateLimitExceededError,
    StorageError,
    ValidationError,
)
from masterminds.middleware.logging import RequestLoggingMiddleware
from masterminds.middleware.rate_limit import RateLimitMiddleware
from masterminds.middleware.request_id import RequestIDMiddleware, request_id_var
from masterminds.middleware.security_headers import SecurityHeadersMiddleware
from masterminds.routes import applications, auth, health
from masterminds.storage import storage

logger = logging.getLogger(__name__)

API_PREFIXES = ("/api", "/api/v1")


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries log every operation at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("MasterMinds Backend %s starting up (%s)...", __version__, settings.environment)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    # Raises StorageError when storage_backend=database and the probe fails
    mode = await storage.connect()
    logger.info("Storage backend: %s", mode)

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("MasterMinds Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def validation_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    """Flatten Pydantic's error list into {field, message, value} entries."""
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ())]
        if location and location[0] in ("body", "query", "path", "header", "cookie"):
            location = location[1:]
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append(
            {
                "field": ".".join(location) or "body",
                "message": message,
                "value": jsonable_encoder(error.get("input")),
            }
        )
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy:
        MasterMindsError         → the exception's own status and code
        RequestValidationError   → 400 VALIDATION_ERROR (INVALID_JSON for bad bodies)
        404 from routing         → 404 ENDPOINT_NOT_FOUND
        other HTTPException      → its status, same envelope
        Exception (fallback)     → 500 INTERNAL_ERROR

    Stack traces and storage internals are logged server-side only.
    """

    @app.exception_handler(MasterMindsError)
    async def handle_application_error(request: Request, exc: MasterMindsError):
        rid = request_id_var.get("")
        if isinstance(exc, StorageError):
            logger.error("[%s] Storage error: %s | Context: %s", rid, exc.message, exc.context)
        elif exc.status_code >= 500:
            logger.error("[%s] %s: %s", rid, exc.code, exc.message)
        else:
            logger.info("[%s] %s %s → %s", rid, request.method, request.url.path, exc.code)

        headers = {}
        if isinstance(exc, RateLimitExceededError):
            headers.update(exc.headers)
        if isinstance(exc, (RateLimitExceededError, AccountLockedError)):
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(rid),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        rid = request_id_var.get("")
        if any(error.get("type") == "json_invalid" for error in exc.errors()):
            error = ValidationError("Invalid JSON format in request body", code="INVALID_JSON")
        else:
            error = ValidationError("Validation failed", errors=validation_errors(exc))
        logger.info("[%s] %s %s → %s", rid, request.method, request.url.path, error.code)
        return JSONResponse(status_code=error.status_code, content=error.to_response(rid))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        rid = request_id_var.get("")
        if exc.status_code == 404:
            error = MasterMindsError(
                f"Endpoint {request.method} {request.url.path} not found",
                code="ENDPOINT_NOT_FOUND",
            )
            error.error = "not_found"
        else:
            error = MasterMindsError(str(exc.detail), code="HTTP_ERROR")
            error.error = "http_error"
        return JSONResponse(
            status_code=exc.status_code,
            content=error.to_response(rid),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        message = (
            str(exc)
            if settings.is_development
            else "An unexpected error occurred. Please try again or contact support."
        )
        return JSONResponse(
            status_code=500,
            content=MasterMindsError(message).to_response(rid),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="MasterMinds API",
        description=(
            "Accounts and program applications for the MasterMinds learning platform: "
            "registration, login, bearer tokens and application lifecycle management."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition:
    # RateLimit → RequestID → Logging → SecurityHeaders → GZip → CORS

    cors = {
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization", "X-Requested-With", "X-Request-ID"],
        "expose_headers": [
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
    }
    if settings.is_development:
        # Any origin is reflected back while developing
        app.add_middleware(CORSMiddleware, allow_origin_regex=".*", **cors)
    else:
        app.add_middleware(CORSMiddleware, allow_origins=settings.cors_origins_list, **cors)

    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    for prefix in API_PREFIXES:
        app.include_router(health.router, prefix=prefix, include_in_schema=False)
        app.include_router(auth.router, prefix=prefix, include_in_schema=prefix == "/api")
        app.include_router(applications.router, prefix=prefix, include_in_schema=prefix == "/api")

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "masterminds.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        log_level=settings.log_level.lower(),
    )


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `masterminds.main:app` to be importable
app = create_app()
