"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- Lifespan: logging setup, database pool, token cleanup worker
- Exception handlers for API errors
- API v1 router mounting
- Health check endpoint
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.api.v1.router import router as v1_router
from app.core.config import settings
from app.core.database import Database
from app.core.errors import APIError, InternalError
from app.core.logging import setup_logging
from app.core.rate_limiting import limiter, rate_limit_exceeded_handler
from app.core.responses import ErrorDetail, ErrorResponse
from app.services.token_cleanup_worker import TokenCleanupWorker

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the process-wide resources.

    Startup: configure logging, open the connection pool, start the token
    cleanup worker. Shutdown: stop the worker, then drain the pool.
    """
    setup_logging(settings)

    database = Database.from_settings(settings)
    app.state.database = database

    worker: TokenCleanupWorker | None = None
    if settings.token_cleanup_enabled:
        worker = TokenCleanupWorker(
            database.session_factory,
            interval_seconds=settings.token_cleanup_interval_seconds,
        )
        worker.start()

    logger.info("Account service started", environment=settings.environment)
    try:
        yield
    finally:
        if worker is not None:
            await worker.stop()
        await database.dispose()
        logger.info("Account service stopped")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    The service only serves JSON, so responses are never framed, sniffed,
    cached, or allowed to load resources. HSTS is added in production only
    (HTTPS terminates at the reverse proxy).
    """

    _STATIC_HEADERS = {
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
        "Cross-Origin-Opener-Policy": "same-origin",
        "Cross-Origin-Resource-Policy": "same-origin",
    }

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)
        response.headers.update(self._STATIC_HEADERS)

        # Session tokens and identities must not be cached
        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Translate an APIError into the error envelope.

    Args:
        request: The incoming request.
        exc: The APIError that was raised.

    Returns:
        JSONResponse with error envelope and the error's status code.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
            )
        ).model_dump(),
    )


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert FastAPI request validation errors to a 400 envelope.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details=[
                    {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                    for e in exc.errors()
                ],
            )
        ).model_dump(),
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions (storage failures included).

    The exception is logged; the client only sees a generic 500.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with generic error message (500).
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))

    return api_error_handler(request, InternalError())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Account Service API",
        version="1.0.0",
        description="User accounts, sessions, activation and password reset",
        lifespan=lifespan,
    )

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # CORS must run first to handle preflight requests, so add it last.
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization", "X-Request-ID"],
    )

    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.state.limiter = limiter

    app.include_router(v1_router, prefix="/api/v1")

    # Health check endpoint (outside versioned API)
    @app.get("/health")
    def health_check() -> dict:
        """Liveness check.

        Returns:
            {"status": "healthy"} if the process is serving requests.
        """
        return {"status": "healthy"}

    return app


# Used by uvicorn: uvicorn app.main:app
app = create_app()
