"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- The request admission chain (panic recovery, rate limiting, authentication)
- Security headers and CORS around the chain
- Exception handlers for API errors
- API v1 router mounting
- Background workers (limiter sweep, expired token cleanup) via lifespan
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from comments_api.api.v1.router import router as v1_router
from comments_api.core import database
from comments_api.core.config import settings
from comments_api.core.errors import APIError, InternalError, ValidationError
from comments_api.core.middleware import TokenResolver, install_request_chain
from comments_api.core.rate_limiting import (
    ClientRateLimiter,
    RateLimiterSweeper,
    limiter,
    rate_limit_exceeded_handler,
)
from comments_api.core.responses import error_response
from comments_api.services.token_cleanup_worker import ExpiredTokenCleanupWorker

logger = structlog.get_logger()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Headers added:
    - X-Frame-Options: Prevents clickjacking attacks
    - X-Content-Type-Options: Prevents MIME sniffing
    - Referrer-Policy: Controls referrer information leakage
    - Cache-Control: Prevents caching of caller-specific API responses
    - Content-Security-Policy: Restricts resource loading (API returns no HTML)
    - Strict-Transport-Security: Forces HTTPS (production only)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Responses depend on the bearer token; shared caches must not keep them
        if request.url.path.startswith("/v1/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )

        # HSTS only in production (assumes HTTPS via reverse proxy)
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors.

    Args:
        request: The incoming request.
        exc: The APIError that was raised.

    Returns:
        JSONResponse with error envelope and appropriate status code.
    """
    return error_response(exc)


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors from FastAPI.

    Converts FastAPI's 422 validation errors to a 400 VALIDATION_ERROR
    with field-level details.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    return error_response(
        ValidationError(
            "Request validation failed",
            details=[
                {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                for e in exc.errors()
            ],
        )
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for exceptions raised outside the admission chain.

    WHY: Never expose internal error details to clients. Log for debugging.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with generic error message (500).
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))
    return error_response(InternalError())


def create_app(
    *,
    rate_limiter: ClientRateLimiter | None = None,
    token_resolver: TokenResolver | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    WHY FACTORY FUNCTION:
    - Enables testing with different configurations
    - Clear separation between app creation and startup
    - Standard FastAPI pattern

    Args:
        rate_limiter: Global per-client limiter. Defaults to one built
            from settings.
        token_resolver: Bearer token resolver for the authentication
            stage. Defaults to a token store lookup.

    Returns:
        Configured FastAPI application instance.
    """
    logging.getLogger("comments_api").setLevel(settings.log_level.upper())

    if rate_limiter is None:
        rate_limiter = ClientRateLimiter.from_settings(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        sweeper = RateLimiterSweeper(
            rate_limiter, interval_seconds=settings.limiter_sweep_interval_seconds
        )
        cleanup = ExpiredTokenCleanupWorker(
            database.async_session_factory,
            interval_seconds=settings.token_cleanup_interval_seconds,
        )
        sweeper.start()
        cleanup.start()
        logger.info(
            "Application started",
            environment=settings.environment,
            version=settings.app_version,
        )
        try:
            yield
        finally:
            await cleanup.stop()
            await sweeper.stop()
            await database.engine.dispose()
            logger.info("Application stopped")

    app = FastAPI(
        title="Comments API",
        version=settings.app_version,
        description="Comments service with token authentication and rate limiting",
        lifespan=lifespan,
    )

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # Admission chain innermost, then security headers so that 429/500 from
    # the chain carry them too. CORS must run first to handle preflight
    # requests, so add it last.
    install_request_chain(app, rate_limiter=rate_limiter, resolver=token_resolver)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
        expose_headers=["Location", "Retry-After"],
    )

    # Register exception handlers
    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    # Per-route throttles (slowapi) and the global limiter, reachable from tests
    app.state.limiter = limiter
    app.state.rate_limiter = rate_limiter

    app.include_router(v1_router, prefix="/v1")

    return app


# Create the application instance
# Used by uvicorn: uvicorn comments_api.main:app
app = create_app()
