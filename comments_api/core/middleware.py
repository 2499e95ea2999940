"""Request admission chain: panic recovery, rate limiting, authentication.

Every request passes the stages outermost first:

    RecoverPanicMiddleware -> RateLimitMiddleware -> AuthenticationMiddleware -> router

A stage either passes the request on or answers it itself with the
standard error envelope. Stages run outside FastAPI's exception handlers,
so they render errors with error_response() instead of raising.

Rate limiting runs before authentication: rejected traffic never costs a
token lookup.
"""

from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from comments_api.core.credentials import is_well_formed_token
from comments_api.core.errors import (
    InternalError,
    InvalidCredentialsError,
    MalformedCredentialError,
    PersistenceError,
    RateLimitedError,
)
from comments_api.core.identity import ANONYMOUS, CallerIdentity, set_identity
from comments_api.core.rate_limiting import ClientRateLimiter, client_key
from comments_api.core.responses import error_response

logger = structlog.get_logger()

TokenResolver = Callable[[str], Awaitable[CallerIdentity | None]]

_BEARER_PREFIX = "Bearer "


class RecoverPanicMiddleware(BaseHTTPMiddleware):
    """Turn any unhandled exception from inner stages into a 500.

    The failure is logged with its traceback, the client gets the generic
    INTERNAL_ERROR envelope, and the connection is marked for closing.
    Other in-flight requests are unaffected.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Run the inner chain, recovering from unhandled exceptions."""
        try:
            return await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled exception",
                method=request.method,
                path=request.url.path,
            )
            return error_response(InternalError(), headers={"Connection": "close"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Admit or reject requests with a per-client token bucket.

    Args:
        app: The next ASGI application in the chain.
        rate_limiter: Shared limiter state.
    """

    def __init__(self, app: ASGIApp, *, rate_limiter: ClientRateLimiter) -> None:
        super().__init__(app)
        self.rate_limiter = rate_limiter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Reject with 429 when the client's bucket is empty."""
        key = client_key(request)
        decision = self.rate_limiter.check(key)
        if not decision.allowed:
            logger.info("Rate limit exceeded", client=key, path=request.url.path)
            return error_response(RateLimitedError(retry_after=decision.retry_after))
        return await call_next(request)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Resolve the Authorization header to a CallerIdentity.

    Outcomes:
    - No Authorization header: ANONYMOUS, request continues
    - Header not "Bearer <token>" or token not well formed: 401
    - Token does not resolve (unknown, expired, wrong scope): 401
    - Token resolves: identity attached, request continues

    Every response carries ``Vary: Authorization`` because its content
    depends on the caller.

    Args:
        app: The next ASGI application in the chain.
        resolver: Async callable mapping a token plaintext to an identity
            (or None). Defaults to a token store lookup.
    """

    def __init__(self, app: ASGIApp, *, resolver: TokenResolver | None = None) -> None:
        super().__init__(app)
        if resolver is None:
            from comments_api.services.token_service import (
                resolve_authentication_token,
            )

            resolver = resolve_authentication_token
        self.resolver = resolver

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Attach the caller identity, or reject bad credentials."""
        vary = {"Vary": "Authorization"}
        header = request.headers.get("authorization")

        if header is None:
            set_identity(request, ANONYMOUS)
        else:
            if not header.startswith(_BEARER_PREFIX):
                return error_response(MalformedCredentialError(), headers=vary)
            token = header[len(_BEARER_PREFIX) :].strip()
            if not token or not is_well_formed_token(token):
                return error_response(MalformedCredentialError(), headers=vary)

            try:
                identity = await self.resolver(token)
            except PersistenceError as exc:
                logger.error(
                    "Token resolution failed",
                    operation=exc.operation,
                    path=request.url.path,
                )
                return error_response(exc, headers=vary)

            if identity is None:
                return error_response(InvalidCredentialsError(), headers=vary)
            set_identity(request, identity)

        response = await call_next(request)
        response.headers["Vary"] = "Authorization"
        return response


def install_request_chain(
    app: FastAPI,
    *,
    rate_limiter: ClientRateLimiter,
    resolver: TokenResolver | None = None,
) -> None:
    """Add the admission stages to an application.

    Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    Authentication is added first (innermost), panic recovery last
    (outermost).

    Args:
        app: Application to wrap.
        rate_limiter: Limiter consulted for every request.
        resolver: Token resolver for the authentication stage.
    """
    app.add_middleware(AuthenticationMiddleware, resolver=resolver)
    app.add_middleware(RateLimitMiddleware, rate_limiter=rate_limiter)
    app.add_middleware(RecoverPanicMiddleware)
