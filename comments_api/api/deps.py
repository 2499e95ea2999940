"""Shared dependencies for API endpoints.

Authorization gate: endpoints declare the caller state they need through
the type aliases below. The identity itself was resolved by
AuthenticationMiddleware before routing; these dependencies only read it.

WHY DEPENDENCY INJECTION:
- Consistent authorization across all endpoints
- Requirements are visible in the handler signature
- Testable by overriding get_identity
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from comments_api.core.database import get_db
from comments_api.core.errors import AuthenticationRequiredError, NotActivatedError
from comments_api.core.identity import CallerIdentity, get_request_identity


def get_identity(request: Request) -> CallerIdentity:
    """Get the caller identity attached to the request.

    Args:
        request: HTTP request (injected by FastAPI).

    Returns:
        Resolved identity, ANONYMOUS when no token was presented.
    """
    return get_request_identity(request)


def require_authenticated_user(
    identity: Annotated[CallerIdentity, Depends(get_identity)],
) -> CallerIdentity:
    """Require a resolved (non-anonymous) caller.

    Raises:
        AuthenticationRequiredError: 401 for anonymous callers.
    """
    if identity.is_anonymous:
        raise AuthenticationRequiredError()
    return identity


def require_activated_user(
    identity: Annotated[CallerIdentity, Depends(require_authenticated_user)],
) -> CallerIdentity:
    """Require a resolved caller with an activated account.

    Anonymous callers fail the inner check first, so they get 401, never 403.

    Raises:
        AuthenticationRequiredError: 401 for anonymous callers.
        NotActivatedError: 403 for callers whose account is not activated.
    """
    if not identity.is_activated:
        raise NotActivatedError()
    return identity


# Type aliases for cleaner endpoint signatures
DbSession = Annotated[AsyncSession, Depends(get_db)]
Identity = Annotated[CallerIdentity, Depends(get_identity)]
AuthenticatedUser = Annotated[CallerIdentity, Depends(require_authenticated_user)]
ActivatedUser = Annotated[CallerIdentity, Depends(require_activated_user)]
