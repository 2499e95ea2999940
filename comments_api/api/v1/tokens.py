"""Authentication token endpoints.

Security considerations:
- create: constant-time comparison via DUMMY_HASH prevents user enumeration;
  unknown email and wrong password yield the same 401
- create: per-route throttle on top of the global limiter
- revoke: deletes every authentication token of the caller (logout)
"""

from datetime import timedelta

from fastapi import APIRouter, Request

from comments_api.api.deps import AuthenticatedUser, DbSession
from comments_api.core.config import settings
from comments_api.core.credentials import DUMMY_HASH, verify_password_bounded
from comments_api.core.errors import InvalidCredentialsError
from comments_api.core.rate_limiting import limiter
from comments_api.core.responses import MessageResponse
from comments_api.models.token import TokenScope
from comments_api.repositories.user_repository import UserRepository
from comments_api.schemas.token import (
    AuthenticationToken,
    AuthenticationTokenEnvelope,
    CreateAuthenticationTokenRequest,
)
from comments_api.services.token_service import TokenService

router = APIRouter()


# ===================================================================
# POST /tokens/authentication
# ===================================================================


@router.post("/authentication", status_code=201)
@limiter.limit(settings.rate_limit_token_creation)
async def create_authentication_token(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: CreateAuthenticationTokenRequest,
    db: DbSession,
) -> AuthenticationTokenEnvelope:
    """Exchange email + password for a bearer token.

    Unauthenticated. The token is valid for
    settings.authentication_token_ttl_hours.
    """
    user = await UserRepository.get_by_email(db, body.email)

    if user is None:
        # Security: always perform bcrypt comparison to prevent timing attacks.
        # DUMMY_HASH ensures consistent response time regardless of user existence.
        await verify_password_bounded(body.password, DUMMY_HASH)
        raise InvalidCredentialsError()

    if not await verify_password_bounded(body.password, user.password_hash):
        raise InvalidCredentialsError()

    issued = await TokenService(db).issue(
        user.id,
        TokenScope.AUTHENTICATION,
        timedelta(hours=settings.authentication_token_ttl_hours),
    )
    await db.commit()

    return AuthenticationTokenEnvelope(
        authentication_token=AuthenticationToken(
            token=issued.plaintext, expiry=issued.expiry
        )
    )


# ===================================================================
# DELETE /tokens/authentication
# ===================================================================


@router.delete("/authentication")
async def revoke_authentication_tokens(
    identity: AuthenticatedUser,
    db: DbSession,
) -> MessageResponse:
    """Revoke all authentication tokens of the caller.

    The token used for this request stops working too.
    """
    assert identity.user_id is not None, "authenticated identity must have user_id"
    await TokenService(db).revoke_all(identity.user_id, TokenScope.AUTHENTICATION)
    await db.commit()
    return MessageResponse(message="authentication tokens successfully revoked")
