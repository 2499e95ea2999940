"""User registration and activation endpoints.

Security considerations:
- register: bcrypt hash in a worker thread, email uniqueness, activation
  email sent as a background task after the response
- activate: single-use token consumed atomically; every failure mode
  yields the same 400
"""

from datetime import timedelta

from fastapi import APIRouter, BackgroundTasks, Request
from sqlalchemy.exc import IntegrityError

from comments_api.api.deps import DbSession
from comments_api.core.config import settings
from comments_api.core.credentials import (
    hash_password_bounded,
    is_well_formed_token,
    validate_password_strength,
)
from comments_api.core.email import send_email
from comments_api.core.errors import ConflictError, ValidationError
from comments_api.core.rate_limiting import limiter
from comments_api.models.token import TokenScope
from comments_api.repositories.user_repository import UserRepository
from comments_api.schemas.user import (
    ActivateUserRequest,
    RegisterUserRequest,
    UserEnvelope,
    UserResponse,
)
from comments_api.services.token_service import TokenService

_INVALID_ACTIVATION_TOKEN_MSG = "invalid or expired activation token"  # nosec B105

router = APIRouter()


# ===================================================================
# POST /users
# ===================================================================


@router.post("", status_code=201)
@limiter.limit(settings.rate_limit_registration)
async def register_user(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RegisterUserRequest,
    background_tasks: BackgroundTasks,
    db: DbSession,
) -> UserEnvelope:
    """Register a new, not yet activated user.

    Issues an activation token and mails it to the user. The account can
    authenticate immediately but cannot reach activated-only resources
    until PUT /users/activated succeeds.
    """
    validate_password_strength(body.password)
    password_hash = await hash_password_bounded(body.password)

    try:
        user = await UserRepository.create(
            db, name=body.name, email=body.email, password_hash=password_hash
        )
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(
            code="EMAIL_ALREADY_EXISTS",
            message="a user with this email address already exists",
        ) from exc

    issued = await TokenService(db).issue(
        user.id,
        TokenScope.ACTIVATION,
        timedelta(hours=settings.activation_token_ttl_hours),
    )
    await db.commit()

    background_tasks.add_task(
        send_email,
        recipient=user.email,
        template_key="user_welcome",
        data={
            "user_id": str(user.id),
            "activation_token": issued.plaintext,
            "ttl_hours": settings.activation_token_ttl_hours,
        },
    )

    return UserEnvelope(user=UserResponse.model_validate(user))


# ===================================================================
# PUT /users/activated
# ===================================================================


@router.put("/activated")
async def activate_user(
    body: ActivateUserRequest,
    db: DbSession,
) -> UserEnvelope:
    """Activate the account that owns an activation token.

    The token is deleted as it is checked, so it works once. All other
    activation tokens of the user are revoked afterwards.
    """
    if not is_well_formed_token(body.token):
        raise ValidationError(_INVALID_ACTIVATION_TOKEN_MSG)

    tokens = TokenService(db)
    user_id = await tokens.consume(body.token, TokenScope.ACTIVATION)
    if user_id is None:
        raise ValidationError(_INVALID_ACTIVATION_TOKEN_MSG)

    user = await UserRepository.activate(db, user_id)
    if user is None:
        raise ValidationError(_INVALID_ACTIVATION_TOKEN_MSG)

    await tokens.revoke_all(user_id, TokenScope.ACTIVATION)
    await db.commit()

    return UserEnvelope(user=UserResponse.model_validate(user))
