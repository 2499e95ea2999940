"""Pydantic request/response schemas for API endpoints."""

from comments_api.schemas.comment import (
    CommentEnvelope,
    CommentListEnvelope,
    CommentResponse,
    CreateCommentRequest,
    UpdateCommentRequest,
)
from comments_api.schemas.token import (
    AuthenticationToken,
    AuthenticationTokenEnvelope,
    CreateAuthenticationTokenRequest,
)
from comments_api.schemas.user import (
    ActivateUserRequest,
    RegisterUserRequest,
    UserEnvelope,
    UserResponse,
)

__all__ = [
    # Comments
    "CommentEnvelope",
    "CommentListEnvelope",
    "CommentResponse",
    "CreateCommentRequest",
    "UpdateCommentRequest",
    # Tokens
    "AuthenticationToken",
    "AuthenticationTokenEnvelope",
    "CreateAuthenticationTokenRequest",
    # Users
    "ActivateUserRequest",
    "RegisterUserRequest",
    "UserEnvelope",
    "UserResponse",
]
