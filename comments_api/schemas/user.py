"""User request/response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterUserRequest(BaseModel):
    """Request body for POST /users."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=500)
    email: EmailStr
    # Byte length (8..72) is checked by validate_password_strength
    password: str = Field(min_length=1, max_length=128)


class ActivateUserRequest(BaseModel):
    """Request body for PUT /users/activated."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=64)


class UserResponse(BaseModel):
    """Public view of a user. Never includes the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    activated: bool
    created_at: datetime


class UserEnvelope(BaseModel):
    """{"user": {...}}"""

    user: UserResponse
