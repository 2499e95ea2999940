"""Authentication token request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class CreateAuthenticationTokenRequest(BaseModel):
    """Request body for POST /tokens/authentication."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class AuthenticationToken(BaseModel):
    """Issued bearer token. The plaintext is shown exactly once."""

    token: str
    expiry: datetime


class AuthenticationTokenEnvelope(BaseModel):
    """{"authentication_token": {...}}"""

    authentication_token: AuthenticationToken
