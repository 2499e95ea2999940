"""Comment request/response schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from comments_api.core.pagination import PaginationMeta


class CreateCommentRequest(BaseModel):
    """Request body for POST /comments."""

    model_config = ConfigDict(extra="forbid")

    content: str = Field(min_length=1, max_length=10000)
    author: str = Field(min_length=1, max_length=255)


class UpdateCommentRequest(BaseModel):
    """Request body for PATCH /comments/{id}.

    Omitted fields are left unchanged; at least one must be given.
    """

    model_config = ConfigDict(extra="forbid")

    content: str | None = Field(default=None, min_length=1, max_length=10000)
    author: str | None = Field(default=None, min_length=1, max_length=255)

    @model_validator(mode="after")
    def check_not_empty(self) -> "UpdateCommentRequest":
        """Reject a patch that changes nothing."""
        if self.content is None and self.author is None:
            msg = "at least one of content or author must be provided"
            raise ValueError(msg)
        return self


class CommentResponse(BaseModel):
    """Public view of a comment."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    content: str
    author: str
    version: int
    created_at: datetime


class CommentEnvelope(BaseModel):
    """{"comment": {...}}"""

    comment: CommentResponse


class CommentListEnvelope(BaseModel):
    """{"comments": [...], "@metadata": {...}}"""

    model_config = ConfigDict(populate_by_name=True)

    comments: list[CommentResponse]
    metadata: PaginationMeta = Field(alias="@metadata")
