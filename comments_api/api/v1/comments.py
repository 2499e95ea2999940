"""Comment CRUD endpoints.

Reading and creating single comments is public. Updating, deleting and
listing require an activated account.
"""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm.exc import StaleDataError

from comments_api.api.deps import ActivatedUser, DbSession
from comments_api.core.errors import ConflictError, NotFoundError
from comments_api.core.pagination import Filters, calculate_metadata, comment_filters
from comments_api.core.responses import MessageResponse
from comments_api.repositories.comment_repository import CommentRepository
from comments_api.schemas.comment import (
    CommentEnvelope,
    CommentListEnvelope,
    CommentResponse,
    CreateCommentRequest,
    UpdateCommentRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=CommentListEnvelope, response_model_exclude_none=True)
async def list_comments(
    _identity: ActivatedUser,
    db: DbSession,
    filters: Annotated[Filters, Depends(comment_filters)],
    content: Annotated[str, Query(max_length=500)] = "",
    author: Annotated[str, Query(max_length=255)] = "",
) -> CommentListEnvelope:
    """List comments, filtered by substring and paginated."""
    comments, total = await CommentRepository.search(
        db, content=content, author=author, filters=filters
    )
    return CommentListEnvelope(
        comments=[CommentResponse.model_validate(c) for c in comments],
        metadata=calculate_metadata(total, filters.page, filters.page_size),
    )


@router.post("", status_code=201)
async def create_comment(
    body: CreateCommentRequest,
    response: Response,
    db: DbSession,
) -> CommentEnvelope:
    """Create a comment. Sets Location to the new resource."""
    comment = await CommentRepository.create(
        db, content=body.content, author=body.author
    )
    await db.commit()
    response.headers["Location"] = f"/v1/comments/{comment.id}"
    return CommentEnvelope(comment=CommentResponse.model_validate(comment))


@router.get("/{comment_id}")
async def get_comment(comment_id: uuid.UUID, db: DbSession) -> CommentEnvelope:
    """Fetch one comment."""
    comment = await CommentRepository.get(db, comment_id)
    if comment is None:
        raise NotFoundError("Comment", str(comment_id))
    return CommentEnvelope(comment=CommentResponse.model_validate(comment))


@router.patch("/{comment_id}")
async def update_comment(
    comment_id: uuid.UUID,
    body: UpdateCommentRequest,
    _identity: ActivatedUser,
    db: DbSession,
) -> CommentEnvelope:
    """Partially update a comment.

    Raises:
        NotFoundError: If the comment does not exist.
        ConflictError: EDIT_CONFLICT if it was changed concurrently.
    """
    comment = await CommentRepository.get(db, comment_id)
    if comment is None:
        raise NotFoundError("Comment", str(comment_id))

    try:
        comment = await CommentRepository.update(
            db, comment, content=body.content, author=body.author
        )
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        logger.info("Edit conflict on comment %s", comment_id)
        raise ConflictError(
            code="EDIT_CONFLICT",
            message="unable to update the record due to an edit conflict, please try again",
        ) from exc

    return CommentEnvelope(comment=CommentResponse.model_validate(comment))


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: uuid.UUID,
    _identity: ActivatedUser,
    db: DbSession,
) -> MessageResponse:
    """Delete a comment."""
    if not await CommentRepository.delete(db, comment_id):
        raise NotFoundError("Comment", str(comment_id))
    await db.commit()
    return MessageResponse(message="comment successfully deleted")
