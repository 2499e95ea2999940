"""Repository for Comment CRUD operations."""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from comments_api.core.pagination import Filters
from comments_api.models.comment import Comment

# Columns reachable through Filters.sort_column
_SORTABLE_COLUMNS = {
    "id": Comment.id,
    "author": Comment.author,
}


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CommentRepository:
    """Stateless repository for Comment table operations."""

    @staticmethod
    async def create(db: AsyncSession, *, content: str, author: str) -> Comment:
        """Insert a comment and return it with server-generated fields."""
        comment = Comment(content=content, author=author)
        db.add(comment)
        await db.flush()
        await db.refresh(comment)
        return comment

    @staticmethod
    async def get(db: AsyncSession, comment_id: uuid.UUID) -> Comment | None:
        """Fetch a comment by primary key."""
        return await db.get(Comment, comment_id)

    @staticmethod
    async def update(
        db: AsyncSession,
        comment: Comment,
        *,
        content: str | None = None,
        author: str | None = None,
    ) -> Comment:
        """Apply a partial update.

        Fields left as None are not touched. The version column is checked
        and bumped by the ORM.

        Raises:
            sqlalchemy.orm.exc.StaleDataError: If the row changed since it
                was loaded.
        """
        if content is not None:
            comment.content = content
        if author is not None:
            comment.author = author
        await db.flush()
        await db.refresh(comment)
        return comment

    @staticmethod
    async def delete(db: AsyncSession, comment_id: uuid.UUID) -> bool:
        """Delete a comment.

        Returns:
            True if a row was deleted, False if it did not exist.
        """
        comment = await db.get(Comment, comment_id)
        if comment is None:
            return False
        await db.delete(comment)
        await db.flush()
        return True

    @staticmethod
    async def search(
        db: AsyncSession,
        *,
        content: str = "",
        author: str = "",
        filters: Filters,
    ) -> tuple[list[Comment], int]:
        """List comments matching optional substring filters.

        Args:
            db: Async database session.
            content: Case-insensitive substring of the body ("" = any).
            author: Case-insensitive substring of the author ("" = any).
            filters: Pagination and sort parameters (already validated).

        Returns:
            Tuple of (comments on the requested page, total matching rows).
        """
        conditions = []
        if content:
            conditions.append(
                Comment.content.ilike(f"%{_escape_like(content)}%", escape="\\")
            )
        if author:
            conditions.append(
                Comment.author.ilike(f"%{_escape_like(author)}%", escape="\\")
            )

        count_stmt = select(func.count()).select_from(Comment).where(*conditions)
        total = (await db.execute(count_stmt)).scalar_one()

        column = _SORTABLE_COLUMNS[filters.sort_column]
        order = column.desc() if filters.sort_descending else column.asc()
        stmt = (
            select(Comment)
            .where(*conditions)
            .order_by(order, Comment.id.asc())
            .offset(filters.offset)
            .limit(filters.limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all()), total
