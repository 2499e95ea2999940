"""Comment model - the public resource of the API."""

import uuid

from sqlalchemy import Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from comments_api.models.base import Base, TimestampMixin

_DEFAULT_UUID = text("gen_random_uuid()")


class Comment(Base, TimestampMixin):
    """A comment left by an author.

    Attributes:
        id: UUID primary key.
        content: Comment body.
        author: Free-text author name.
        version: Optimistic concurrency counter, bumped on every update.
            A concurrent update against a stale version raises
            sqlalchemy.orm.exc.StaleDataError.
    """

    __tablename__ = "comments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    content: Mapped[str] = mapped_column(
        Text(),
        nullable=False,
    )
    author: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}
