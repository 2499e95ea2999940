"""User model - owner of tokens and comment moderation rights."""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from comments_api.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from comments_api.models.token import Token

_DEFAULT_UUID = text("gen_random_uuid()")


class User(Base, TimestampMixin):
    """Registered user account.

    Attributes:
        id: UUID primary key.
        name: Display name.
        email: Unique email address, stored lowercase.
        password_hash: bcrypt hash.
        activated: Whether the owner confirmed their email address.
            Protected resources require an activated account.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
    )
    name: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    activated: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )

    tokens: Mapped[list["Token"]] = relationship(
        "Token",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
