"""Token model - hashed bearer tokens.

Only the SHA-256 digest of a token is stored; the plaintext is returned
to the client once at issuance and never persisted. Rows are never
updated: they are inserted, read and deleted.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from comments_api.models.base import Base

if TYPE_CHECKING:
    from comments_api.models.user import User


class TokenScope(str, Enum):
    """Operation a token may authorize."""

    AUTHENTICATION = "authentication"
    ACTIVATION = "activation"


class Token(Base):
    """Issued bearer token.

    Attributes:
        hash: Hex SHA-256 digest of the plaintext (primary key).
        user_id: Owner of the token.
        scope: TokenScope value the token is valid for.
        expiry: Absolute timestamp after which the token is invalid.
    """

    __tablename__ = "tokens"
    __table_args__ = (Index("ix_tokens_user_id_scope", "user_id", "scope"),)

    hash: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    scope: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    expiry: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="tokens")
