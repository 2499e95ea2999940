"""SQLAlchemy ORM models.

All models are exported from this module for convenient imports:
    from comments_api.models import User, Token, Comment

- user.py: User
- token.py: Token, TokenScope (hashed bearer tokens)
- comment.py: Comment
"""

from comments_api.models.base import Base, TimestampMixin
from comments_api.models.comment import Comment
from comments_api.models.token import Token, TokenScope
from comments_api.models.user import User

__all__ = [
    "Base",
    "Comment",
    "TimestampMixin",
    "Token",
    "TokenScope",
    "User",
]
