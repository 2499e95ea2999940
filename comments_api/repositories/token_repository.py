"""Repository for Token persistence.

Tokens are stored as hashed values with owner, scope and expiry. Rows are
inserted, looked up by hash, and deleted (revocation, single-use
consumption, expiry cleanup). They are never updated.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from comments_api.models.token import Token, TokenScope


class TokenRepository:
    """Stateless repository for tokens table operations.

    All methods are static with no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        token_hash: str,
        user_id: uuid.UUID,
        scope: TokenScope,
        expiry: datetime,
    ) -> Token:
        """Store a new token record.

        Args:
            db: Async database session.
            token_hash: SHA-256 hex digest of the plaintext.
            user_id: Owner of the token.
            scope: Operation the token authorizes.
            expiry: Absolute expiry timestamp.

        Returns:
            Created Token.
        """
        token = Token(
            hash=token_hash,
            user_id=user_id,
            scope=scope.value,
            expiry=expiry,
        )
        db.add(token)
        await db.flush()
        return token

    @staticmethod
    async def get_by_hash(db: AsyncSession, token_hash: str) -> Token | None:
        """Look up a token by digest, with its owner loaded.

        Scope and expiry are NOT filtered here; the caller decides
        validity so every failure collapses into one outcome.

        Args:
            db: Async database session.
            token_hash: SHA-256 hex digest of the plaintext.

        Returns:
            Token with ``user`` populated, or None.
        """
        stmt = (
            select(Token)
            .options(joinedload(Token.user))
            .where(Token.hash == token_hash)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def consume(
        db: AsyncSession,
        *,
        token_hash: str,
        scope: TokenScope,
        now: datetime | None = None,
    ) -> uuid.UUID | None:
        """Atomically delete a live token and return its owner.

        DELETE ... RETURNING makes single-use tokens race-free: of two
        concurrent consumers, only one gets the row back.

        Args:
            db: Async database session.
            token_hash: SHA-256 hex digest of the plaintext.
            scope: Required scope.
            now: Reference time for the expiry check. Defaults to now (UTC).

        Returns:
            Owner UUID if a matching unexpired token was deleted, None otherwise.
        """
        stmt = (
            delete(Token)
            .where(
                Token.hash == token_hash,
                Token.scope == scope.value,
                Token.expiry > (now or datetime.now(UTC)),
            )
            .returning(Token.user_id)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def delete_all_for_user(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        scope: TokenScope,
    ) -> int:
        """Delete every token of one owner and scope.

        Args:
            db: Async database session.
            user_id: Owner of the tokens.
            scope: Scope to revoke.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(Token).where(
            Token.user_id == user_id,
            Token.scope == scope.value,
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count

    @staticmethod
    async def delete_expired(db: AsyncSession) -> int:
        """Delete all expired tokens (periodic cleanup).

        Args:
            db: Async database session.

        Returns:
            Number of deleted rows.
        """
        stmt = delete(Token).where(Token.expiry <= datetime.now(UTC))
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
