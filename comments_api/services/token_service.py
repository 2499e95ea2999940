"""Token lifecycle: issue, authenticate, consume, revoke.

Tokens are opaque 128-bit random strings. Only their SHA-256 digest is
persisted (see TokenRepository); the plaintext leaves the server exactly
once, in the response to the issuing request.

Every store round-trip is bounded by settings.persistence_timeout_seconds.
A timeout or database error surfaces as PersistenceError (generic 500), so
the request fails closed instead of hanging.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from comments_api.core import database
from comments_api.core.config import settings
from comments_api.core.credentials import (
    generate_token_plaintext,
    hash_token,
    token_digests_match,
)
from comments_api.core.errors import PersistenceError
from comments_api.core.identity import CallerIdentity
from comments_api.models.token import TokenScope
from comments_api.repositories.token_repository import TokenRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class IssuedToken:
    """Plaintext token handed back to the client at issuance.

    Attributes:
        plaintext: The bearer token. Never stored server-side.
        expiry: When the token stops being accepted.
    """

    plaintext: str
    expiry: datetime


class TokenService:
    """Issues and resolves bearer tokens through TokenRepository.

    Holds no locks and no state besides the session: concurrency is left
    to the database's row-level guarantees.

    Args:
        db: Async database session. The caller owns commit/rollback.
        clock: Returns the current UTC time. Injected for tests.
        timeout_seconds: Bound on each store call. Defaults to
            settings.persistence_timeout_seconds.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        clock: Callable[[], datetime] = _utcnow,
        timeout_seconds: float | None = None,
    ) -> None:
        self._db = db
        self._clock = clock
        self._timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else settings.persistence_timeout_seconds
        )

    def now(self) -> datetime:
        """Current time according to the injected clock."""
        return self._clock()

    async def issue(
        self,
        user_id: uuid.UUID,
        scope: TokenScope,
        ttl: timedelta,
    ) -> IssuedToken:
        """Generate, store and return a new token.

        The record is written only after the plaintext exists, and the
        plaintext is returned only after the write succeeded.

        Args:
            user_id: Owner of the token.
            scope: Operation the token authorizes.
            ttl: Lifetime from now.

        Returns:
            IssuedToken with the plaintext and its expiry.

        Raises:
            PersistenceError: If the store write fails or times out.
        """
        plaintext = generate_token_plaintext()
        expiry = self._clock() + ttl
        await self._bounded(
            "insert",
            TokenRepository.create(
                self._db,
                token_hash=hash_token(plaintext),
                user_id=user_id,
                scope=scope,
                expiry=expiry,
            ),
        )
        return IssuedToken(plaintext=plaintext, expiry=expiry)

    async def authenticate(
        self,
        plaintext: str,
        required_scope: TokenScope,
    ) -> CallerIdentity | None:
        """Resolve a plaintext token to the identity of its owner.

        Security: returns None for every kind of failure (unknown token,
        wrong scope, expired). Callers must not try to tell them apart.

        Args:
            plaintext: Token as presented by the client.
            required_scope: Scope the current operation needs.

        Returns:
            CallerIdentity of the owner, or None if the token is not valid.

        Raises:
            PersistenceError: If the store lookup fails or times out.
        """
        digest = hash_token(plaintext)
        token = await self._bounded(
            "lookup", TokenRepository.get_by_hash(self._db, digest)
        )
        if token is None:
            return None

        valid = (
            token_digests_match(token.hash, digest)
            and token.scope == required_scope.value
            and self._clock() < token.expiry
        )
        if not valid:
            return None

        return CallerIdentity(user_id=token.user_id, is_activated=token.user.activated)

    async def consume(self, plaintext: str, scope: TokenScope) -> uuid.UUID | None:
        """Validate and delete a single-use token in one statement.

        Args:
            plaintext: Token as presented by the client.
            scope: Scope the token must carry.

        Returns:
            Owner UUID, or None if the token was not valid (or was already
            consumed by a concurrent request).

        Raises:
            PersistenceError: If the store call fails or times out.
        """
        return await self._bounded(
            "consume",
            TokenRepository.consume(
                self._db,
                token_hash=hash_token(plaintext),
                scope=scope,
                now=self._clock(),
            ),
        )

    async def revoke_all(self, user_id: uuid.UUID, scope: TokenScope) -> int:
        """Delete every token of one owner and scope.

        Used on logout and after activation.

        Returns:
            Number of revoked tokens.

        Raises:
            PersistenceError: If the store call fails or times out.
        """
        revoked = await self._bounded(
            "revoke",
            TokenRepository.delete_all_for_user(
                self._db, user_id=user_id, scope=scope
            ),
        )
        logger.info("Revoked %d %s token(s) for user %s", revoked, scope.value, user_id)
        return revoked

    async def purge_expired(self) -> int:
        """Delete all expired tokens.

        Returns:
            Number of deleted tokens.
        """
        return await self._bounded(
            "purge", TokenRepository.delete_expired(self._db)
        )

    async def _bounded(self, operation: str, call: Awaitable[T]) -> T:
        """Await a store call under the configured timeout.

        Raises:
            PersistenceError: On timeout or any SQLAlchemy error.
        """
        try:
            async with asyncio.timeout(self._timeout_seconds):
                return await call
        except (TimeoutError, SQLAlchemyError) as exc:
            logger.error("Token store %s failed: %r", operation, exc)
            raise PersistenceError(f"token store {operation}") from exc


async def resolve_authentication_token(plaintext: str) -> CallerIdentity | None:
    """Resolve a bearer token in its own short-lived session.

    Used by the authentication middleware, which runs before FastAPI
    dependency injection and so cannot use get_db.

    Args:
        plaintext: Token from the Authorization header.

    Returns:
        CallerIdentity, or None if the token is not a valid
        authentication-scope token.
    """
    async with database.async_session_factory() as db:
        return await TokenService(db).authenticate(
            plaintext, TokenScope.AUTHENTICATION
        )
