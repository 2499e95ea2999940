"""Expired token cleanup background worker.

Expired tokens are already rejected on lookup; this worker only keeps the
tokens table from growing without bound. Runs via the FastAPI lifespan.
"""

import asyncio
import contextlib
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from comments_api.services.token_service import TokenService

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60 * 60


class ExpiredTokenCleanupWorker:
    """Background worker that periodically deletes expired tokens.

    Lifecycle:
    - start() creates an asyncio task that runs the cleanup loop.
    - stop() cancels the task and waits for graceful shutdown.
    - run_once() executes a single pass (for testing).

    Args:
        session_factory: Async session factory for DB access.
        interval_seconds: Seconds between cleanup passes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._last_run_at: datetime | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._running and self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        """Timestamp of the most recent completed pass."""
        return self._last_run_at

    def start(self) -> None:
        """Start the background cleanup loop.

        Creates an asyncio task. No-op if already running.
        Must be called from an async context (running event loop).
        """
        if self.is_running:
            logger.warning("Token cleanup worker already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Token cleanup worker started (interval=%ds)", self._interval_seconds
        )

    async def stop(self) -> None:
        """Stop the background cleanup loop."""
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Token cleanup worker stopped")

    async def run_once(self) -> int:
        """Delete expired tokens in one transaction.

        Returns:
            Number of deleted tokens.
        """
        async with self._session_factory() as db:
            service = TokenService(db)
            deleted = await service.purge_expired()
            await db.commit()
        self._last_run_at = service.now()
        return deleted

    async def _run_loop(self) -> None:
        """Background loop: purge → sleep → repeat."""
        try:
            while self._running:
                try:
                    deleted = await self.run_once()
                    if deleted:
                        logger.info("Deleted %d expired token(s)", deleted)
                except Exception:  # noqa: BLE001
                    logger.exception("Error in token cleanup pass")
                await asyncio.sleep(self._interval_seconds)
        except asyncio.CancelledError:
            logger.debug("Token cleanup loop cancelled")
            raise
