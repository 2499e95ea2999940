"""Tests for expired token cleanup worker lifecycle."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from comments_api.services.token_cleanup_worker import (
    DEFAULT_INTERVAL_SECONDS,
    ExpiredTokenCleanupWorker,
)

_PATCH_PURGE = "comments_api.services.token_cleanup_worker.TokenService.purge_expired"


@pytest.fixture
def mock_session_factory() -> MagicMock:
    """Create a mock async session factory with context manager support."""
    mock_session = AsyncMock()
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return MagicMock(return_value=mock_session)


class TestWorkerLifecycle:
    """Tests for ExpiredTokenCleanupWorker start/stop."""

    async def test_start_sets_running(self) -> None:
        worker = ExpiredTokenCleanupWorker(MagicMock(), interval_seconds=60)

        with patch.object(worker, "_run_loop", new_callable=AsyncMock):
            worker.start()
            assert worker.is_running is True
            await worker.stop()

    async def test_stop_clears_running(self) -> None:
        worker = ExpiredTokenCleanupWorker(MagicMock(), interval_seconds=60)

        with patch.object(worker, "_run_loop", new_callable=AsyncMock):
            worker.start()
            await worker.stop()
            assert worker.is_running is False

    async def test_stop_without_start_is_safe(self) -> None:
        worker = ExpiredTokenCleanupWorker(MagicMock(), interval_seconds=60)
        await worker.stop()  # Should not raise

    async def test_default_interval(self) -> None:
        worker = ExpiredTokenCleanupWorker(MagicMock())
        assert worker._interval_seconds == DEFAULT_INTERVAL_SECONDS


class TestWorkerRunOnce:
    """Tests for ExpiredTokenCleanupWorker.run_once()."""

    async def test_run_once_purges_and_commits(
        self, mock_session_factory: MagicMock
    ) -> None:
        worker = ExpiredTokenCleanupWorker(mock_session_factory, interval_seconds=60)

        with patch(_PATCH_PURGE, new_callable=AsyncMock, return_value=7) as purge:
            deleted = await worker.run_once()

        assert deleted == 7
        purge.assert_awaited_once()
        mock_session_factory.return_value.commit.assert_awaited_once()

    async def test_run_once_updates_last_run_at(
        self, mock_session_factory: MagicMock
    ) -> None:
        worker = ExpiredTokenCleanupWorker(mock_session_factory, interval_seconds=60)
        assert worker.last_run_at is None

        with patch(_PATCH_PURGE, new_callable=AsyncMock, return_value=0):
            await worker.run_once()

        assert worker.last_run_at is not None

    async def test_loop_survives_failed_pass(
        self, mock_session_factory: MagicMock
    ) -> None:
        worker = ExpiredTokenCleanupWorker(mock_session_factory, interval_seconds=0)
        calls = 0

        async def _flaky() -> int:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("database down")
            worker._running = False
            return 0

        with patch.object(worker, "run_once", side_effect=_flaky):
            worker._running = True
            await worker._run_loop()

        assert calls == 2
