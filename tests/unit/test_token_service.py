"""Tests for TokenService (issue, authenticate, consume, revoke).

The repository is patched so these tests exercise token semantics
(scope, expiry, digest-only storage, uniform failures, bounded calls)
without a database.
"""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from comments_api.core.credentials import (
    generate_token_plaintext,
    hash_token,
    is_well_formed_token,
)
from comments_api.core.errors import PersistenceError
from comments_api.models.token import TokenScope
from comments_api.services.token_service import TokenService

_REPO = "comments_api.services.token_service.TokenRepository"
_T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
_USER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")


class _Clock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = _T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class _FakeTokenTable:
    """In-memory stand-in for TokenRepository keyed by digest."""

    def __init__(self) -> None:
        self.rows: dict[str, MagicMock] = {}

    async def create(self, _db, *, token_hash, user_id, scope, expiry):
        user = MagicMock(activated=True)
        row = MagicMock(
            hash=token_hash, user_id=user_id, scope=scope.value, expiry=expiry, user=user
        )
        self.rows[token_hash] = row
        return row

    async def get_by_hash(self, _db, token_hash):
        return self.rows.get(token_hash)

    async def consume(self, _db, *, token_hash, scope, now):
        row = self.rows.get(token_hash)
        if row is None or row.scope != scope.value or not now < row.expiry:
            return None
        del self.rows[token_hash]
        return row.user_id

    async def delete_all_for_user(self, _db, *, user_id, scope):
        doomed = [
            h
            for h, row in self.rows.items()
            if row.user_id == user_id and row.scope == scope.value
        ]
        for h in doomed:
            del self.rows[h]
        return len(doomed)


@pytest.fixture
def table():
    fake = _FakeTokenTable()
    with patch(_REPO, fake):
        yield fake


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def service(clock) -> TokenService:
    return TokenService(AsyncMock(), clock=clock, timeout_seconds=1.0)


class TestIssue:
    """Tests for token issuance."""

    async def test_returns_well_formed_plaintext_and_expiry(self, table, service):
        issued = await service.issue(_USER_ID, TokenScope.AUTHENTICATION, timedelta(hours=24))

        assert is_well_formed_token(issued.plaintext)
        assert issued.expiry == _T0 + timedelta(hours=24)

    async def test_stores_only_the_digest(self, table, service):
        issued = await service.issue(_USER_ID, TokenScope.AUTHENTICATION, timedelta(hours=1))

        assert list(table.rows) == [hash_token(issued.plaintext)]
        assert issued.plaintext not in table.rows

    async def test_each_issue_is_distinct(self, table, service):
        plaintexts = {
            (await service.issue(_USER_ID, TokenScope.AUTHENTICATION, timedelta(hours=1))).plaintext
            for _ in range(50)
        }
        assert len(plaintexts) == 50


class TestAuthenticate:
    """Tests for resolving a plaintext token to an identity."""

    async def test_valid_token_resolves_owner(self, table, service):
        issued = await service.issue(_USER_ID, TokenScope.AUTHENTICATION, timedelta(hours=1))

        identity = await service.authenticate(issued.plaintext, TokenScope.AUTHENTICATION)

        assert identity is not None
        assert identity.user_id == _USER_ID
        assert identity.is_activated is True

    async def test_reports_inactive_owner(self, table, service):
        issued = await service.issue(_USER_ID, TokenScope.AUTHENTICATION, timedelta(hours=1))
        table.rows[hash_token(issued.plaintext)].user.activated = False

        identity = await service.authenticate(issued.plaintext, TokenScope.AUTHENTICATION)

        assert identity is not None
        assert identity.is_activated is False

    async def test_unknown_token_is_none(self, table, service):
        assert await service.authenticate("A" * 26, TokenScope.AUTHENTICATION) is None

    async def test_random_plaintexts_never_authenticate(self, table, service):
        await service.issue(_USER_ID, TokenScope.AUTHENTICATION, timedelta(hours=1))

        for _ in range(1000):
            guess = generate_token_plaintext()
            assert await service.authenticate(guess, TokenScope.AUTHENTICATION) is None

    async def test_wrong_scope_is_none(self, table, service):
        issued = await service.issue(_USER_ID, TokenScope.ACTIVATION, timedelta(hours=1))

        assert await service.authenticate(issued.plaintext, TokenScope.AUTHENTICATION) is None

    async def test_valid_until_expiry_then_rejected(self, table, service, clock):
        """Token works just before its TTL elapses and never after."""
        issued = await service.issue(_USER_ID, TokenScope.AUTHENTICATION, timedelta(hours=24))

        clock.advance(timedelta(hours=24) - timedelta(seconds=1))
        assert await service.authenticate(issued.plaintext, TokenScope.AUTHENTICATION)

        clock.advance(timedelta(seconds=1))
        assert await service.authenticate(issued.plaintext, TokenScope.AUTHENTICATION) is None

        clock.advance(timedelta(days=365))
        assert await service.authenticate(issued.plaintext, TokenScope.AUTHENTICATION) is None

    async def test_store_error_raises_persistence_error(self, service):
        with (
            patch(
                f"{_REPO}.get_by_hash",
                new_callable=AsyncMock,
                side_effect=OperationalError("SELECT", {}, Exception("down")),
            ),
            pytest.raises(PersistenceError) as exc_info,
        ):
            await service.authenticate("A" * 26, TokenScope.AUTHENTICATION)

        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "INTERNAL_ERROR"

    async def test_store_timeout_raises_persistence_error(self, clock):
        async def _hang(*_args, **_kwargs):
            await asyncio.sleep(10)

        service = TokenService(AsyncMock(), clock=clock, timeout_seconds=0.01)
        with (
            patch(f"{_REPO}.get_by_hash", _hang),
            pytest.raises(PersistenceError),
        ):
            await service.authenticate("A" * 26, TokenScope.AUTHENTICATION)


class TestConsume:
    """Tests for single-use token consumption."""

    async def test_consume_returns_owner_once(self, table, service):
        issued = await service.issue(_USER_ID, TokenScope.ACTIVATION, timedelta(hours=1))

        assert await service.consume(issued.plaintext, TokenScope.ACTIVATION) == _USER_ID
        assert await service.consume(issued.plaintext, TokenScope.ACTIVATION) is None

    async def test_consume_rejects_expired(self, table, service, clock):
        issued = await service.issue(_USER_ID, TokenScope.ACTIVATION, timedelta(hours=1))
        clock.advance(timedelta(hours=2))

        assert await service.consume(issued.plaintext, TokenScope.ACTIVATION) is None

    async def test_consume_rejects_wrong_scope(self, table, service):
        issued = await service.issue(_USER_ID, TokenScope.AUTHENTICATION, timedelta(hours=1))

        assert await service.consume(issued.plaintext, TokenScope.ACTIVATION) is None


class TestRevokeAll:
    """Tests for revoking every token of one owner and scope."""

    async def test_revokes_only_matching_scope_and_owner(self, table, service):
        other_user = uuid.uuid4()
        a = await service.issue(_USER_ID, TokenScope.AUTHENTICATION, timedelta(hours=1))
        b = await service.issue(_USER_ID, TokenScope.AUTHENTICATION, timedelta(hours=1))
        activation = await service.issue(_USER_ID, TokenScope.ACTIVATION, timedelta(hours=1))
        other = await service.issue(other_user, TokenScope.AUTHENTICATION, timedelta(hours=1))

        revoked = await service.revoke_all(_USER_ID, TokenScope.AUTHENTICATION)

        assert revoked == 2
        for plaintext in (a.plaintext, b.plaintext):
            assert await service.authenticate(plaintext, TokenScope.AUTHENTICATION) is None
        assert await service.authenticate(other.plaintext, TokenScope.AUTHENTICATION)
        assert await service.consume(activation.plaintext, TokenScope.ACTIVATION) == _USER_ID
