"""Request rate limiting.

Two layers:

1. ClientRateLimiter: a token bucket per client key, consulted by
   RateLimitMiddleware for every request. Each bucket refills continuously
   at ``rate`` tokens/second up to ``burst``. Idle buckets are evicted by
   RateLimiterSweeper so memory stays bounded under client churn.
2. slowapi ``limiter``: stricter per-route limits on credential endpoints
   (token creation, registration) to slow down password guessing.

Concurrency: the client map is the only mutable state shared between
requests. Every read-modify-write of a bucket and every sweep batch holds
``ClientRateLimiter._lock``. The lock is a threading.Lock so correctness
does not depend on running on a single event loop thread; it is only held
for O(1) work per request and for one bounded batch per sweep step.

Usage in routers:
    from comments_api.core.rate_limiting import limiter

    @router.post("/authentication")
    @limiter.limit(settings.rate_limit_token_creation)
    async def create_authentication_token(request: Request, ...):
        ...
"""

import asyncio
import contextlib
import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from comments_api.core.config import Settings, settings
from comments_api.core.errors import RateLimitedError
from comments_api.core.identity import get_request_identity
from comments_api.core.responses import error_response

logger = logging.getLogger(__name__)

# Fallback Retry-After (seconds) when a slowapi limit cannot report its window
_DEFAULT_RETRY_AFTER = 60


# =============================================================================
# Token bucket
# =============================================================================


@dataclass
class TokenBucket:
    """Request credits for one client.

    Attributes:
        capacity: Maximum credits (burst size).
        rate: Credits added per second.
        available: Current credits, always within [0, capacity].
        last_refill: Clock reading of the last refill.
        last_seen: Clock reading of the last request, for idle eviction.
    """

    capacity: float
    rate: float
    available: float
    last_refill: float
    last_seen: float

    @classmethod
    def full(cls, capacity: float, rate: float, now: float) -> "TokenBucket":
        """Create a bucket holding its full burst capacity."""
        return cls(
            capacity=capacity,
            rate=rate,
            available=capacity,
            last_refill=now,
            last_seen=now,
        )

    def refill(self, now: float) -> None:
        """Add credits for the time elapsed since the last refill.

        A clock that moved backwards adds nothing.
        """
        elapsed = max(0.0, now - self.last_refill)
        self.available = min(self.capacity, self.available + elapsed * self.rate)
        self.last_refill = max(self.last_refill, now)

    def try_acquire(self, now: float) -> bool:
        """Refill, then take one credit if available.

        Returns:
            True if the request is admitted.
        """
        self.refill(now)
        self.last_seen = now
        if self.available >= 1:
            self.available -= 1
            return True
        return False

    def seconds_until_available(self) -> float:
        """Time until one full credit will have accumulated."""
        missing = max(0.0, 1 - self.available)
        return missing / self.rate


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of ClientRateLimiter.check().

    Attributes:
        allowed: Whether the request is admitted.
        retry_after: Whole seconds the client should wait (0 when allowed).
    """

    allowed: bool
    retry_after: int = 0


class ClientRateLimiter:
    """Token-bucket limiter keyed by client identifier.

    Buckets are created lazily on a client's first request. When disabled,
    every request is admitted and no bucket state is created.

    Args:
        rate: Refill rate in requests per second.
        burst: Bucket capacity.
        enabled: Whether limiting is active.
        idle_retention_seconds: Buckets idle longer than this are evicted
            by sweep().
        sweep_batch_size: Entries examined per lock acquisition in sweep().
        clock: Monotonic time source in seconds. Injected for tests.
    """

    def __init__(
        self,
        *,
        rate: float,
        burst: int,
        enabled: bool = True,
        idle_retention_seconds: float = 180,
        sweep_batch_size: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            msg = f"rate must be positive, got {rate}"
            raise ValueError(msg)
        if burst < 1:
            msg = f"burst must be at least 1, got {burst}"
            raise ValueError(msg)
        self.rate = rate
        self.burst = burst
        self.enabled = enabled
        self.idle_retention_seconds = idle_retention_seconds
        self._sweep_batch_size = max(1, sweep_batch_size)
        self._clock = clock
        self._clients: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, config: Settings) -> "ClientRateLimiter":
        """Build a limiter from application settings."""
        return cls(
            rate=config.limiter_rps,
            burst=config.limiter_burst,
            enabled=config.limiter_enabled,
            idle_retention_seconds=config.limiter_idle_retention_seconds,
            sweep_batch_size=config.limiter_sweep_batch_size,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def __contains__(self, client_key: object) -> bool:
        with self._lock:
            return client_key in self._clients

    def check(self, client_key: str) -> RateLimitDecision:
        """Admit or reject one request from a client.

        Args:
            client_key: Stable identifier of the request origin.

        Returns:
            RateLimitDecision; retry_after is set when rejected.
        """
        if not self.enabled:
            return RateLimitDecision(allowed=True)

        with self._lock:
            now = self._clock()
            bucket = self._clients.get(client_key)
            if bucket is None:
                bucket = TokenBucket.full(self.burst, self.rate, now)
                self._clients[client_key] = bucket
            if bucket.try_acquire(now):
                return RateLimitDecision(allowed=True)
            wait = bucket.seconds_until_available()

        return RateLimitDecision(allowed=False, retry_after=max(1, math.ceil(wait)))

    def allow(self, client_key: str) -> bool:
        """Shorthand for check(client_key).allowed."""
        return self.check(client_key).allowed

    def sweep(self) -> int:
        """Evict buckets idle longer than the retention window.

        Takes a snapshot of the keys, then re-checks and deletes them in
        batches, releasing the lock between batches so request handling is
        never blocked for the whole map.

        Returns:
            Number of evicted clients.
        """
        with self._lock:
            keys = list(self._clients)

        removed = 0
        for start in range(0, len(keys), self._sweep_batch_size):
            batch = keys[start : start + self._sweep_batch_size]
            with self._lock:
                cutoff = self._clock() - self.idle_retention_seconds
                for key in batch:
                    bucket = self._clients.get(key)
                    if bucket is not None and bucket.last_seen < cutoff:
                        del self._clients[key]
                        removed += 1
        return removed

    def clear(self) -> None:
        """Drop all client state (for testing)."""
        with self._lock:
            self._clients.clear()


# =============================================================================
# Client keying
# =============================================================================


def client_key(request: Request, *, trust_forwarded_for: bool | None = None) -> str:
    """Identify the origin of a request.

    Uses the socket peer address by default. With
    ``limiter_trust_forwarded_for`` enabled, the first X-Forwarded-For hop
    is used instead; only enable that behind a proxy that overwrites the
    header, otherwise clients can pick their own key.

    Args:
        request: The incoming request.
        trust_forwarded_for: Overrides settings.limiter_trust_forwarded_for.

    Returns:
        Client key string.
    """
    trust = (
        settings.limiter_trust_forwarded_for
        if trust_forwarded_for is None
        else trust_forwarded_for
    )
    if trust:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return get_remote_address(request)


def _rate_limit_key_func(request: Request) -> str:
    """Get the per-route rate limit key from a request.

    Authenticated callers are limited per user so that clients behind a
    shared address do not exhaust each other's budget. Anonymous callers
    fall back to the client address.

    Key format:
    - Resolved identity: "user:{user_id}"
    - Anonymous: "unauth:{client}"
    """
    identity = get_request_identity(request)
    if not identity.is_anonymous:
        return f"user:{identity.user_id}"
    return f"unauth:{client_key(request)}"


# Per-route limiter (in-memory storage, suitable for single-instance deployment)
# For multi-instance, pass a shared storage_uri (e.g. Redis) to Limiter
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.limiter_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle per-route rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and Retry-After header set to the
        length of the limit's window.
    """
    try:
        retry_after = int(exc.limit.limit.get_expiry())
    except (AttributeError, TypeError, ValueError):
        retry_after = _DEFAULT_RETRY_AFTER

    return error_response(RateLimitedError(retry_after=retry_after))


# =============================================================================
# Idle sweep worker
# =============================================================================


class RateLimiterSweeper:
    """Background task that periodically evicts idle limiter entries.

    Lifecycle:
    - start() creates an asyncio task that runs the sweep loop.
    - stop() cancels the task and waits for it to finish.
    - run_once() executes a single sweep (for testing).

    Args:
        rate_limiter: Limiter whose idle entries are evicted.
        interval_seconds: Seconds between sweeps.
    """

    def __init__(
        self,
        rate_limiter: ClientRateLimiter,
        *,
        interval_seconds: float = 60,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._running and self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep loop. No-op if already running.

        Must be called from an async context (running event loop).
        """
        if self.is_running:
            logger.warning("Rate limiter sweeper already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Rate limiter sweeper started (interval=%ss)", self._interval_seconds
        )

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Rate limiter sweeper stopped")

    def run_once(self) -> int:
        """Run one sweep.

        Returns:
            Number of evicted clients.
        """
        removed = self._rate_limiter.sweep()
        if removed:
            logger.debug("Evicted %d idle rate limiter client(s)", removed)
        return removed

    async def _run_loop(self) -> None:
        """Background loop: sleep → sweep → repeat."""
        try:
            while self._running:
                await asyncio.sleep(self._interval_seconds)
                try:
                    self.run_once()
                except Exception:  # noqa: BLE001
                    logger.exception("Error in rate limiter sweep")
        except asyncio.CancelledError:
            logger.debug("Rate limiter sweep loop cancelled")
            raise
