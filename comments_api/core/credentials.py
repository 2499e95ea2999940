"""One-way hashing and verification of passwords and token plaintexts.

Pipeline:
- hash_password / verify_password: bcrypt (memory/CPU-hard, salted)
- hash_password_bounded / verify_password_bounded: same work, run in a
  worker thread under a timeout so the event loop never blocks on it
- generate_token_plaintext / hash_token: 128-bit random tokens stored as
  SHA-256 digests (tokens carry full entropy, a fast digest is enough)
- DUMMY_HASH: Timing-safe constant for user enumeration defense
"""

import asyncio
import base64
import hashlib
import hmac
import logging
import secrets

import bcrypt

from comments_api.core.config import settings
from comments_api.core.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

# 16 bytes = 128 bits of randomness per token
_TOKEN_ENTROPY_BYTES = 16

# Base32 without padding: 16 bytes always encode to 26 characters
TOKEN_PLAINTEXT_LENGTH = 26
_BASE32_ALPHABET = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZ234567")

# bcrypt only looks at the first 72 bytes of the input
_MIN_PASSWORD_BYTES = 8
_MAX_PASSWORD_BYTES = 72

# Pre-computed bcrypt hash for timing-safe comparison on user-not-found.
# Security: prevents user enumeration via response time differences.
# Pre-generated to avoid ~300ms bcrypt computation on every app startup.
DUMMY_HASH = b"$2b$12$ZP2PVB8yI35X.mkRqcUPUuSzJA1CNRt4dZ7X3cyrfJu.2S3w.Qen2"


def generate_token_plaintext() -> str:
    """Generate a new opaque bearer token.

    Returns:
        26-character base32 string encoding 128 random bits.
    """
    raw = secrets.token_bytes(_TOKEN_ENTROPY_BYTES)
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def hash_token(plaintext: str) -> str:
    """Derive the storage digest of a token plaintext.

    Args:
        plaintext: Token as presented by the client.

    Returns:
        Hex-encoded SHA-256 digest (64 chars).
    """
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def token_digests_match(expected: str, actual: str) -> bool:
    """Compare two token digests in constant time."""
    return hmac.compare_digest(expected.encode("ascii"), actual.encode("ascii"))


def is_well_formed_token(plaintext: str) -> bool:
    """Check that a presented token has the shape generate_token_plaintext() emits.

    Args:
        plaintext: Token as presented by the client.

    Returns:
        True if the token is 26 base32 characters.
    """
    return len(plaintext) == TOKEN_PLAINTEXT_LENGTH and all(
        c in _BASE32_ALPHABET for c in plaintext
    )


def validate_password_strength(password: str) -> None:
    """Validate password length in bytes.

    8-72 bytes: bcrypt ignores anything past 72 bytes, so longer
    passwords would silently be truncated.

    Args:
        password: Plain-text password to validate.

    Raises:
        ValidationError: If password doesn't meet requirements.
    """
    size = len(password.encode("utf-8"))
    if size < _MIN_PASSWORD_BYTES:
        raise ValidationError("Password must be at least 8 bytes long")
    if size > _MAX_PASSWORD_BYTES:
        raise ValidationError("Password must not be more than 72 bytes long")


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt.

    Args:
        password: Plain-text password (already length-validated).
        rounds: bcrypt cost factor. Defaults to settings.bcrypt_rounds.

    Returns:
        bcrypt hash as a string.
    """
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("ascii")


def verify_password(password: str, digest: str | bytes) -> bool:
    """Check a password against a stored bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed digest fails
    closed (returns False) instead of raising.

    Args:
        password: Plain-text password from the client.
        digest: Stored bcrypt hash.

    Returns:
        True only if the password matches.
    """
    if isinstance(digest, str):
        digest = digest.encode("ascii", errors="ignore")
    try:
        return bcrypt.checkpw(password.encode("utf-8"), digest)
    except ValueError:
        logger.warning("Password check against malformed digest")
        return False


async def hash_password_bounded(password: str) -> str:
    """Hash a password in a worker thread, bounded by a timeout.

    Raises:
        PersistenceError: If hashing fails or exceeds
            settings.credential_timeout_seconds.
    """
    try:
        async with asyncio.timeout(settings.credential_timeout_seconds):
            return await asyncio.to_thread(hash_password, password)
    except (TimeoutError, ValueError, MemoryError) as exc:
        logger.error("Password hashing failed: %r", exc)
        raise PersistenceError("password hashing") from exc


async def verify_password_bounded(password: str, digest: str | bytes) -> bool:
    """Verify a password in a worker thread, bounded by a timeout.

    Raises:
        PersistenceError: If verification exceeds
            settings.credential_timeout_seconds.
    """
    try:
        async with asyncio.timeout(settings.credential_timeout_seconds):
            return await asyncio.to_thread(verify_password, password, digest)
    except TimeoutError as exc:
        logger.error("Password verification timed out")
        raise PersistenceError("password verification") from exc
