"""Application configuration loaded from environment variables.

Settings for the database, the request-admission layer (rate limiter,
token lifetimes, call timeouts) and the mail dispatcher. Uses
pydantic-settings for validation and .env file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_settings() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "comments_dev_password"  # nosec B105

# bcrypt accepts cost factors 4..31
_MIN_BCRYPT_ROUNDS = 4
_MAX_BCRYPT_ROUNDS = 31


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "comments"
    database_user: str = "comments"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # Application
    environment: str = "development"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # CORS (Security)
    # CRITICAL: Never set to ["*"]; clients send Authorization headers
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Rate Limiting (Security)
    # Token bucket per client: refills at limiter_rps, holds at most limiter_burst
    limiter_enabled: bool = True  # Disable for testing
    limiter_rps: float = 2.0
    limiter_burst: int = 5
    limiter_sweep_interval_seconds: int = 60
    limiter_idle_retention_seconds: int = 180
    limiter_sweep_batch_size: int = 500
    # Only enable behind a reverse proxy that overwrites X-Forwarded-For
    limiter_trust_forwarded_for: bool = False

    # Per-route throttles on credential endpoints
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_token_creation: str = "5/15minute"
    rate_limit_registration: str = "3/hour"

    # Tokens
    authentication_token_ttl_hours: int = 24
    activation_token_ttl_hours: int = 72
    token_cleanup_interval_seconds: int = 3600

    # Bounded calls: token store round-trips and bcrypt work
    persistence_timeout_seconds: float = 3.0
    credential_timeout_seconds: float = 5.0
    bcrypt_rounds: int = 12

    # Mail dispatcher
    mail_api_url: str = "https://api.resend.com/emails"
    mail_api_key: SecretStr = SecretStr("")
    mail_sender: str = "Comments Community <no-reply@comments.example.com>"
    mail_max_attempts: int = 3
    mail_retry_delay_seconds: float = 0.5
    frontend_url: str = "http://localhost:3000"

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_settings(self) -> "Settings":
        """Validate limiter, token and production security requirements.

        Checks:
        - Limiter refill rate must be positive and burst at least 1
        - Idle retention must not be shorter than the sweep interval
        - Token lifetimes must be positive
        - bcrypt cost factor must be in the range bcrypt accepts
        - CORS must not use wildcard origin
        - Database password must not be the default in production
        """
        if self.limiter_rps <= 0:
            msg = f"LIMITER_RPS must be positive. Got: {self.limiter_rps}"
            raise ValueError(msg)
        if self.limiter_burst < 1:
            msg = f"LIMITER_BURST must be at least 1. Got: {self.limiter_burst}"
            raise ValueError(msg)
        if self.limiter_idle_retention_seconds < self.limiter_sweep_interval_seconds:
            msg = (
                "LIMITER_IDLE_RETENTION_SECONDS must be >= "
                "LIMITER_SWEEP_INTERVAL_SECONDS."
            )
            raise ValueError(msg)

        if self.authentication_token_ttl_hours <= 0 or self.activation_token_ttl_hours <= 0:
            msg = "Token TTLs must be positive."
            raise ValueError(msg)

        if not _MIN_BCRYPT_ROUNDS <= self.bcrypt_rounds <= _MAX_BCRYPT_ROUNDS:
            msg = (
                f"BCRYPT_ROUNDS must be between {_MIN_BCRYPT_ROUNDS} and "
                f"{_MAX_BCRYPT_ROUNDS}. Got: {self.bcrypt_rounds}"
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = "ALLOWED_ORIGINS must not contain '*' (wildcard)."
            raise ValueError(msg)

        if (
            self.environment == "production"
            and self.database_password == _INSECURE_DEFAULT_PASSWORD
        ):
            msg = (
                "Cannot use default database password in production. "
                "Set DATABASE_PASSWORD environment variable to a secure value."
            )
            raise ValueError(msg)

        return self


settings = Settings()
