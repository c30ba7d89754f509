"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., DISPATCH_CONCURRENCY env var → Settings.DISPATCH_CONCURRENCY)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Every process entry point reads `settings` from here and passes the values
into the components it builds (store, dispatcher, backoff policy, ...).
The components themselves take plain constructor arguments, so tests can
build them with their own numbers.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── PostgreSQL ──────────────────────────────────────────────
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "rentaljobs"
    POSTGRES_PASSWORD: str = "rentaljobs"
    POSTGRES_DB: str = "rentaljobs"

    # ── Redis ───────────────────────────────────────────────────
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # ── Dispatcher ──────────────────────────────────────────────
    DISPATCH_POLL_INTERVAL: float = 1.0   # seconds between dispatcher ticks
    DISPATCH_BATCH_SIZE: int = 20         # max jobs claimed per tick
    DISPATCH_CONCURRENCY: int = 5         # max handlers running at once
    HANDLER_TIMEOUT: float = 30.0         # seconds before a handler counts as failed
    SHUTDOWN_TIMEOUT: float = 30.0        # seconds to wait for in-flight handlers on stop

    # ── Retry ───────────────────────────────────────────────────
    MAX_ATTEMPTS_DEFAULT: int = 3
    MAX_ATTEMPTS_LIMIT: int = 10
    RETRY_BASE_DELAY: float = 5.0         # seconds before the first retry
    RETRY_MAX_DELAY: float = 3600.0       # ceiling for exponential growth
    RETRY_JITTER: float = 0.2             # ±20% random spread

    # ── Recovery & retention ────────────────────────────────────
    STALE_CLAIM_TIMEOUT: float = 300.0    # running longer than this → recoverable
    RECOVERY_INTERVAL: float = 60.0       # seconds between housekeeping passes
    JOB_RETENTION_DAYS: int = 30          # terminal jobs older than this get pruned

    # ── Recurring jobs ──────────────────────────────────────────
    ENABLE_RECURRING_JOBS: bool = True
    RECURRING_TIMEZONE: str = "UTC"

    # ── Marketplace (handlers talk to the main app over HTTP) ───
    MARKETPLACE_API_URL: str = "http://localhost:3000/api"
    MARKETPLACE_API_TOKEN: str = ""
    MARKETPLACE_TIMEOUT: float = 10.0

    # ── App ─────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    ADMIN_API_TOKEN: str = "change-me"
    RUN_DISPATCHER_IN_API: bool = False   # run the worker loop inside the API process

    @model_validator(mode="after")
    def _stale_claims_outlive_handlers(self) -> "Settings":
        # a claim recovered while its handler can still be running would run the job twice
        if self.STALE_CLAIM_TIMEOUT <= self.HANDLER_TIMEOUT:
            raise ValueError(
                f"STALE_CLAIM_TIMEOUT ({self.STALE_CLAIM_TIMEOUT}s) must be greater than "
                f"HANDLER_TIMEOUT ({self.HANDLER_TIMEOUT}s)"
            )
        return self

    @property
    def database_url(self) -> str:
        """Async connection string (uses asyncpg driver)."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import this everywhere
settings = Settings()
