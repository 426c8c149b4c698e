"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings
"""

from datetime import timedelta
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from invoicing_core.core.domain_types import SESSION_SCOPED_KEYS


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://invoicing:invoicing@db:5432/invoicing"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres provides postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Auth provider (GoTrue-compatible)
    auth_url: str = "http://localhost:54321"
    auth_api_key: str = "anon-placeholder"
    auth_timeout_seconds: float = 10.0
    auth_max_retries: int = 3
    auth_base_delay_ms: int = 250
    auth_max_delay_ms: int = 5_000

    # Session
    session_timeout_minutes: int = 30
    session_scoped_keys: list[str] = list(SESSION_SCOPED_KEYS)

    # Invoices
    deleted_invoice_retention_days: int = 30

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def session_timeout(self) -> timedelta:
        return timedelta(minutes=self.session_timeout_minutes)

    @property
    def deleted_invoice_retention(self) -> timedelta:
        return timedelta(days=self.deleted_invoice_retention_days)


@lru_cache
def get_settings() -> Settings:
    return Settings()
