"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup. If a required setting is missing, the app fails fast with a
clear error message.

Platform business parameters (commission, amount limits, timeout windows)
are NOT settings: they are admin-editable rows loaded per request by
services/config_service.py and passed around as a PlatformConfig value.

Usage:
    from gig_escrow.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Gig Escrow Engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://gig_escrow:gig_escrow_dev"
        "@localhost:5432/gig_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = 86400  # 24 hours

    # --- PayFast (signed form-post ITN) ---
    payfast_merchant_id: str = ""
    payfast_merchant_key: str = ""
    payfast_passphrase: str = ""
    payfast_sandbox: bool = True

    # --- Paystack (header-signed JSON webhook + transaction verify API) ---
    paystack_secret_key: str = ""
    paystack_api_url: str = "https://api.paystack.co"

    # --- TradeSafe (header-signed JSON webhook + GraphQL transaction query) ---
    tradesafe_client_id: str = ""
    tradesafe_client_secret: str = ""
    tradesafe_sandbox: bool = True
    tradesafe_auth_url: str = "https://auth.tradesafe.co.za/oauth/token"

    # Server-to-server provider queries (client verify)
    provider_http_timeout_seconds: float = 15.0

    # --- Operations ---
    cron_secret: str = ""
    admin_user_ids: str = ""
    sweep_alert_error_ratio: float = 0.25

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def admin_user_id_list(self) -> list[str]:
        """Parse comma-separated admin user ids into a list."""
        if not self.admin_user_ids:
            return []
        return [u.strip() for u in self.admin_user_ids.split(",") if u.strip()]

    def is_sandbox(self, provider: str) -> bool:
        """Whether the provider runs against its test environment.

        Paystack has no flag of its own: test keys start with "sk_test_".
        """
        if provider == "payfast":
            return self.payfast_sandbox
        if provider == "tradesafe":
            return self.tradesafe_sandbox
        return self.paystack_secret_key.startswith("sk_test_")

    @property
    def tradesafe_api_url(self) -> str:
        if self.tradesafe_sandbox:
            return "https://api-developer.tradesafe.dev/graphql"
        return "https://api.tradesafe.co.za/graphql"

    @property
    def sync_database_url(self) -> str:
        """Synchronous database URL for Alembic migrations."""
        return self.database_url.replace("+asyncpg", "+psycopg2")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
