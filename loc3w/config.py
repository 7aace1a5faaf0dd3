"""Application configuration via pydantic-settings."""

from __future__ import annotations

import uuid
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "3W-LOC"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "loc3w"
    postgres_password: str = Field(default="loc3w_secret")
    postgres_db: str = "loc3w"
    db_pool_size: int = 20
    db_max_overflow: int = 10

    @computed_field
    @property
    def database_url(self) -> str:
        """Async PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @computed_field
    @property
    def sync_database_url(self) -> str:
        """Sync PostgreSQL connection URL for Alembic."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Availability change feed ("local" keeps events in-process)
    change_feed_backend: Literal["local", "redis"] = "local"

    # JWT Authentication (tokens are issued by the identity provider)
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15

    # Money (whole FCFA units)
    currency: str = "XOF"
    minimum_recharge_amount: int = 1000
    platform_account_id: uuid.UUID = uuid.UUID("00000000-0000-0000-0000-000000000001")

    # Bookings
    unpaid_booking_ttl_hours: int = 24

    # Payment return URLs
    frontend_url: str = "http://localhost:5173"
    payment_success_path: str = "/payment/success"
    payment_cancel_path: str = "/payment/cancel"

    # Payment Gateways
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    kkiapay_public_key: Optional[str] = None
    kkiapay_private_key: Optional[str] = None
    kkiapay_secret: Optional[str] = None
    kkiapay_sandbox: bool = True
    kkiapay_timeout_seconds: float = 15.0

    # Charge verification polling
    charge_poll_max_attempts: int = 5
    charge_poll_base_delay: float = 2.0
    charge_poll_max_delay: float = 60.0
    pending_charge_grace_minutes: int = 10

    # Wallet ledger reconciliation (seconds)
    wallet_reconciliation_interval: int = 6 * 60 * 60

    # Rate limits on money-moving endpoints (requests per window)
    rate_limit_window_seconds: int = 60
    booking_rate_limit: int = 10
    payment_rate_limit: int = 10
    recharge_rate_limit: int = 5

    # Requests slower than this are logged as warnings
    slow_request_seconds: float = 1.0

    # CORS
    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:8080"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
