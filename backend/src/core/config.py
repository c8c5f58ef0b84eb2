"""Application configuration using pydantic-settings."""
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database - holds the user -> Stripe customer mapping
    database_url: str
    db_pool_size: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:5173",
        validation_alias="CORS_ORIGINS",
    )

    # Redis - subscription cache records and per-customer sync locks
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    redis_enabled: bool = Field(default=True, validation_alias="REDIS_ENABLED")
    redis_pool_size: int = Field(default=20, validation_alias="REDIS_POOL_SIZE")

    # Stripe
    stripe_secret_key: str = Field(default="", validation_alias="STRIPE_SECRET_KEY")
    stripe_webhook_secret: str = Field(default="", validation_alias="STRIPE_WEBHOOK_SECRET")
    stripe_webhook_tolerance_seconds: int = Field(
        default=300, validation_alias="STRIPE_WEBHOOK_TOLERANCE_SECONDS",
    )
    stripe_timeout_seconds: float = Field(
        default=20.0, gt=0, validation_alias="STRIPE_TIMEOUT_SECONDS",
    )

    # Resync lock - lease must outlive the Stripe timeout (see validator)
    sync_lock_ttl_seconds: float = Field(
        default=60.0, gt=0, validation_alias="SYNC_LOCK_TTL_SECONDS",
    )
    sync_lock_wait_seconds: float = Field(
        default=30.0, ge=0, validation_alias="SYNC_LOCK_WAIT_SECONDS",
    )
    sync_lock_poll_interval: float = Field(
        default=0.25, gt=0, validation_alias="SYNC_LOCK_POLL_INTERVAL",
    )

    @model_validator(mode="after")
    def validate_lock_outlives_timeout(self) -> "Settings":
        """
        Require the Stripe timeout to be shorter than the sync lock lease.

        A resync holds its lock for the duration of the Stripe call. If the call
        could outlast the lease, the lock would expire mid-call and a second resync
        could run concurrently for the same customer, writing its snapshot in the
        wrong order.
        """
        if self.stripe_timeout_seconds >= self.sync_lock_ttl_seconds:
            raise ValueError(
                f"STRIPE_TIMEOUT_SECONDS ({self.stripe_timeout_seconds}) must be shorter "
                f"than SYNC_LOCK_TTL_SECONDS ({self.sync_lock_ttl_seconds}).",
            )
        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
