"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MockStrategyName = Literal["always_success", "always_failure", "amount_based", "random"]


def retry_budget_seconds(timeout: float, retries: int, retry_delay: float) -> float:
    """
    Worst-case wall-clock time of one gateway charge.

    Every try may run up to the timeout and every retry is preceded by the
    fixed delay.
    """
    return timeout * (retries + 1) + retry_delay * retries


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_name: str = Field(default="order-payments", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=4, description="Number of API workers")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="CORS allowed origins (comma-separated)",
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./order_payments.db",
        description="Async SQLAlchemy connection URL",
    )
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Order Lock Configuration
    lock_backend: Literal["memory", "redis"] = Field(
        default="memory", description="Order lock backend (memory/redis)"
    )
    redis_url: Optional[str] = Field(default=None, description="Redis connection URL")
    lock_lease_seconds: float = Field(
        default=5.0, gt=0, description="Order lock lease duration (seconds)"
    )

    # Payment Gateway Configuration
    gateway_url: str = Field(
        default="https://fake-payment-gateway.free.beeceptor.com",
        description="Payment gateway base URL",
    )
    gateway_timeout_seconds: float = Field(
        default=1.0, gt=0, description="Per-request gateway timeout (seconds)"
    )
    gateway_retries: int = Field(
        default=2, ge=0, description="Automatic retries for transport failures"
    )
    gateway_retry_delay_seconds: float = Field(
        default=0.1, ge=0, description="Fixed delay between gateway retries (seconds)"
    )
    gateway_mock_strategy: MockStrategyName = Field(
        default="amount_based", description="Endpoint selection strategy"
    )
    gateway_currency: str = Field(default="USD", description="Charge currency")
    gateway_use_fake: bool = Field(
        default=False, description="Use the in-process fake gateway"
    )
    gateway_circuit_failure_threshold: int = Field(
        default=5, ge=1, description="Consecutive failures before the circuit opens"
    )
    gateway_circuit_reset_seconds: float = Field(
        default=30.0, gt=0, description="Seconds before an open circuit is retried"
    )

    # Attempt Throttle
    throttle_window_seconds: int = Field(
        default=300, gt=0, description="Trailing window for failed attempts (seconds)"
    )
    throttle_max_failed_attempts: int = Field(
        default=3, ge=1, description="Failed attempts allowed inside the window"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("gateway_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        if len(v) != 3:
            raise ValueError("Currency must be 3-letter code")
        return v.upper()

    @model_validator(mode="after")
    def validate_lease_covers_gateway_budget(self) -> "Settings":
        """
        The order lease must outlive the slowest possible gateway charge.

        Otherwise a retry still in flight could overlap an attempt accepted
        after the lease expired.
        """
        budget = self.gateway_retry_budget_seconds
        if budget >= self.lock_lease_seconds:
            raise ValueError(
                f"Gateway retry budget ({budget:.2f}s) must be shorter than "
                f"the order lock lease ({self.lock_lease_seconds:.2f}s)"
            )
        if self.lock_backend == "redis" and not self.redis_url:
            raise ValueError("redis_url is required when lock_backend is 'redis'")
        return self

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def gateway_retry_budget_seconds(self) -> float:
        """Worst-case duration of a single charge including retries."""
        return retry_budget_seconds(
            self.gateway_timeout_seconds,
            self.gateway_retries,
            self.gateway_retry_delay_seconds,
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def is_sqlite(self) -> bool:
        """Check if the database is SQLite (no server-side pool options)."""
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
