"""
Admin Panel User Metrics
Centralized Configuration Management

Pydantic settings for the two independently-owned data stores (orders and
payments), the dashboard cache and the metrics listing bounds.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import AliasChoices, Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def to_async_url(url: str) -> str:
    """Rewrite a plain PostgreSQL URL to the asyncpg driver form."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


class StoreDatabaseSettings(BaseSettings):
    """Connection settings shared by both stores"""

    model_config = SettingsConfigDict(env_prefix="STORE_DB_")

    url: Optional[SecretStr] = Field(default=None, description="Database connection string")
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=5, description="Max overflow connections")
    pool_timeout: int = Field(default=10, description="Seconds to wait for a pooled connection")
    connect_timeout: float = Field(default=5.0, description="Connection timeout in seconds")
    query_timeout: float = Field(default=10.0, description="Per round-trip timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL queries")

    @property
    def is_configured(self) -> bool:
        return self.url is not None and bool(self.url.get_secret_value().strip())

    @property
    def async_url(self) -> Optional[str]:
        """Async database URL, or None when no connection string is set"""
        if not self.is_configured:
            return None
        return to_async_url(self.url.get_secret_value().strip())


class OrdersDatabaseSettings(StoreDatabaseSettings):
    """Orders store (orders and base user identity)"""

    model_config = SettingsConfigDict(env_prefix="ORDERS_DB_")

    url: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("ORDERS_DB_URL", "ORDERS_DATABASE_URL"),
        description="Orders database connection string",
    )


class PaymentsDatabaseSettings(StoreDatabaseSettings):
    """Payments store (transactions)"""

    model_config = SettingsConfigDict(env_prefix="PAYMENTS_DB_")

    url: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("PAYMENTS_DB_URL", "PAYMENTS_DATABASE_URL"),
        description="Payments database connection string",
    )


class RedisSettings(BaseSettings):
    """Redis Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=20, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    decode_responses: bool = Field(default=True, description="Decode responses to strings")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class MetricsSettings(BaseSettings):
    """User metrics listing and dashboard summary"""

    model_config = SettingsConfigDict(env_prefix="METRICS_")

    default_page_size: int = Field(default=10, description="Users per page when no limit is given")
    min_page_size: int = Field(default=1, description="Lower clamp for the page size")
    max_page_size: int = Field(default=100, description="Upper clamp for the page size")
    user_concurrency: int = Field(default=4, description="Users computed concurrently per page")
    top_services_limit: int = Field(default=3, description="Number of top services per user")
    dashboard_cache_ttl: int = Field(default=300, description="Dashboard summary TTL in seconds")
    dashboard_window_days: int = Field(default=30, description="Dashboard summary window in days")
    recent_activity_limit: int = Field(default=10, description="Entries in the dashboard activity feed")

    @field_validator("user_concurrency", "min_page_size", "dashboard_window_days", "recent_activity_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Must be at least 1")
        return v


class SecuritySettings(BaseSettings):
    """CORS configuration. Authentication is handled upstream."""

    model_config = SettingsConfigDict(env_prefix="")

    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        alias="CORS_ORIGINS",
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="admin-panel-metrics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    orders_db: OrdersDatabaseSettings = Field(default_factory=OrdersDatabaseSettings)
    payments_db: PaymentsDatabaseSettings = Field(default_factory=PaymentsDatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
