"""Centralized configuration using pydantic-settings.

All configuration is loaded from environment variables and .env files.
For nested settings, use double underscore: ENTITLEMENTS__PERMISSION_CACHE_TTL=10
"""

from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from entitlements.schema import Capability, SubscriptionStatus


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Main engine settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = Field("dotmac-entitlements", description="Application name")
    environment: Environment = Field(Environment.DEVELOPMENT, description="Deployment environment")
    testing: bool = Field(False, description="Testing mode")

    # ============================================================
    # Database Configuration
    # ============================================================

    class DatabaseSettings(BaseModel):
        """Database configuration."""

        url: str = Field(
            "sqlite+aiosqlite:///./entitlements.sqlite",
            description="Async SQLAlchemy database URL",
        )
        echo: bool = Field(False, description="Echo SQL statements")
        pool_pre_ping: bool = Field(True, description="Test connections before use")

    database: DatabaseSettings = DatabaseSettings()  # type: ignore[call-arg]

    # ============================================================
    # Observability
    # ============================================================

    class ObservabilitySettings(BaseModel):
        """Logging configuration."""

        log_level: LogLevel = Field(LogLevel.INFO, description="Log level")
        log_format: str = Field("json", description="Log format (json or console)")
        enable_correlation_ids: bool = Field(True, description="Add thread name to log events")

    observability: ObservabilitySettings = ObservabilitySettings()  # type: ignore[call-arg]

    # ============================================================
    # Entitlement Engine
    # ============================================================

    class EntitlementSettings(BaseModel):
        """Permission and quota engine behaviour."""

        usable_subscription_statuses: list[SubscriptionStatus] = Field(
            default_factory=lambda: [SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING],
            description="Subscription statuses under which capabilities resolve",
        )
        trial_restricted_capabilities: list[Capability] = Field(
            default_factory=lambda: [Capability.ORG_BILLING],
            description="Capabilities withheld while the subscription is trialing",
        )
        permission_cache_ttl: float = Field(
            5.0, description="Seconds a resolved capability set may be served from cache"
        )
        permission_cache_size: int = Field(
            10_000, description="Max (user, organization) pairs held in the cache"
        )
        audit_logging: bool = Field(True, description="Emit audit log events")

        @field_validator("usable_subscription_statuses")
        def validate_usable_statuses(cls, v: list[SubscriptionStatus]) -> list[SubscriptionStatus]:
            """ACTIVE is always usable."""
            if SubscriptionStatus.ACTIVE not in v:
                raise ValueError("usable_subscription_statuses must include 'active'")
            return v

    entitlements: EntitlementSettings = EntitlementSettings()  # type: ignore[call-arg]

    @field_validator("environment", mode="before")
    def validate_environment(cls, v: object) -> object:
        """Validate environment."""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.testing or self.environment == Environment.TEST


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get global settings instance (singleton)."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore
    return _settings


def reset_settings() -> None:
    """Reset settings (mainly for testing)."""
    global _settings
    _settings = None


# Convenience export
settings = get_settings()
