"""
Application Settings for the Directory Billing backend

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated once at startup; components
downstream assume their dependencies are configured.
"""

from functools import lru_cache
from typing import Literal, Optional
from pydantic import ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from directory_billing.infrastructure.exceptions import ConfigurationError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    NOTIFIER_BACKEND controls how notifications are dispatched:
    - log: notifications are only logged (default for dev)
    - http: POSTed to the transactional email service at NOTIFIER_URL
    """

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    site_url: str = "http://localhost:3000"

    # CORS Configuration
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: str
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    # Stripe Configuration
    stripe_secret_key: str
    stripe_webhook_secret: str
    stripe_webhook_tolerance_seconds: int = 300
    stripe_price_pro: str = "price_pro_annual"
    stripe_price_agency: str = "price_agency_annual"
    stripe_price_boost: str = "price_boost"
    stripe_price_refresh: str = "price_llms_txt"
    stripe_price_metadata: str = "price_metadata"

    # Authentication (tokens issued by the external auth provider)
    auth_jwt_secret: str
    auth_jwt_audience: str = "authenticated"
    auth_jwt_issuer: Optional[str] = None

    # Scheduled job shared secret
    cron_secret: str

    # Notifications
    notifier_backend: Literal["log", "http"] = "log"
    notifier_url: Optional[str] = None
    notifier_api_key: Optional[str] = None
    notifier_timeout_seconds: float = 10.0

    # Entitlement policy
    trial_days: int = 90
    freshness_window_days: int = 90
    renewal_lookahead_days: int = 7
    trial_ended_lookback_days: int = 30
    payment_failed_grace_hours: int = 0
    boost_days: int = 30

    # Reconciliation
    reconcile_concurrency: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_dependencies(self) -> "Settings":
        """Fail fast on incomplete collaborator configuration."""
        if self.notifier_backend == "http" and not self.notifier_url:
            raise ValueError("NOTIFIER_URL required when NOTIFIER_BACKEND=http")

        if self.payment_failed_grace_hours < 0:
            raise ValueError("PAYMENT_FAILED_GRACE_HOURS must not be negative")

        if self.reconcile_concurrency < 1:
            raise ValueError("RECONCILE_CONCURRENCY must be at least 1")

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance. Raises ConfigurationError on invalid env."""
    try:
        return Settings()
    except ValidationError as e:
        missing = [
            ".".join(str(part) for part in err["loc"]).upper()
            for err in e.errors()
            if err["type"] == "missing"
        ]
        raise ConfigurationError(
            f"Invalid configuration: {e.error_count()} error(s)",
            missing_keys=missing,
            original_error=e,
        )


# Convenience export for direct import
settings = get_settings()
