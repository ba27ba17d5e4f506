"""
Application Settings for the Platform Billing Service

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Billing knobs:
    - GUARD_RAIL_DAYS: upper bound for a reconciled next_billing_date
    - RECONCILE_CORRUPTION_THRESHOLD_DAYS: bulk scan only repairs rows above it
    - RECONCILE_FULL_RESYNC: bulk scan reconciles every platform tenant
    - REACTIVATE_CANCELLED_ON_PAYMENT: a payment flips cancelled back to active
    """

    # Supabase Configuration
    supabase_url: str
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: str
    supabase_jwt_secret: Optional[str] = None

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration (jobs are triggered cross-origin by schedulers)
    allowed_origins: list[str] = ["*"]

    # Shared secret expected in the x-cron-secret header of job routes
    cron_secret: Optional[str] = None

    # Email (Resend)
    resend_api_key: Optional[str] = None
    email_from_address: str = "Sistema <onboarding@resend.dev>"
    app_url: str = "http://localhost:5173"

    # Reconciliation
    guard_rail_days: int = 400
    reconcile_corruption_threshold_days: int = 400
    reconcile_full_resync: bool = False
    reconcile_concurrency: int = 5
    reactivate_cancelled_on_payment: bool = True

    # Reminders
    reminder_days_before: int = 3
    reminder_dedup_days: int = 2

    # Timeouts for external calls (email, auth admin API)
    request_timeout_seconds: float = 15.0

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_billing_bounds(self) -> "Settings":
        """Reject non-positive billing bounds."""
        for name in (
            "guard_rail_days",
            "reconcile_corruption_threshold_days",
            "reconcile_concurrency",
            "reminder_days_before",
            "reminder_dedup_days",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be a positive integer")

        if self.request_timeout_seconds <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive")

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
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
