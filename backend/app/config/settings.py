"""
Application Settings for Unistudents Match

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Payment provider credentials are optional at startup: an adapter whose
    credentials are missing raises ConfigurationError when it is first used.
    """

    # Application Settings
    app_name: str = "Unistudents Match"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    frontend_url: str = "http://localhost:5173"
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Auth tokens
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_expire_days: int = 7

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    # Stripe (direct-charge processor)
    stripe_secret_key: Optional[str] = None

    # PayPal (recurring-subscription processor)
    paypal_client_id: Optional[str] = None
    paypal_client_secret: Optional[str] = None
    paypal_base_url: str = "https://api-m.sandbox.paypal.com"
    paypal_plan_id: Optional[str] = None

    # Product
    subscription_price: Decimal = Decimal("14.99")
    subscription_currency: str = "GBP"
    subscription_description: str = "Unistudents Match Subscription"

    # Outbound provider calls
    provider_timeout_seconds: float = 15.0
    provider_max_retries: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 5.0

    # How long a subscribe request may hold the in-flight claim on a record
    subscribe_claim_ttl_seconds: int = 120

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @model_validator(mode="after")
    def validate_credentials(self) -> "Settings":
        """Validate credential pairs and production-only requirements."""
        if bool(self.paypal_client_id) != bool(self.paypal_client_secret):
            raise ValueError(
                "PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET must be set together"
            )

        if self.is_production and len(self.jwt_secret) < 32:
            raise ValueError(
                "JWT_SECRET must be at least 32 characters in production"
            )

        if self.provider_max_retries < 1:
            raise ValueError("PROVIDER_MAX_RETRIES must be at least 1")

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key)

    @property
    def paypal_configured(self) -> bool:
        return bool(self.paypal_client_id and self.paypal_client_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
