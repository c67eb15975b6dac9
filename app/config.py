"""
Application Configuration - Pydantic Settings for type-safe config.

FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 10
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 1800
    run_migrations_on_startup: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Brendon Highlights API"
    api_version: str = "0.1.0"
    api_description: str = "Credits ledger and video submission gate for highlight generation"

    # Identity provider (Supabase Auth)
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    # When set, bearer tokens are verified locally instead of calling the provider
    auth_jwt_secret: str = ""
    auth_jwt_audience: str = "authenticated"
    auth_timeout_seconds: float = 5.0

    # Payment gateway webhooks
    webhook_secret: str = ""
    webhook_signature_header: str = "X-Webhook-Signature"
    webhook_allow_unsigned: bool = False  # development only

    # Checkout links per credit pack (created in the gateway dashboard)
    checkout_link_p150: str = ""
    checkout_link_p300: str = ""
    checkout_link_p500: str = ""
    checkout_link_pro: str = ""

    # Out-of-process highlight worker
    worker_api_key: str = ""

    # Listing
    videos_list_limit: int = 50

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "brendon-api"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.videos_list_limit <= 0:
            errors.append("VIDEOS_LIST_LIMIT must be positive")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url

    def checkout_link(self, setting_name: str) -> str:
        """Resolve a checkout link by its settings attribute name."""
        return str(getattr(self, setting_name, "") or "")


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
