"""Configuration settings for Invulnerable."""

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
    app_name: str = "Invulnerable"
    log_level: str = "INFO"
    timezone: str = "UTC"  # Display timezone for rendered notification timestamps

    # Database
    database_url: str = "sqlite+aiosqlite:////data/invulnerable.db"

    # Links back to the dashboard (e.g. https://invulnerable.example.com)
    frontend_url: str | None = None

    # Webhook delivery
    webhook_timeout_seconds: float = 10.0

    # SLA policy captured onto scans that arrive without one (days per severity)
    sla_critical_days: int = 7
    sla_high_days: int = 30
    sla_medium_days: int = 90
    sla_low_days: int = 180

    # Fraction of the SLA budget that counts as "warning" (0 disables the band)
    sla_warning_fraction: float = 0.2

    # API limits
    bulk_update_limit: int = 100


settings = Settings()
