"""Application configuration using pydantic-settings."""
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: str = "local"
    app_name: str = "vhc-dms-import"
    database_url: str = Field(
        ...,
        validation_alias=AliasChoices("DATABASE_URL", "database_url")
    )
    allowed_origins: str = "*"
    log_level: str = "INFO"

    # Admin API protection
    admin_api_key: Optional[str] = Field(None, validation_alias="ADMIN_API_KEY")
    rate_limit_per_minute: int = Field(60, validation_alias="RATE_LIMIT_PER_MINUTE")

    # Credential encryption (Fernet key, urlsafe base64, 32 bytes)
    encryption_key: Optional[str] = Field(None, validation_alias="ENCRYPTION_KEY")

    # DMS connector
    dms_mode: str = Field("official", validation_alias="DMS_MODE")  # official | off
    dms_external_source: str = Field("gemini_osi", validation_alias="DMS_EXTERNAL_SOURCE")
    dms_timeout_seconds: int = Field(30, validation_alias="DMS_TIMEOUT_SECONDS")
    dms_max_retries: int = Field(3, validation_alias="DMS_MAX_RETRIES")
    dms_default_site: int = Field(1, validation_alias="DMS_DEFAULT_SITE")

    # Scheduler
    scheduler_enabled: bool = Field(False, validation_alias="SCHEDULER_ENABLED")
    import_stale_run_minutes: int = Field(60, validation_alias="IMPORT_STALE_RUN_MINUTES")
    watchdog_interval_minutes: int = Field(15, validation_alias="WATCHDOG_INTERVAL_MINUTES")
    # Per-org import hours and weekdays are wall-clock times in this zone
    import_schedule_timezone: str = Field("Europe/London", validation_alias="IMPORT_SCHEDULE_TIMEZONE")

    @field_validator("database_url")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Normalize DATABASE_URL and ensure SSL is required for PostgreSQL."""
        # Skip normalization for sqlite URLs
        if v.startswith("sqlite"):
            return v

        if v.startswith("postgres://"):
            v = v.replace("postgres://", "postgresql+psycopg://", 1)

        if v.startswith("postgresql://") and not v.startswith("postgresql+psycopg://"):
            v = v.replace("postgresql://", "postgresql+psycopg://", 1)

        if not v.startswith("postgresql+psycopg://"):
            raise ValueError("DATABASE_URL must start with postgresql://, postgresql+psycopg://, or sqlite")

        if "sslmode=" not in v:
            separator = "&" if "?" in v else "?"
            v = f"{v}{separator}sslmode=require"
        elif "sslmode=require" not in v:
            import re
            v = re.sub(r"sslmode=[^&]+", "sslmode=require", v)

        return v

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get allowed origins as a list."""
        if self.allowed_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",")]


settings = Settings()
