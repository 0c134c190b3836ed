"""Configuration management for MediBook."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/medibook.db",
        description="SQLAlchemy async URL (postgresql+psycopg://... in production)",
    )
    seed_departments: bool = Field(
        default=True,
        description="Insert the default departments on init_db",
    )

    # Identity tokens (issued by the external identity subsystem)
    jwt_secret: str = Field(
        default="change-me",
        description="Shared HS256 secret used to verify caller tokens",
    )
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60)

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)
    api_key: str = Field(
        default="",
        description="API key for identity provisioning hooks",
    )

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins",
    )

    # Scheduling
    clinic_timezone: str = Field(
        default="UTC",
        description="IANA timezone used to decide whether a slot is in the past",
    )

    # Change feed
    feed_queue_size: int = Field(
        default=100,
        description="Per-subscriber buffer before the oldest event is dropped",
    )

    # Debug
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode (exposes error details in responses)",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @property
    def has_api_key(self) -> bool:
        """Check if provisioning hooks are enabled."""
        return bool(self.api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
