"""Configuration management for pulsewarden."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="",
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Logging Configuration
    log_to_file: bool = Field(default=False, description="Enable file-based logging")
    log_directory: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=52428800,  # 50MB
        description="Max size per log file before rotation",
    )
    log_file_backup_count: int = Field(
        default=10, description="Number of rotated log files to keep"
    )
    log_file_prefix: str = Field(default="pulsewarden", description="Prefix for log file names")

    # PostgreSQL (heartbeat log history)
    postgres_dsn: str | None = Field(
        default=None,
        description="PostgreSQL connection string; in-memory history when unset",
    )

    # Heartbeat
    heartbeat_enabled: bool = Field(default=True, description="Enable the heartbeat run loop")
    heartbeat_interval_ms: int = Field(
        default=30_000, description="Global check interval used when a check sets none"
    )
    heartbeat_personality_id: str | None = Field(
        default=None, description="Personality the heartbeat history is scoped to"
    )
    webhook_default_timeout_ms: int = Field(
        default=5_000, description="Per-attempt timeout for webhook actions"
    )
    heartbeat_notify_ok: bool = Field(
        default=True, description="Deliver notify actions for checks that come back ok"
    )

    @field_validator("heartbeat_interval_ms", "webhook_default_timeout_ms")
    @classmethod
    def validate_positive_ms(cls, v: int) -> int:
        """Validate millisecond values are positive."""
        if v <= 0:
            raise ValueError(f"Value must be a positive number of milliseconds, got: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got: {v}")
        return v.upper()

    @property
    def log_file_path(self) -> str:
        """Get the full log file path."""
        return f"{self.log_directory}/{self.log_file_prefix}.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
