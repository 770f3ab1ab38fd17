"""Application settings using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration.

    Loads from environment variables with MODELGATE_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="MODELGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Project layout
    project_root: Path = Path(".")
    models_dir: str = "models"

    # Promotion settings
    create_backup: bool = True
    lock_timeout_seconds: float = 10.0
    default_primary_metric: str = "accuracy"
    min_improvement_percent: float = 0.0

    # Retraining settings
    default_retraining_interval_days: int = 30

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    api_title: str = "modelgate Governance API"
    api_version: str = "0.1.0"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
