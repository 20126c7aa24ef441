"""Project configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SPLITLAB_",
        extra="ignore",
    )

    # Experiment validation
    allocation_tolerance: float = 0.01
    default_confidence_level: float = 95.0

    # Analysis
    metric_significance_threshold: float = 0.05

    # Assignment tracking
    assignment_event_name: str = "experiment_assignment"

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
