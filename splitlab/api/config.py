"""API configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """API settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SPLITLAB_API_",
        extra="ignore",
    )

    # API
    api_title: str = "SplitLab Experimentation API"
    api_version: str = "0.1.0"
    api_description: str = "Experiment configuration, variant assignment and results analysis"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False


@lru_cache
def get_api_settings() -> APISettings:
    """Get cached API settings."""
    return APISettings()
