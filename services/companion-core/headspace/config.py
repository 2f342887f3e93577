"""Configuration settings for the Headspace companion core."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_PERSONA = "A person interested in self-reflection and personal growth through journaling."


class Settings(BaseSettings):
    """Runtime settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="HEADSPACE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # External API
    api_base_url: str = "https://headspace-backend.onrender.com"
    summarize_path: str = "/api/summarize"
    conversation_path: str = "/api/conversation"
    request_timeout_seconds: float = 30.0

    # Retry policy for external calls
    retry_attempts: int = 3
    retry_base_delay_seconds: float = 1.0

    # Sync
    reconcile_interval_seconds: float = 2.0
    store_path: str | None = None  # None keeps everything in memory

    default_persona: str = DEFAULT_USER_PERSONA
    default_companion: str = "default"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
