"""Configuration for sentence vault."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the annotation, vault and thread service clients."""

    model_config = SettingsConfigDict(
        env_prefix="SENTENCE_VAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_url: str = "http://localhost:8000"

    # Timeouts (seconds)
    default_timeout: float = 15.0
    generation_timeout: float = 60.0  # interpretation generation endpoints
    chat_timeout: float = 120.0

    highlight_color: str = "yellow"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
