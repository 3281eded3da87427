"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from planning_poker.domain.sessions import DEFAULT_SESSION_TITLE

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_key: str
    sessions_table: str = "sessions"
    default_session_title: str = DEFAULT_SESSION_TITLE
    write_max_attempts: int = 3
    write_retry_base_delay_seconds: float = 0.1
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
