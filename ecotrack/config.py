"""
Configuration and settings for the EcoTrack backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Database (MongoDB)
    mongodb_uri: Optional[str] = Field(default=None)
    mongodb_db_name: str = Field(default="track_eco")
    challenges_collection: str = Field(default="Challenges")
    user_challenges_collection: str = Field(default="UserChallenges")
    events_collection: str = Field(default="event")

    # Startup connection contract
    db_connect_retries: int = Field(default=5, ge=1)
    db_connect_backoff_seconds: float = Field(default=1.0, ge=0)
    db_server_selection_timeout_ms: int = Field(default=5000, ge=1)

    # HTTP server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    debug: bool = Field(default=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
