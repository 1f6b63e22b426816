"""
Configuration and settings for the Zenflow backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TOKEN_SECRET = "dev-secret"


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (any SQLAlchemy URL). Unset or unreachable -> file backend.
    database_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DATABASE_URL", "database_url")
    )
    database_connect_timeout_seconds: int = Field(default=5, ge=1)

    # File backend
    data_file: str = Field(
        default="data.json",
        validation_alias=AliasChoices("ZENFLOW_DATA_FILE", "data_file"),
    )

    # Session tokens
    token_secret: str = Field(
        default=DEFAULT_TOKEN_SECRET,
        validation_alias=AliasChoices("ZENFLOW_SECRET", "token_secret"),
    )
    token_ttl_days: int = Field(
        default=7,
        ge=1,
        validation_alias=AliasChoices("ZENFLOW_TOKEN_TTL_DAYS", "token_ttl_days"),
    )
    password_hash_method: str = "scrypt"

    # HTTP
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    static_dir: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("ZENFLOW_STATIC_DIR", "static_dir"),
    )

    # Observability
    log_level: str = "INFO"
    log_format: str = "text"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
