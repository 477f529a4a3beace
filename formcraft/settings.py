"""Runtime settings loaded from `.env` and environment variables."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Package settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    project_name: str = "formcraft"
    app_env: str = Field(
        default="dev",
        validation_alias="APP_ENV",
        description="Application environment, e.g. 'dev', 'prod'.",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Logging level, e.g. 'INFO', 'DEBUG'.",
    )
    log_json: bool = Field(
        default=True,
        validation_alias="LOG_JSON",
        description="Enable JSON formatted logs.",
    )
    log_file: Optional[str] = Field(
        default=None,
        validation_alias="LOG_FILE",
        description="File path for log output.",
    )

    cache_ttl_seconds: float = Field(
        default=60.0,
        ge=0,
        validation_alias="CACHE_TTL_SECONDS",
        description="Lifetime of cached form/template/submission reads. 0 disables caching.",
    )

    embed_allow_missing_referer: bool = Field(
        default=True,
        validation_alias="EMBED_ALLOW_MISSING_REFERER",
        description="Authorize embed loads that carry no referer. Disable in production to require one.",
    )
    embed_base_url: str = Field(
        default="http://localhost:8000",
        validation_alias="EMBED_BASE_URL",
        description="Public base URL used when rendering iframe embed code.",
    )
    embed_key_bytes: int = Field(
        default=24,
        ge=16,
        validation_alias="EMBED_KEY_BYTES",
        description="Entropy of generated embedding keys, in bytes.",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return settings, loading them once per process."""
    return Settings()


__all__ = ["Settings", "get_settings"]
