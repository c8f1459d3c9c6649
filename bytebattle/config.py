"""
Configuration and settings for the Byte&Battle backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the API, worker and clients."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    # Origins of the browser client; JSON list in the environment
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], env="CORS_ORIGINS")

    # Database (Postgres expected, any SQLAlchemy URL works)
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # S3-compatible storage for avatars
    storage_endpoint: Optional[str] = Field(default=None, env="STORAGE_ENDPOINT")
    storage_region: Optional[str] = Field(default=None, env="STORAGE_REGION")
    storage_bucket: Optional[str] = Field(default=None, env="STORAGE_BUCKET")
    storage_public_url: Optional[str] = Field(
        default=None, env="STORAGE_PUBLIC_URL"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )

    # Redis: judge queue and realtime change feed
    redis_url: Optional[str] = Field(default=None, env="REDIS_URL")
    redis_queue_key: str = Field(
        default="bytebattle:submissions", env="REDIS_QUEUE_KEY"
    )
    redis_channel_prefix: str = Field(
        default="bytebattle:changes", env="REDIS_CHANNEL_PREFIX"
    )

    # Remote code execution (Piston v2)
    piston_url: str = Field(
        default="https://emkc.org/api/v2/piston/execute", env="PISTON_URL"
    )
    piston_compile_timeout_ms: int = Field(
        default=10000, env="PISTON_COMPILE_TIMEOUT_MS"
    )
    piston_run_timeout_ms: int = Field(default=3000, env="PISTON_RUN_TIMEOUT_MS")
    piston_request_timeout_seconds: float = Field(
        default=30.0, env="PISTON_REQUEST_TIMEOUT_SECONDS"
    )
    execution_max_concurrency: int = Field(
        default=1, env="EXECUTION_MAX_CONCURRENCY"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
