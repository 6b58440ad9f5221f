"""
Configuration and settings for the BumpIn backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import (
    CACHE_LIFETIME_SECONDS,
    SEARCH_RESULTS_LIMIT,
    SESSION_IDLE_SECONDS,
)


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Firebase project (Firestore, Auth, Cloud Messaging)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_credentials_path: Optional[str] = Field(default=None)

    # Optional SQL-backed document store (any SQLAlchemy URL)
    database_url: Optional[str] = Field(default=None)

    # S3-compatible storage for profile pictures
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_bucket: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Notification queue (Redis)
    redis_url: Optional[str] = Field(default=None)
    redis_notification_queue_key: str = Field(default="bumpin:notifications")

    # Store call policy
    store_timeout_seconds: float = Field(default=10.0, gt=0)
    store_read_attempts: int = Field(default=3, ge=1)
    store_retry_base_delay: float = Field(default=0.2, ge=0)

    # Social graph behavior
    cache_lifetime_seconds: float = Field(default=CACHE_LIFETIME_SECONDS, gt=0)
    search_results_limit: int = Field(default=SEARCH_RESULTS_LIMIT, ge=1)
    enforce_block_on_send: bool = Field(default=True)

    # Signed-in sessions unused for this long are closed
    session_idle_seconds: float = Field(default=SESSION_IDLE_SECONDS, gt=0)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
