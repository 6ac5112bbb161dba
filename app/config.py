"""
Runtime configuration helpers for the COY backend.

Loads DATABASE_URL and the tunables for retries, rate limiting, feed ranking
and retention from the environment or the ``.env`` file in the project root.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root
BASE_DIR = Path(__file__).resolve().parents[1]

# Absolute path to .env
ENV_PATH = BASE_DIR / ".env"

# Load .env defaults without overriding environment variables provided by the platform
load_dotenv(dotenv_path=ENV_PATH, override=False)


class Settings(BaseSettings):
    # Required; set in the environment or .env
    database_url: str = Field(..., alias="DATABASE_URL")

    app_name: str = Field(default="COY Backend", alias="APP_NAME")
    api_version: str = Field(default="0.1.0", alias="API_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server-side functions (block/unblock). Unset means direct writes only.
    functions_base_url: str | None = Field(default=None, alias="FUNCTIONS_BASE_URL")
    functions_timeout: float = Field(default=10.0, alias="FUNCTIONS_TIMEOUT")

    # Object storage
    storage_bucket: str | None = Field(default=None, alias="STORAGE_BUCKET")
    storage_region: str | None = Field(default=None, alias="STORAGE_REGION")
    storage_endpoint: str | None = Field(default=None, alias="STORAGE_ENDPOINT")
    storage_public_base_url: str | None = Field(default=None, alias="STORAGE_PUBLIC_BASE_URL")

    # Retry / backoff
    retry_max_attempts: int = Field(default=4, alias="RETRY_MAX_ATTEMPTS")
    retry_initial_delay: float = Field(default=1.0, alias="RETRY_INITIAL_DELAY")
    retry_max_delay: float = Field(default=30.0, alias="RETRY_MAX_DELAY")

    # Outbound rate limiting
    rate_limit_per_window: int = Field(default=30, alias="RATE_LIMIT_PER_WINDOW")
    rate_limit_window_seconds: float = Field(default=60.0, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_max_concurrent: int = Field(default=5, alias="RATE_LIMIT_MAX_CONCURRENT")

    # Media pipeline
    upload_max_concurrency: int = Field(default=5, alias="UPLOAD_MAX_CONCURRENCY")
    image_max_dimension: int = Field(default=2048, alias="IMAGE_MAX_DIMENSION")
    image_jpeg_quality: int = Field(default=70, alias="IMAGE_JPEG_QUALITY")

    # Retention and the background sweep
    deleted_collection_retention_days: int = Field(default=15, alias="DELETED_COLLECTION_RETENTION_DAYS")
    notification_ttl_hours: int = Field(default=24, alias="NOTIFICATION_TTL_HOURS")
    sweep_interval_minutes: int = Field(default=60, alias="SWEEP_INTERVAL_MINUTES")

    # Pagination
    initial_page_size: int = Field(default=20, alias="INITIAL_PAGE_SIZE")
    page_size: int = Field(default=15, alias="PAGE_SIZE")

    # Discover feed weights
    discover_follows_creator: float = Field(default=10.0, alias="DISCOVER_FOLLOWS_CREATOR")
    discover_friend_joined: float = Field(default=8.0, alias="DISCOVER_FRIEND_JOINED")
    discover_friend_follows_creator: float = Field(default=4.0, alias="DISCOVER_FRIEND_FOLLOWS_CREATOR")
    discover_friend_liked: float = Field(default=3.0, alias="DISCOVER_FRIEND_LIKED")
    discover_friend_posted: float = Field(default=6.0, alias="DISCOVER_FRIEND_POSTED")
    discover_friend_in_collection: float = Field(default=6.0, alias="DISCOVER_FRIEND_IN_COLLECTION")
    discover_members_per_point: float = Field(default=50.0, alias="DISCOVER_MEMBERS_PER_POINT")
    discover_recency_max: float = Field(default=10.0, alias="DISCOVER_RECENCY_MAX")
    discover_recency_hours: float = Field(default=10.0, alias="DISCOVER_RECENCY_HOURS")
    discover_jitter_max: float = Field(default=3.0, alias="DISCOVER_JITTER_MAX")
    discover_candidate_limit: int = Field(default=200, alias="DISCOVER_CANDIDATE_LIMIT")
    discover_default_limit: int = Field(default=50, alias="DISCOVER_DEFAULT_LIMIT")

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
