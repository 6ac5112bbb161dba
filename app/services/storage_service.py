"""S3-compatible object storage helpers for profile, collection, post and chat media."""
from __future__ import annotations

import io
import logging
import re
import uuid
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, Iterable

from boto3.session import Session
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from ..config import get_settings
from ..security.secrets import MissingSecretError, is_placeholder, require_secret

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class StorageConfig:
    """Runtime configuration for the media bucket."""

    key: str
    secret: str
    region: str | None
    bucket: str
    endpoint: str | None
    public_base_url: str


@dataclass(frozen=True)
class StorageUploadResult:
    url: str
    key: str
    content_type: str
    size: int


class StorageConfigurationError(RuntimeError):
    """Raised when required storage settings are missing or invalid."""


class StorageUploadError(RuntimeError):
    """Raised when an upload to the media bucket fails."""


class StorageDeletionError(RuntimeError):
    """Raised when deleting an object from the media bucket fails."""


@lru_cache(maxsize=1)
def load_storage_config() -> StorageConfig:
    """Read and validate bucket configuration from settings and secrets."""

    settings = get_settings()
    bucket = (settings.storage_bucket or "").strip()
    if is_placeholder(bucket):
        raise StorageConfigurationError("STORAGE_BUCKET must be set to the target bucket name")

    try:
        key = require_secret("STORAGE_ACCESS_KEY")
        secret = require_secret("STORAGE_SECRET_KEY")
    except MissingSecretError as exc:
        raise StorageConfigurationError(str(exc)) from exc

    endpoint = (settings.storage_endpoint or "").strip().rstrip("/") or None
    public_base_url = (settings.storage_public_base_url or "").strip().rstrip("/")
    if not public_base_url:
        if endpoint:
            public_base_url = f"{endpoint}/{bucket}"
        else:
            public_base_url = f"https://{bucket}.s3.amazonaws.com"

    return StorageConfig(
        key=key,
        secret=secret,
        region=(settings.storage_region or "").strip() or None,
        bucket=bucket,
        endpoint=endpoint,
        public_base_url=public_base_url,
    )


@lru_cache(maxsize=1)
def get_storage_client() -> BaseClient:
    """Create a singleton boto3 S3 client."""

    config = load_storage_config()
    session = Session()
    return session.client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint,
        aws_access_key_id=config.key,
        aws_secret_access_key=config.secret,
    )


def _sanitize_segments(parts: Iterable[str]) -> list[str]:
    sanitized: list[str] = []
    for part in parts:
        if part in {"", ".", ".."}:
            continue
        cleaned = re.sub(r"[^A-Za-z0-9._-]", "-", part.strip())
        cleaned = re.sub(r"-+", "-", cleaned).strip("-._")
        if cleaned:
            sanitized.append(cleaned)
    return sanitized


def object_key(filename: str | None, folder: str) -> str:
    """Generate a unique object key under ``folder``, keeping a sane file extension."""

    extension = Path(filename or "").suffix.lower()
    if extension and not re.fullmatch(r"\.[A-Za-z0-9]{1,10}", extension):
        extension = ""
    safe_folder = "/".join(_sanitize_segments((folder or "uploads").replace("\\", "/").split("/"))) or "uploads"
    return f"{safe_folder}/{uuid.uuid4().hex}{extension}"


def public_url(key: str, *, config: StorageConfig | None = None) -> str:
    config = config or load_storage_config()
    return f"{config.public_base_url}/{key.lstrip('/')}"


def key_from_url(url: str, *, config: StorageConfig | None = None) -> str | None:
    """Return the object key for a URL served from this bucket, else ``None``."""

    config = config or load_storage_config()
    prefix = f"{config.public_base_url}/"
    if not url or not url.startswith(prefix):
        return None
    return url[len(prefix):] or None


def upload_bytes(
    data: bytes,
    *,
    content_type: str,
    folder: str,
    filename: str | None = None,
    on_progress: ProgressCallback | None = None,
    client: BaseClient | None = None,
) -> StorageUploadResult:
    """Upload ``data`` and report byte progress as a fraction in ``[0, 1]``."""

    config = load_storage_config()
    s3_client = client or get_storage_client()
    key = object_key(filename, folder)
    total = len(data)
    transferred = 0

    def _callback(chunk: int) -> None:
        nonlocal transferred
        transferred += chunk
        if on_progress is not None and total:
            on_progress(min(transferred / total, 1.0))

    try:
        s3_client.upload_fileobj(
            io.BytesIO(data),
            config.bucket,
            key,
            ExtraArgs={"ACL": "public-read", "ContentType": content_type},
            Callback=_callback,
        )
    except (ClientError, BotoCoreError) as exc:
        logger.exception("Upload of %s to the media bucket failed", key)
        raise StorageUploadError("Upload to media storage failed") from exc

    if on_progress is not None:
        on_progress(1.0)
    return StorageUploadResult(url=public_url(key, config=config), key=key, content_type=content_type, size=total)


def delete_object_by_url(url: str, *, client: BaseClient | None = None) -> bool:
    """Delete the object behind ``url``; returns False when the URL is not ours."""

    config = load_storage_config()
    key = key_from_url(url, config=config)
    if key is None:
        return False
    s3_client = client or get_storage_client()
    try:
        s3_client.delete_object(Bucket=config.bucket, Key=key)
    except (ClientError, BotoCoreError) as exc:
        logger.exception("Failed to delete storage object %s", key)
        raise StorageDeletionError("Unable to delete media from storage") from exc
    return True


def delete_media_best_effort(urls: Iterable[str | None]) -> int:
    """Delete each URL, logging and skipping failures. Returns how many were removed."""

    removed = 0
    for url in urls:
        if not url:
            continue
        try:
            if delete_object_by_url(url):
                removed += 1
        except (StorageConfigurationError, StorageDeletionError) as exc:
            logger.warning("Skipping media cleanup for %s: %s", url, exc)
    return removed


async def upload_bytes_async(data: bytes, **kwargs) -> StorageUploadResult:
    return await run_in_threadpool(upload_bytes, data, **kwargs)


__all__ = [
    "ProgressCallback",
    "StorageConfig",
    "StorageConfigurationError",
    "StorageDeletionError",
    "StorageUploadError",
    "StorageUploadResult",
    "delete_media_best_effort",
    "delete_object_by_url",
    "get_storage_client",
    "key_from_url",
    "load_storage_config",
    "object_key",
    "public_url",
    "upload_bytes",
    "upload_bytes_async",
]
