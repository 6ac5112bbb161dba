"""Compress and upload post media with bounded concurrency and blended progress.

Overall progress is a weighted blend of two phases per item: compression
counts for 30% and the upload for 70%. Items are averaged, so a batch of
four reaches 0.25 when one item is fully done.
"""
from __future__ import annotations

import asyncio
import io
import logging
import threading
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, Sequence

from fastapi.concurrency import run_in_threadpool
from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import get_settings
from .retry import execute_with_retry
from .storage_service import ProgressCallback, StorageUploadResult, delete_media_best_effort, upload_bytes

logger = logging.getLogger(__name__)

COMPRESSION_WEIGHT = 0.3
UPLOAD_WEIGHT = 0.7


class MediaProcessingError(ValueError):
    """Raised when an image cannot be decoded for compression."""


class Uploader(Protocol):
    def __call__(
        self,
        data: bytes,
        *,
        content_type: str,
        folder: str,
        filename: str | None,
        on_progress: ProgressCallback | None,
    ) -> Awaitable[StorageUploadResult]: ...


@dataclass(frozen=True, slots=True)
class MediaUpload:
    data: bytes
    content_type: str
    filename: str | None = None

    @property
    def kind(self) -> str:
        return "video" if self.content_type.startswith("video/") else "image"


@dataclass(frozen=True, slots=True)
class UploadedMedia:
    url: str
    type: str
    size: int

    def as_item(self) -> dict[str, str | None]:
        return {"url": self.url, "type": self.type, "thumbnail_url": None}


class UploadProgress:
    """Blend per-item phase fractions into one monotonic overall fraction.

    Upload callbacks arrive from worker threads, so updates are serialised.
    """

    def __init__(self, total_items: int, on_progress: Callable[[float], None] | None = None) -> None:
        self._compression = [0.0] * total_items
        self._upload = [0.0] * total_items
        self._on_progress = on_progress
        self._lock = threading.Lock()
        self.reported = 0.0

    def _overall(self) -> float:
        if not self._compression:
            return 1.0
        total = sum(
            COMPRESSION_WEIGHT * compressed + UPLOAD_WEIGHT * uploaded
            for compressed, uploaded in zip(self._compression, self._upload)
        )
        return min(total / len(self._compression), 1.0)

    def _publish(self) -> None:
        value = self._overall()
        if value <= self.reported:
            return
        self.reported = value
        if self._on_progress is not None:
            self._on_progress(value)

    def compressed(self, index: int) -> None:
        with self._lock:
            self._compression[index] = 1.0
            self._publish()

    def uploaded(self, index: int, fraction: float) -> None:
        with self._lock:
            self._upload[index] = max(self._upload[index], min(max(fraction, 0.0), 1.0))
            self._publish()

    def finish(self) -> None:
        with self._lock:
            self._compression = [1.0] * len(self._compression)
            self._upload = [1.0] * len(self._upload)
            if self.reported < 1.0:
                self.reported = 1.0
                if self._on_progress is not None:
                    self._on_progress(1.0)


def compress_image(data: bytes, *, max_dimension: int | None = None, quality: int | None = None) -> bytes:
    """Re-encode as JPEG with the longest side capped, honouring EXIF orientation."""

    settings = get_settings()
    max_dimension = max_dimension or settings.image_max_dimension
    quality = quality or settings.image_jpeg_quality
    try:
        with Image.open(io.BytesIO(data)) as source:
            image = ImageOps.exif_transpose(source)
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=quality, optimize=True)
    except (UnidentifiedImageError, OSError) as exc:
        raise MediaProcessingError("Unable to process image") from exc
    return buffer.getvalue()


async def storage_uploader(
    data: bytes,
    *,
    content_type: str,
    folder: str,
    filename: str | None,
    on_progress: ProgressCallback | None,
) -> StorageUploadResult:
    """Default uploader: the media bucket, through the shared retry policy."""

    async def _attempt() -> StorageUploadResult:
        return await run_in_threadpool(
            upload_bytes,
            data,
            content_type=content_type,
            folder=folder,
            filename=filename,
            on_progress=on_progress,
        )

    return await execute_with_retry(_attempt, operation_name=f"upload to {folder}")


async def upload_media_items(
    items: Sequence[MediaUpload],
    *,
    folder: str = "posts",
    uploader: Uploader | None = None,
    on_progress: Callable[[float], None] | None = None,
    max_concurrency: int | None = None,
) -> list[UploadedMedia]:
    """Compress images, upload everything, and return results in input order.

    If any item fails, media already uploaded for this batch is removed before
    the error propagates.
    """

    uploader = uploader or storage_uploader
    limit = max_concurrency or get_settings().upload_max_concurrency
    if limit < 1:
        raise ValueError("max_concurrency must be positive")
    semaphore = asyncio.Semaphore(limit)
    progress = UploadProgress(len(items), on_progress)
    results: list[UploadedMedia | None] = [None] * len(items)

    async def _process(index: int, item: MediaUpload) -> None:
        async with semaphore:
            if item.kind == "image":
                data = await run_in_threadpool(compress_image, item.data)
                content_type = "image/jpeg"
                filename = "image.jpg"
            else:
                data, content_type, filename = item.data, item.content_type, item.filename
            progress.compressed(index)

            result = await uploader(
                data,
                content_type=content_type,
                folder=folder,
                filename=filename,
                on_progress=lambda fraction: progress.uploaded(index, fraction),
            )
            progress.uploaded(index, 1.0)
            results[index] = UploadedMedia(url=result.url, type=item.kind, size=result.size)

    def _rollback() -> None:
        uploaded = [result.url for result in results if result is not None]
        if uploaded:
            logger.warning("Media batch failed; removing %d uploaded item(s)", len(uploaded))
            delete_media_best_effort(uploaded)

    # Every sibling runs to completion before rollback so late finishers are removed too.
    try:
        outcomes = await asyncio.gather(
            *(_process(index, item) for index, item in enumerate(items)),
            return_exceptions=True,
        )
    except BaseException:
        _rollback()
        raise
    failure = next((outcome for outcome in outcomes if isinstance(outcome, BaseException)), None)
    if failure is not None:
        _rollback()
        raise failure

    progress.finish()
    return [result for result in results if result is not None]


__all__ = [
    "COMPRESSION_WEIGHT",
    "MediaProcessingError",
    "MediaUpload",
    "UPLOAD_WEIGHT",
    "UploadProgress",
    "UploadedMedia",
    "Uploader",
    "compress_image",
    "storage_uploader",
    "upload_media_items",
]
