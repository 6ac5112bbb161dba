"""Image compression, batch uploads, progress blending and rollback."""
from __future__ import annotations

import asyncio
import io

import pytest
from PIL import Image

from app.services import media_upload_service
from app.services.media_upload_service import (
    MediaProcessingError,
    MediaUpload,
    UploadProgress,
    compress_image,
    upload_media_items,
)
from app.services.storage_service import StorageUploadResult


def _png(width: int, height: int, mode: str = "RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color=(200, 30, 30) if mode == "RGB" else (200, 30, 30, 128)).save(
        buffer, format="PNG"
    )
    return buffer.getvalue()


class FakeUploader:
    def __init__(self, *, fail_on: str | None = None, delays: dict[str, float] | None = None) -> None:
        self.fail_on = fail_on
        self.delays = delays or {}
        self.active = 0
        self.peak = 0
        self.calls: list[tuple[str, str | None]] = []

    async def __call__(self, data, *, content_type, folder, filename, on_progress):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            self.calls.append((content_type, filename))
            if on_progress is not None:
                on_progress(0.5)
            await asyncio.sleep(self.delays.get(filename, 0.01))
            if filename == self.fail_on:
                raise RuntimeError("bucket unavailable")
            name = filename or "blob"
            return StorageUploadResult(
                url=f"https://cdn.test/{folder}/{name}", key=f"{folder}/{name}", content_type=content_type, size=len(data)
            )
        finally:
            self.active -= 1


def test_compress_image_caps_longest_side_and_emits_jpeg():
    compressed = compress_image(_png(400, 200), max_dimension=100, quality=80)

    with Image.open(io.BytesIO(compressed)) as image:
        assert image.format == "JPEG"
        assert image.size == (100, 50)


def test_compress_image_flattens_transparency():
    compressed = compress_image(_png(50, 50, mode="RGBA"), max_dimension=100)

    with Image.open(io.BytesIO(compressed)) as image:
        assert image.mode == "RGB"
        assert image.size == (50, 50)


def test_compress_image_rejects_garbage():
    with pytest.raises(MediaProcessingError):
        compress_image(b"definitely not an image")


def test_progress_is_averaged_per_item():
    seen: list[float] = []
    progress = UploadProgress(4, seen.append)

    progress.compressed(0)
    progress.uploaded(0, 1.0)
    # Regressing callbacks are ignored.
    progress.uploaded(0, 0.2)
    progress.finish()

    assert seen[0] == pytest.approx(0.075)
    assert seen[1] == pytest.approx(0.25)
    assert seen[-1] == 1.0
    assert seen == sorted(seen)


def test_empty_batch_reports_complete():
    seen: list[float] = []

    result = asyncio.run(upload_media_items([], uploader=FakeUploader(), on_progress=seen.append))

    assert result == []
    assert seen == [1.0]


def test_batch_keeps_input_order_and_bounds_concurrency():
    uploader = FakeUploader()
    seen: list[float] = []
    items = [
        MediaUpload(data=_png(30, 30), content_type="image/png", filename="a.png"),
        MediaUpload(data=b"video-1", content_type="video/mp4", filename="one.mp4"),
        MediaUpload(data=b"video-2", content_type="video/mp4", filename="two.mp4"),
        MediaUpload(data=b"video-3", content_type="video/mp4", filename="three.mp4"),
    ]

    results = asyncio.run(
        upload_media_items(items, folder="posts/test", uploader=uploader, on_progress=seen.append, max_concurrency=2)
    )

    assert [item.url for item in results] == [
        "https://cdn.test/posts/test/image.jpg",
        "https://cdn.test/posts/test/one.mp4",
        "https://cdn.test/posts/test/two.mp4",
        "https://cdn.test/posts/test/three.mp4",
    ]
    assert [item.type for item in results] == ["image", "video", "video", "video"]
    assert ("image/jpeg", "image.jpg") in uploader.calls
    assert uploader.peak <= 2
    assert seen == sorted(seen) and seen[-1] == 1.0


def test_failed_batch_removes_already_uploaded_media(monkeypatch):
    removed: list[list[str]] = []
    monkeypatch.setattr(media_upload_service, "delete_media_best_effort", lambda urls: removed.append(list(urls)))
    uploader = FakeUploader(fail_on="bad.mp4")
    items = [
        MediaUpload(data=b"1", content_type="video/mp4", filename="ok-1.mp4"),
        MediaUpload(data=b"2", content_type="video/mp4", filename="ok-2.mp4"),
        MediaUpload(data=b"3", content_type="video/mp4", filename="bad.mp4"),
    ]

    with pytest.raises(RuntimeError):
        asyncio.run(upload_media_items(items, folder="posts", uploader=uploader, max_concurrency=1))

    assert removed == [["https://cdn.test/posts/ok-1.mp4", "https://cdn.test/posts/ok-2.mp4"]]


def test_uploads_finishing_after_a_failure_are_removed_too(monkeypatch):
    removed: list[list[str]] = []
    monkeypatch.setattr(media_upload_service, "delete_media_best_effort", lambda urls: removed.append(list(urls)))
    uploader = FakeUploader(fail_on="bad.mp4", delays={"bad.mp4": 0.0, "late.mp4": 0.05})
    items = [
        MediaUpload(data=b"1", content_type="video/mp4", filename="bad.mp4"),
        MediaUpload(data=b"2", content_type="video/mp4", filename="late.mp4"),
    ]

    with pytest.raises(RuntimeError):
        asyncio.run(upload_media_items(items, folder="posts", uploader=uploader, max_concurrency=2))

    assert removed == [["https://cdn.test/posts/late.mp4"]]


def test_invalid_image_in_batch_raises_processing_error(monkeypatch):
    monkeypatch.setattr(media_upload_service, "delete_media_best_effort", lambda urls: 0)
    items = [MediaUpload(data=b"broken", content_type="image/jpeg")]

    with pytest.raises(MediaProcessingError):
        asyncio.run(upload_media_items(items, uploader=FakeUploader(), max_concurrency=1))
