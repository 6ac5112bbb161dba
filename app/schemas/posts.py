"""Pydantic schemas for collection posts."""
from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MediaItem(BaseModel):
    url: str = Field(..., min_length=1, max_length=1024)
    type: Literal["image", "video"] = "image"
    thumbnail_url: str | None = None


class PostCreate(BaseModel):
    """Payload for publishing media that is already uploaded."""

    collection_id: UUID
    caption: str | None = Field(default=None, max_length=2000)
    media_items: list[MediaItem] = Field(..., min_length=1)


class PostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    collection_id: UUID
    author_id: UUID
    caption: str | None = None
    media_items: list[MediaItem] = Field(default_factory=list)
    is_pinned: bool = False
    created_at: datetime
    star_count: int = 0
    viewer_has_starred: bool = False


class PostPageResponse(BaseModel):
    items: list[PostResponse]
    next_cursor: str | None = None
    has_more: bool = False


class PinRequest(BaseModel):
    pinned: bool


class StarRequest(BaseModel):
    starred: bool


class StarResponse(BaseModel):
    post_id: UUID
    star_count: int
    viewer_has_starred: bool


class PostCommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class PostCommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    post_id: UUID
    user_id: UUID
    content: str
    created_at: datetime


class PostCommentPageResponse(BaseModel):
    items: list[PostCommentResponse]
    next_cursor: str | None = None
    has_more: bool = False


class MediaUploadResponse(BaseModel):
    items: list[MediaItem]


__all__ = [
    "MediaItem",
    "MediaUploadResponse",
    "PinRequest",
    "PostCommentCreate",
    "PostCommentPageResponse",
    "PostCommentResponse",
    "PostCreate",
    "PostPageResponse",
    "PostResponse",
    "StarRequest",
    "StarResponse",
]
