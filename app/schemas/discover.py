"""Schemas for the Discover feed."""
from __future__ import annotations

from pydantic import BaseModel

from .collections import CollectionResponse
from .posts import PostResponse


class DiscoverPost(BaseModel):
    post: PostResponse
    collection: CollectionResponse


class DiscoverFeedResponse(BaseModel):
    collections: list[CollectionResponse]
    posts: list[DiscoverPost]


__all__ = ["DiscoverFeedResponse", "DiscoverPost"]
