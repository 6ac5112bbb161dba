"""Discover feed API route."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import User
from ..schemas import DiscoverFeedResponse, DiscoverPost
from ..services.auth_service import get_current_user
from ..services.discover_service import load_discover_feed
from .collections import collection_response
from .posts import post_response

router = APIRouter(prefix="/discover", tags=["discover"])


@router.get("/", response_model=DiscoverFeedResponse)
async def discover_feed(
    limit: int = Query(50, ge=1, le=100),
    exclude_collections: list[UUID] | None = Query(None),
    exclude_posts: list[UUID] | None = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> DiscoverFeedResponse:
    feed = load_discover_feed(
        db,
        current_user,
        limit=limit,
        exclude_collection_ids=exclude_collections or (),
        exclude_post_ids=exclude_posts or (),
    )
    return DiscoverFeedResponse(
        collections=[collection_response(db, collection) for collection in feed.collections],
        posts=[
            DiscoverPost(post=post_response(db, post, current_user), collection=collection_response(db, collection))
            for post, collection in feed.posts
        ],
    )
