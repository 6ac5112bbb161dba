"""Post API routes: media upload, publishing, pins, stars and comments."""
from __future__ import annotations

import logging
from typing import cast
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import Post, User
from ..schemas import (
    MediaItem,
    MediaUploadResponse,
    PinRequest,
    PostCommentCreate,
    PostCommentPageResponse,
    PostCommentResponse,
    PostCreate,
    PostPageResponse,
    PostResponse,
    StarRequest,
    StarResponse,
)
from ..services import post_service
from ..services.auth_service import get_current_user
from ..services.media_upload_service import MediaProcessingError, MediaUpload, upload_media_items
from ..services.retry import user_facing_message
from ..services.storage_service import StorageConfigurationError, StorageUploadError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])

MAX_UPLOAD_FILES = 10


def post_response(db: Session, post: Post, viewer: User) -> PostResponse:
    response = PostResponse.model_validate(post)
    post_id = cast(UUID, post.id)
    response.star_count = post_service.star_count(db, post_id)
    response.viewer_has_starred = post_service.has_starred(db, post_id=post_id, user_id=cast(UUID, viewer.id))
    return response


@router.post("/media", response_model=MediaUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_media_endpoint(
    files: list[UploadFile] = File(...),
    current_user: User = Depends(get_current_user),
) -> MediaUploadResponse:
    """Compress and store media; the returned items are then published with ``POST /posts/``."""

    if not files or len(files) > MAX_UPLOAD_FILES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Upload between 1 and 10 files")
    uploads: list[MediaUpload] = []
    for upload in files:
        content_type = upload.content_type or "application/octet-stream"
        if not content_type.startswith(("image/", "video/")):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only images and videos are supported")
        uploads.append(MediaUpload(data=await upload.read(), content_type=content_type, filename=upload.filename))

    try:
        results = await upload_media_items(uploads, folder=f"posts/{current_user.id}")
    except MediaProcessingError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StorageConfigurationError as exc:
        logger.error("Media storage is not configured: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Media storage is not configured") from exc
    except StorageUploadError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=user_facing_message(exc)) from exc
    return MediaUploadResponse(items=[MediaItem(**result.as_item()) for result in results])


@router.post("/", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post_endpoint(
    payload: PostCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> PostResponse:
    post = post_service.create_post(
        db,
        author=current_user,
        collection_id=payload.collection_id,
        caption=payload.caption,
        media_items=[item.model_dump() for item in payload.media_items],
    )
    return post_response(db, post, current_user)


@router.get("/collection/{collection_id}", response_model=PostPageResponse)
async def collection_posts_endpoint(
    collection_id: UUID,
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> PostPageResponse:
    page = post_service.list_collection_posts(
        db, collection_id=collection_id, viewer=current_user, cursor=cursor, limit=limit
    )
    return PostPageResponse(
        items=[post_response(db, post, current_user) for post in page.items],
        next_cursor=page.next_cursor.encode() if page.next_cursor else None,
        has_more=page.has_more,
    )


@router.get("/{post_id}", response_model=PostResponse)
async def get_post_endpoint(
    post_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> PostResponse:
    return post_response(db, post_service.get_post(db, post_id=post_id, viewer=current_user), current_user)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post_endpoint(
    post_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    post_service.delete_post(db, post_id=post_id, actor=current_user)


@router.put("/{post_id}/pin", response_model=PostResponse)
async def pin_post_endpoint(
    post_id: UUID,
    payload: PinRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> PostResponse:
    post = post_service.set_post_pinned(db, post_id=post_id, actor=current_user, pinned=payload.pinned)
    return post_response(db, post, current_user)


@router.put("/{post_id}/star", response_model=StarResponse)
async def star_post_endpoint(
    post_id: UUID,
    payload: StarRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> StarResponse:
    count = post_service.set_post_starred(db, post_id=post_id, user=current_user, starred=payload.starred)
    return StarResponse(post_id=post_id, star_count=count, viewer_has_starred=payload.starred)


@router.get("/{post_id}/comments", response_model=PostCommentPageResponse)
async def list_comments_endpoint(
    post_id: UUID,
    cursor: str | None = Query(None),
    limit: int = Query(20, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> PostCommentPageResponse:
    page = post_service.list_comments(db, post_id=post_id, viewer=current_user, cursor=cursor, limit=limit)
    return PostCommentPageResponse(
        items=[PostCommentResponse.model_validate(comment) for comment in page.items],
        next_cursor=page.next_cursor.encode() if page.next_cursor else None,
        has_more=page.has_more,
    )


@router.post("/{post_id}/comments", response_model=PostCommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment_endpoint(
    post_id: UUID,
    payload: PostCommentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> PostCommentResponse:
    comment = post_service.add_comment(db, post_id=post_id, user=current_user, content=payload.content)
    return PostCommentResponse.model_validate(comment)
