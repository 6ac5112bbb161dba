"""Posts inside collections, plus stars and comments."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, cast
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..database import batch_write
from ..models import Collection, Post, PostComment, PostStar, User
from .collection_service import can_view, load_membership
from .notification_service import NotificationType, build_notification
from .pagination import Page, fetch_page
from .storage_service import delete_media_best_effort

logger = logging.getLogger(__name__)

MEDIA_KINDS = ("image", "video")
MAX_COMMENT_LENGTH = 2000


def _normalise_media(items: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    media: list[dict[str, Any]] = []
    for item in items:
        url = (item.get("url") or "").strip()
        kind = item.get("type") or "image"
        if not url or kind not in MEDIA_KINDS:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid media item")
        media.append({"url": url, "type": kind, "thumbnail_url": item.get("thumbnail_url")})
    return media


def _media_urls(post: Post) -> list[str]:
    urls: list[str] = []
    for item in post.media_items or []:
        urls.extend(url for url in (item.get("url"), item.get("thumbnail_url")) if url)
    return urls


def _live_collection(db: Session, collection_id: UUID) -> Collection:
    collection = db.get(Collection, collection_id)
    if collection is None or collection.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Collection not found")
    return collection


def get_post(db: Session, *, post_id: UUID, viewer: User) -> Post:
    post = db.get(Post, post_id)
    if post is None or post.is_deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    collection = _live_collection(db, cast(UUID, post.collection_id))
    if not can_view(db, collection, cast(UUID, viewer.id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return post


def create_post(
    db: Session,
    *,
    author: User,
    collection_id: UUID,
    media_items: list[dict[str, Any]],
    caption: str | None = None,
) -> Post:
    """Publish already-uploaded media into a collection the author belongs to."""

    author_id = cast(UUID, author.id)
    collection = _live_collection(db, collection_id)
    if not load_membership(db, collection).is_member(author_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only members can post to this collection")
    media = _normalise_media(media_items)
    if not media:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No media items to post")

    post = Post(
        collection_id=collection.id,
        author_id=author_id,
        caption=(caption or "").strip() or None,
        media_items=media,
        created_at=datetime.now(timezone.utc),
    )
    with batch_write(db, failure_detail="Failed to create post"):
        db.add(post)
    return post


def list_collection_posts(
    db: Session,
    *,
    collection_id: UUID,
    viewer: User,
    cursor: str | None = None,
    limit: int = 20,
) -> Page[Post]:
    """Newest-first posts; the first page is led by the pinned ones.

    Pinned posts are returned in full on the first page only and the cursor
    walks the unpinned remainder, so nothing is repeated.
    """

    collection = _live_collection(db, collection_id)
    if not can_view(db, collection, cast(UUID, viewer.id)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this collection")

    live = select(Post).where(Post.collection_id == collection.id, Post.is_deleted.is_(False))
    page = fetch_page(
        db,
        live.where(Post.is_pinned.is_(False)),
        sort_column=Post.created_at,
        id_column=Post.id,
        sort_attr="created_at",
        cursor_token=cursor,
        limit=limit,
    )
    if cursor is None:
        pinned = list(db.scalars(live.where(Post.is_pinned.is_(True)).order_by(Post.pinned_at.desc())))
        page.items = pinned + page.items
    return page


def delete_post(db: Session, *, post_id: UUID, actor: User) -> Post:
    """Tombstone a post; its author or a collection admin may do this."""

    actor_id = cast(UUID, actor.id)
    post = db.get(Post, post_id)
    if post is None or post.is_deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    collection = db.get(Collection, post.collection_id)
    if post.author_id != actor_id and not (
        collection is not None and load_membership(db, collection).is_admin(actor_id)
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot delete this post")

    urls = _media_urls(post)
    with batch_write(db, failure_detail="Failed to delete post"):
        setattr(post, "is_deleted", True)
        setattr(post, "deleted_at", datetime.now(timezone.utc))
        setattr(post, "is_pinned", False)
        setattr(post, "pinned_at", None)
        setattr(post, "caption", None)
        setattr(post, "media_items", [])
    delete_media_best_effort(urls)
    return post


def set_post_pinned(db: Session, *, post_id: UUID, actor: User, pinned: bool) -> Post:
    post = get_post(db, post_id=post_id, viewer=actor)
    collection = _live_collection(db, cast(UUID, post.collection_id))
    if not load_membership(db, collection).is_admin(cast(UUID, actor.id)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only collection admins can pin posts")
    with batch_write(db, failure_detail="Failed to update post"):
        setattr(post, "is_pinned", pinned)
        setattr(post, "pinned_at", datetime.now(timezone.utc) if pinned else None)
    return post


def star_count(db: Session, post_id: UUID) -> int:
    return int(db.scalar(select(func.count()).select_from(PostStar).where(PostStar.post_id == post_id)) or 0)


def has_starred(db: Session, *, post_id: UUID, user_id: UUID) -> bool:
    stmt = select(PostStar.id).where(PostStar.post_id == post_id, PostStar.user_id == user_id)
    return db.scalar(stmt) is not None


def set_post_starred(db: Session, *, post_id: UUID, user: User, starred: bool) -> int:
    """Star or unstar a post; idempotent. Returns the new star count."""

    user_id = cast(UUID, user.id)
    post = get_post(db, post_id=post_id, viewer=user)
    existing = db.scalars(select(PostStar).where(PostStar.post_id == post.id, PostStar.user_id == user_id)).first()
    if starred and existing is None:
        with batch_write(db, failure_detail="Failed to star post"):
            db.add(PostStar(post_id=post.id, user_id=user_id))
            if post.author_id != user_id:
                db.add(
                    build_notification(
                        recipient_id=cast(UUID, post.author_id),
                        sender_id=user_id,
                        type_=NotificationType.POST_STAR,
                        content=f"{user.username} starred your post",
                        payload={"post_id": str(post.id)},
                    )
                )
    elif not starred and existing is not None:
        with batch_write(db, failure_detail="Failed to unstar post"):
            db.delete(existing)
    return star_count(db, cast(UUID, post.id))


def add_comment(db: Session, *, post_id: UUID, user: User, content: str) -> PostComment:
    user_id = cast(UUID, user.id)
    text = content.strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Comment cannot be empty")
    if len(text) > MAX_COMMENT_LENGTH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Comment is too long")
    post = get_post(db, post_id=post_id, viewer=user)
    comment = PostComment(post_id=post.id, user_id=user_id, content=text, created_at=datetime.now(timezone.utc))
    with batch_write(db, failure_detail="Failed to add comment"):
        db.add(comment)
        if post.author_id != user_id:
            db.add(
                build_notification(
                    recipient_id=cast(UUID, post.author_id),
                    sender_id=user_id,
                    type_=NotificationType.POST_COMMENT,
                    content=f"{user.username} commented on your post",
                    payload={"post_id": str(post.id)},
                )
            )
    return comment


def list_comments(
    db: Session,
    *,
    post_id: UUID,
    viewer: User,
    cursor: str | None = None,
    limit: int = 20,
) -> Page[PostComment]:
    post = get_post(db, post_id=post_id, viewer=viewer)
    return fetch_page(
        db,
        select(PostComment).where(PostComment.post_id == post.id),
        sort_column=PostComment.created_at,
        id_column=PostComment.id,
        sort_attr="created_at",
        cursor_token=cursor,
        limit=limit,
    )


__all__ = [
    "MEDIA_KINDS",
    "add_comment",
    "create_post",
    "delete_post",
    "get_post",
    "has_starred",
    "list_collection_posts",
    "list_comments",
    "set_post_pinned",
    "set_post_starred",
    "star_count",
]
