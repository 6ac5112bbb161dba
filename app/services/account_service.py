"""Permanent account deletion.

Each cleanup step commits on its own. A failing step is logged and skipped so
one bad row never blocks the deletion; every step is safe to run again, so an
interrupted deletion can simply be retried.
"""
from __future__ import annotations

import logging
from typing import Callable, Iterable, cast
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import batch_write
from ..models import (
    ChatRoom,
    Collection,
    CollectionFollower,
    CollectionMember,
    FriendRequest,
    Friendship,
    Message,
    Notification,
    Post,
    PostComment,
    PostStar,
    User,
    UserBlock,
)
from .auth_service import verify_password
from .storage_service import delete_media_best_effort

logger = logging.getLogger(__name__)

StorageDelete = Callable[[Iterable[str | None]], int]


def _post_media(posts: Iterable[Post]) -> list[str]:
    urls: list[str] = []
    for post in posts:
        for item in post.media_items or []:
            urls.extend(url for url in (item.get("url"), item.get("thumbnail_url")) if url)
    return urls


def _delete_collections(db: Session, user_id: UUID, media: list[str]) -> None:
    collections = list(db.scalars(select(Collection).where(Collection.owner_id == user_id)))
    for collection in collections:
        media.extend(_post_media(collection.posts))
        if collection.image_url:
            media.append(collection.image_url)
        db.delete(collection)


def _delete_posts(db: Session, user_id: UUID, media: list[str]) -> None:
    posts = list(db.scalars(select(Post).where(Post.author_id == user_id)))
    media.extend(_post_media(posts))
    for post in posts:
        db.delete(post)


def _delete_comments(db: Session, user_id: UUID, media: list[str]) -> None:
    db.execute(delete(PostComment).where(PostComment.user_id == user_id))


def _delete_stars(db: Session, user_id: UUID, media: list[str]) -> None:
    db.execute(delete(PostStar).where(PostStar.user_id == user_id))


def _delete_chats(db: Session, user_id: UUID, media: list[str]) -> None:
    rooms = list(db.scalars(select(ChatRoom).where(or_(ChatRoom.user_a_id == user_id, ChatRoom.user_b_id == user_id))))
    for room in rooms:
        media.extend(url for url in db.scalars(select(Message.media_url).where(Message.chat_id == room.id)) if url)
        db.delete(room)


def _delete_friend_requests(db: Session, user_id: UUID, media: list[str]) -> None:
    db.execute(
        delete(FriendRequest).where(or_(FriendRequest.sender_id == user_id, FriendRequest.recipient_id == user_id))
    )


def _delete_notifications(db: Session, user_id: UUID, media: list[str]) -> None:
    db.execute(delete(Notification).where(Notification.recipient_id == user_id))
    db.execute(update(Notification).where(Notification.sender_id == user_id).values(sender_id=None))


def _delete_friendships(db: Session, user_id: UUID, media: list[str]) -> None:
    db.execute(delete(Friendship).where(or_(Friendship.user_a_id == user_id, Friendship.user_b_id == user_id)))


def _delete_blocks(db: Session, user_id: UUID, media: list[str]) -> None:
    db.execute(delete(UserBlock).where(or_(UserBlock.blocker_id == user_id, UserBlock.blocked_id == user_id)))


def _delete_memberships(db: Session, user_id: UUID, media: list[str]) -> None:
    db.execute(delete(CollectionMember).where(CollectionMember.user_id == user_id))
    db.execute(delete(CollectionFollower).where(CollectionFollower.user_id == user_id))


CLEANUP_STEPS: tuple[tuple[str, Callable[[Session, UUID, list[str]], None]], ...] = (
    ("collections", _delete_collections),
    ("posts", _delete_posts),
    ("comments", _delete_comments),
    ("stars", _delete_stars),
    ("chats", _delete_chats),
    ("friend requests", _delete_friend_requests),
    ("notifications", _delete_notifications),
    ("friendships", _delete_friendships),
    ("blocks", _delete_blocks),
    ("memberships", _delete_memberships),
)


def delete_account(
    db: Session,
    *,
    user: User,
    password: str,
    storage_delete: StorageDelete = delete_media_best_effort,
) -> list[str]:
    """Delete the user and everything they own. Returns the names of steps that failed."""

    if not verify_password(password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Incorrect password")

    user_id = cast(UUID, user.id)
    media: list[str] = [url for url in (user.profile_image_url, user.background_image_url) if url]
    failed: list[str] = []
    logger.info("Deleting account %s", user_id)

    for name, step in CLEANUP_STEPS:
        staged: list[str] = []
        try:
            step(db, user_id, staged)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Account deletion step '%s' failed for %s", name, user_id)
            failed.append(name)
            continue
        media.extend(staged)

    try:
        removed = storage_delete(media)
        logger.info("Removed %d stored file(s) for %s", removed, user_id)
    except Exception:
        logger.exception("Storage cleanup failed for %s", user_id)
        failed.append("storage")

    with batch_write(db, failure_detail="Failed to delete account"):
        db.delete(user)
    logger.info("Account %s deleted (%d step(s) failed)", user_id, len(failed))
    return failed


__all__ = ["CLEANUP_STEPS", "delete_account"]
