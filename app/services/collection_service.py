"""Collections: creation, visibility, membership, followers and soft deletion."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, cast
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import batch_write
from ..models import Collection, CollectionFollower, CollectionMember, Post, User
from ..models.base import as_utc
from ..models.collection import COLLECTION_TYPES
from .notification_service import NotificationStatus, NotificationType, build_notification
from .social_graph import hidden_user_ids, is_blocked_between
from .storage_service import delete_media_best_effort

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Membership:
    """Who holds which role in a collection."""

    owner_id: UUID
    member_ids: frozenset[UUID]
    admin_ids: frozenset[UUID]

    def is_admin(self, user_id: UUID) -> bool:
        return user_id == self.owner_id or user_id in self.admin_ids

    def is_member(self, user_id: UUID) -> bool:
        return user_id == self.owner_id or user_id in self.member_ids


def retention_window() -> timedelta:
    return timedelta(days=get_settings().deleted_collection_retention_days)


def _id_list(values: Iterable[UUID | str]) -> list[str]:
    return list(dict.fromkeys(str(value) for value in values))


def load_membership(db: Session, collection: Collection) -> Membership:
    rows = db.execute(
        select(CollectionMember.user_id, CollectionMember.is_admin).where(
            CollectionMember.collection_id == collection.id
        )
    ).all()
    return Membership(
        owner_id=cast(UUID, collection.owner_id),
        member_ids=frozenset(user_id for user_id, _ in rows),
        admin_ids=frozenset(user_id for user_id, is_admin in rows if is_admin),
    )


def can_user_view_collection(collection: Collection, user_id: UUID, membership: Membership) -> bool:
    """Owner, admins and members always see it; otherwise the privacy lists decide."""

    if membership.is_admin(user_id) or membership.is_member(user_id):
        return True
    if not collection.is_public:
        return str(user_id) in (collection.allowed_users or [])
    return str(user_id) not in (collection.denied_users or [])


def can_view(db: Session, collection: Collection, user_id: UUID) -> bool:
    if collection.deleted_at is not None:
        return False
    if is_blocked_between(db, user_id, cast(UUID, collection.owner_id)):
        return False
    return can_user_view_collection(collection, user_id, load_membership(db, collection))


def _require_collection(db: Session, collection_id: UUID, *, include_deleted: bool = False) -> Collection:
    collection = db.get(Collection, collection_id)
    if collection is None or (collection.deleted_at is not None and not include_deleted):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Collection not found")
    return collection


def _require_owner(collection: Collection, user_id: UUID) -> None:
    if collection.owner_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can do this")


def _require_admin(db: Session, collection: Collection, user_id: UUID) -> Membership:
    membership = load_membership(db, collection)
    if not membership.is_admin(user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only collection admins can do this")
    return membership


def get_collection(db: Session, *, collection_id: UUID, viewer: User) -> Collection:
    collection = _require_collection(db, collection_id)
    if not can_view(db, collection, cast(UUID, viewer.id)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this collection")
    return collection


def member_count(db: Session, collection_id: UUID) -> int:
    stmt = select(func.count()).select_from(CollectionMember).where(CollectionMember.collection_id == collection_id)
    return int(db.scalar(stmt) or 0)


def create_collection(
    db: Session,
    *,
    owner: User,
    name: str,
    description: str | None = None,
    type_: str = "Individual",
    is_public: bool = True,
    image_url: str | None = None,
    invited_user_ids: Iterable[UUID] = (),
) -> Collection:
    owner_id = cast(UUID, owner.id)
    if type_ not in COLLECTION_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown collection type")
    if not name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Collection name required")

    hidden = hidden_user_ids(db, owner_id)
    invited = [user_id for user_id in dict.fromkeys(invited_user_ids) if user_id != owner_id and user_id not in hidden]
    collection = Collection(
        owner_id=owner_id,
        name=name.strip(),
        description=description,
        type=type_,
        is_public=is_public,
        image_url=image_url,
        allowed_users=[],
        denied_users=[],
        invited_users=_id_list(invited),
        created_at=datetime.now(timezone.utc),
    )
    with batch_write(db, failure_detail="Failed to create collection"):
        db.add(collection)
        db.flush()
        db.add(CollectionMember(collection_id=collection.id, user_id=owner_id, is_admin=True))
        for user_id in invited:
            db.add(_invite_notification(collection, owner, user_id))
    return collection


def _invite_notification(collection: Collection, inviter: User, user_id: UUID):
    return build_notification(
        recipient_id=user_id,
        sender_id=cast(UUID, inviter.id),
        type_=NotificationType.COLLECTION_INVITE,
        content=f"{inviter.username} invited you to join {collection.name}",
        payload={"collection_id": str(collection.id)},
        status_=NotificationStatus.PENDING,
    )


def update_collection(
    db: Session,
    *,
    collection_id: UUID,
    actor: User,
    name: str | None = None,
    description: str | None = None,
    image_url: str | None = None,
    is_public: bool | None = None,
    allowed_users: list[UUID] | None = None,
    denied_users: list[UUID] | None = None,
) -> Collection:
    collection = _require_collection(db, collection_id)
    _require_admin(db, collection, cast(UUID, actor.id))
    old_image = collection.image_url
    with batch_write(db, failure_detail="Failed to update collection"):
        if name is not None:
            if not name.strip():
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Collection name required")
            setattr(collection, "name", name.strip())
        if description is not None:
            setattr(collection, "description", description)
        if image_url is not None:
            setattr(collection, "image_url", image_url)
        if is_public is not None:
            setattr(collection, "is_public", is_public)
        if allowed_users is not None:
            setattr(collection, "allowed_users", _id_list(allowed_users))
        if denied_users is not None:
            setattr(collection, "denied_users", _id_list(denied_users))
    if image_url is not None and old_image and old_image != image_url:
        delete_media_best_effort([old_image])
    return collection


def list_user_collections(db: Session, *, user_id: UUID) -> list[Collection]:
    """Live collections the user owns or belongs to, newest first."""

    member_of = select(CollectionMember.collection_id).where(CollectionMember.user_id == user_id)
    stmt = (
        select(Collection)
        .where(
            Collection.deleted_at.is_(None),
            or_(Collection.owner_id == user_id, Collection.id.in_(member_of)),
        )
        .order_by(Collection.created_at.desc())
    )
    return list(db.scalars(stmt))


def list_visible_collections(db: Session, *, profile_user_id: UUID, viewer: User) -> list[Collection]:
    viewer_id = cast(UUID, viewer.id)
    if profile_user_id != viewer_id and is_blocked_between(db, viewer_id, profile_user_id):
        return []
    return [
        collection
        for collection in list_user_collections(db, user_id=profile_user_id)
        if can_view(db, collection, viewer_id)
    ]


def join_collection(db: Session, *, collection_id: UUID, user: User) -> Collection:
    """Join an Open collection, or an Invite collection the user was invited to."""

    user_id = cast(UUID, user.id)
    collection = _require_collection(db, collection_id)
    membership = load_membership(db, collection)
    if membership.is_member(user_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already a member")
    if not can_view(db, collection, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this collection")

    invited = list(collection.invited_users or [])
    if collection.type == "Open":
        pass
    elif collection.type == "Invite" and str(user_id) in invited:
        invited.remove(str(user_id))
    else:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This collection cannot be joined directly")

    with batch_write(db, failure_detail="Failed to join collection"):
        db.add(CollectionMember(collection_id=collection.id, user_id=user_id, is_admin=False))
        setattr(collection, "invited_users", invited)
        db.add(
            build_notification(
                recipient_id=cast(UUID, collection.owner_id),
                sender_id=user_id,
                type_=NotificationType.COLLECTION_JOIN,
                content=f"{user.username} joined {collection.name}",
                payload={"collection_id": str(collection.id)},
            )
        )
    return collection


def request_to_join(db: Session, *, collection_id: UUID, user: User) -> None:
    user_id = cast(UUID, user.id)
    collection = _require_collection(db, collection_id)
    if collection.type != "Request":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This collection does not take requests")
    if load_membership(db, collection).is_member(user_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already a member")
    if not can_view(db, collection, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this collection")
    with batch_write(db, failure_detail="Failed to send join request"):
        db.add(
            build_notification(
                recipient_id=cast(UUID, collection.owner_id),
                sender_id=user_id,
                type_=NotificationType.COLLECTION_REQUEST,
                content=f"{user.username} asked to join {collection.name}",
                payload={"collection_id": str(collection.id), "user_id": str(user_id)},
                status_=NotificationStatus.PENDING,
            )
        )


def add_member(db: Session, *, collection_id: UUID, actor: User, user_id: UUID) -> None:
    """Admit a user directly, e.g. when approving a join request."""

    collection = _require_collection(db, collection_id)
    membership = _require_admin(db, collection, cast(UUID, actor.id))
    if membership.is_member(user_id):
        return
    if db.get(User, user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    with batch_write(db, failure_detail="Failed to add member"):
        db.add(CollectionMember(collection_id=collection.id, user_id=user_id, is_admin=False))


def invite_users(db: Session, *, collection_id: UUID, actor: User, user_ids: Iterable[UUID]) -> list[UUID]:
    """Invite users who are not yet members; returns the ids that got a new invitation."""

    actor_id = cast(UUID, actor.id)
    collection = _require_collection(db, collection_id)
    membership = _require_admin(db, collection, actor_id)
    hidden = hidden_user_ids(db, actor_id)
    invited = list(collection.invited_users or [])
    added: list[UUID] = []
    for user_id in dict.fromkeys(user_ids):
        if membership.is_member(user_id) or user_id in hidden or str(user_id) in invited:
            continue
        if db.get(User, user_id) is None:
            continue
        invited.append(str(user_id))
        added.append(user_id)
    if not added:
        return []
    with batch_write(db, failure_detail="Failed to invite users"):
        setattr(collection, "invited_users", invited)
        for user_id in added:
            db.add(_invite_notification(collection, actor, user_id))
    return added


def _member_row(db: Session, collection_id: UUID, user_id: UUID) -> CollectionMember | None:
    stmt = select(CollectionMember).where(
        CollectionMember.collection_id == collection_id, CollectionMember.user_id == user_id
    )
    return db.scalars(stmt).first()


def _set_admin(db: Session, *, collection_id: UUID, actor: User, user_id: UUID, is_admin: bool) -> None:
    collection = _require_collection(db, collection_id)
    _require_owner(collection, cast(UUID, actor.id))
    if user_id == collection.owner_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The owner's role cannot change")
    row = _member_row(db, collection.id, user_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    with batch_write(db, failure_detail="Failed to update member role"):
        setattr(row, "is_admin", is_admin)


def promote_to_admin(db: Session, *, collection_id: UUID, actor: User, user_id: UUID) -> None:
    _set_admin(db, collection_id=collection_id, actor=actor, user_id=user_id, is_admin=True)


def demote_from_admin(db: Session, *, collection_id: UUID, actor: User, user_id: UUID) -> None:
    _set_admin(db, collection_id=collection_id, actor=actor, user_id=user_id, is_admin=False)


def remove_member(db: Session, *, collection_id: UUID, actor: User, user_id: UUID) -> None:
    actor_id = cast(UUID, actor.id)
    collection = _require_collection(db, collection_id)
    membership = _require_admin(db, collection, actor_id)
    if user_id == collection.owner_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The owner cannot be removed")
    if user_id in membership.admin_ids and actor_id != collection.owner_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can remove an admin")
    row = _member_row(db, collection.id, user_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    with batch_write(db, failure_detail="Failed to remove member"):
        db.delete(row)


def leave_collection(db: Session, *, collection_id: UUID, user: User) -> None:
    user_id = cast(UUID, user.id)
    collection = _require_collection(db, collection_id)
    if collection.owner_id == user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The owner cannot leave their collection")
    row = _member_row(db, collection.id, user_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not a member")
    with batch_write(db, failure_detail="Failed to leave collection"):
        db.delete(row)


def follow_collection(db: Session, *, collection_id: UUID, user: User) -> None:
    user_id = cast(UUID, user.id)
    collection = _require_collection(db, collection_id)
    if not can_view(db, collection, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this collection")
    existing = db.scalar(
        select(CollectionFollower.id).where(
            CollectionFollower.collection_id == collection.id, CollectionFollower.user_id == user_id
        )
    )
    if existing is not None:
        return
    with batch_write(db, failure_detail="Failed to follow collection"):
        db.add(CollectionFollower(collection_id=collection.id, user_id=user_id))


def unfollow_collection(db: Session, *, collection_id: UUID, user: User) -> None:
    stmt = delete(CollectionFollower).where(
        CollectionFollower.collection_id == collection_id, CollectionFollower.user_id == cast(UUID, user.id)
    )
    with batch_write(db, failure_detail="Failed to unfollow collection"):
        db.execute(stmt)


def list_followed_collections(db: Session, *, user: User) -> list[Collection]:
    user_id = cast(UUID, user.id)
    stmt = (
        select(Collection)
        .join(CollectionFollower, CollectionFollower.collection_id == Collection.id)
        .where(CollectionFollower.user_id == user_id, Collection.deleted_at.is_(None))
        .order_by(CollectionFollower.created_at.desc())
    )
    return [collection for collection in db.scalars(stmt) if can_view(db, collection, user_id)]


def soft_delete_collection(db: Session, *, collection_id: UUID, actor: User) -> Collection:
    """Move the collection to the owner's recently-deleted set."""

    collection = _require_collection(db, collection_id)
    _require_owner(collection, cast(UUID, actor.id))
    with batch_write(db, failure_detail="Failed to delete collection"):
        setattr(collection, "deleted_at", datetime.now(timezone.utc))
    return collection


def _require_deleted(db: Session, collection_id: UUID, actor: User) -> Collection:
    collection = _require_collection(db, collection_id, include_deleted=True)
    _require_owner(collection, cast(UUID, actor.id))
    if collection.deleted_at is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Collection is not deleted")
    return collection


def recover_collection(db: Session, *, collection_id: UUID, actor: User, now: datetime | None = None) -> Collection:
    collection = _require_deleted(db, collection_id, actor)
    now = now or datetime.now(timezone.utc)
    if as_utc(collection.deleted_at) <= now - retention_window():
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Collection can no longer be recovered")
    with batch_write(db, failure_detail="Failed to recover collection"):
        setattr(collection, "deleted_at", None)
    return collection


def list_deleted_collections(db: Session, *, owner: User, now: datetime | None = None) -> list[Collection]:
    """Recently deleted collections that can still be recovered, newest deletion first."""

    cutoff = (now or datetime.now(timezone.utc)) - retention_window()
    stmt = (
        select(Collection)
        .where(
            Collection.owner_id == cast(UUID, owner.id),
            Collection.deleted_at.is_not(None),
            Collection.deleted_at > cutoff,
        )
        .order_by(Collection.deleted_at.desc())
    )
    return list(db.scalars(stmt))


def _collection_media_urls(db: Session, collection: Collection) -> list[str]:
    urls: list[str] = [collection.image_url] if collection.image_url else []
    for items in db.scalars(select(Post.media_items).where(Post.collection_id == collection.id)):
        for item in items or []:
            urls.extend(url for url in (item.get("url"), item.get("thumbnail_url")) if url)
    return urls


def _destroy(db: Session, collection: Collection) -> list[str]:
    """Stage deletion of the collection and everything under it; returns media to clean up."""

    urls = _collection_media_urls(db, collection)
    db.delete(collection)
    return urls


def permanently_delete_collection(db: Session, *, collection_id: UUID, actor: User) -> None:
    collection = _require_deleted(db, collection_id, actor)
    with batch_write(db, failure_detail="Failed to delete collection"):
        urls = _destroy(db, collection)
    delete_media_best_effort(urls)


def purge_expired_collections(db: Session, *, now: datetime | None = None) -> int:
    """Permanently delete collections whose recovery window has passed. Returns how many."""

    cutoff = (now or datetime.now(timezone.utc)) - retention_window()
    expired = list(
        db.scalars(select(Collection).where(Collection.deleted_at.is_not(None), Collection.deleted_at <= cutoff))
    )
    purged = 0
    for collection in expired:
        collection_id = collection.id
        try:
            urls = _destroy(db, collection)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to purge collection %s", collection_id)
            continue
        delete_media_best_effort(urls)
        purged += 1
    return purged


__all__ = [
    "Membership",
    "add_member",
    "can_user_view_collection",
    "can_view",
    "create_collection",
    "demote_from_admin",
    "follow_collection",
    "get_collection",
    "invite_users",
    "join_collection",
    "leave_collection",
    "list_deleted_collections",
    "list_followed_collections",
    "list_user_collections",
    "list_visible_collections",
    "load_membership",
    "member_count",
    "permanently_delete_collection",
    "promote_to_admin",
    "purge_expired_collections",
    "recover_collection",
    "remove_member",
    "request_to_join",
    "retention_window",
    "soft_delete_collection",
    "unfollow_collection",
]
