"""Notification helpers: per-recipient records that expire a day after creation."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import batch_write
from ..models import Notification, User

logger = logging.getLogger(__name__)


class NotificationType(StrEnum):
    GENERIC = "generic"
    MESSAGE_RECEIVED = "message.received"
    FRIEND_REQUEST = "friend.request"
    FRIEND_ADDED = "friend.added"
    COLLECTION_INVITE = "collection.invite"
    COLLECTION_JOIN = "collection.join"
    COLLECTION_REQUEST = "collection.request"
    POST_COMMENT = "post.comment"
    POST_STAR = "post.star"


class NotificationStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DENIED = "denied"


DEFAULT_NOTIFICATION_TYPE = NotificationType.GENERIC


def notification_ttl() -> timedelta:
    return timedelta(hours=get_settings().notification_ttl_hours)


def _expiry_cutoff(now: datetime | None = None) -> datetime:
    return (now or datetime.now(timezone.utc)) - notification_ttl()


def list_notifications(db: Session, user_id: UUID, *, now: datetime | None = None) -> list[Notification]:
    """Return live notifications for the recipient ordered newest first."""

    stmt = (
        select(Notification)
        .where(Notification.recipient_id == user_id, Notification.created_at >= _expiry_cutoff(now))
        .order_by(Notification.created_at.desc())
    )
    return list(db.scalars(stmt))


def count_unread_notifications(db: Session, user_id: UUID, *, now: datetime | None = None) -> int:
    stmt = (
        select(func.count())
        .select_from(Notification)
        .where(
            Notification.recipient_id == user_id,
            Notification.read.is_(False),
            Notification.created_at >= _expiry_cutoff(now),
        )
    )
    return int(db.scalar(stmt) or 0)


def build_notification(
    *,
    recipient_id: UUID,
    content: str,
    sender_id: UUID | None = None,
    type_: NotificationType | str = DEFAULT_NOTIFICATION_TYPE,
    payload: dict[str, Any] | None = None,
    status_: NotificationStatus | None = None,
) -> Notification:
    """Create an unsaved notification so callers can add it to their own batch."""

    return Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=str(type_),
        content=content,
        payload=payload,
        status=str(status_) if status_ else None,
        created_at=datetime.now(timezone.utc),
    )


def add_notification(
    db: Session,
    *,
    recipient_id: UUID,
    content: str,
    sender_id: UUID | None = None,
    type_: NotificationType | str = DEFAULT_NOTIFICATION_TYPE,
    payload: dict[str, Any] | None = None,
    status_: NotificationStatus | None = None,
) -> Notification:
    """Persist a new notification for the given recipient."""

    if db.get(User, recipient_id) is None:
        raise ValueError("Recipient does not exist")

    notification = build_notification(
        recipient_id=recipient_id,
        content=content,
        sender_id=sender_id,
        type_=type_,
        payload=payload,
        status_=status_,
    )
    with batch_write(db, failure_detail="Failed to create notification"):
        db.add(notification)
    db.refresh(notification)
    return notification


def _owned_notification(db: Session, *, notification_id: UUID, recipient_id: UUID) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.recipient_id != recipient_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


def mark_notification_read(db: Session, *, notification_id: UUID, recipient_id: UUID) -> Notification:
    notification = _owned_notification(db, notification_id=notification_id, recipient_id=recipient_id)
    with batch_write(db, failure_detail="Failed to update notification"):
        setattr(notification, "read", True)
    return notification


def mark_all_read(db: Session, recipient_id: UUID) -> None:
    """Mark all notifications for the given recipient as read."""

    stmt = (
        update(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.read.is_(False))
        .values(read=True)
    )
    with batch_write(db, failure_detail="Failed to update notifications"):
        db.execute(stmt)


def delete_notification(db: Session, *, notification_id: UUID, recipient_id: UUID) -> None:
    notification = _owned_notification(db, notification_id=notification_id, recipient_id=recipient_id)
    with batch_write(db, failure_detail="Failed to delete notification"):
        db.delete(notification)


def update_notification_status(
    db: Session,
    *,
    notification_id: UUID,
    recipient_id: UUID,
    new_status: NotificationStatus,
) -> Notification:
    """Record how the recipient answered an actionable notification; answering marks it read."""

    notification = _owned_notification(db, notification_id=notification_id, recipient_id=recipient_id)
    with batch_write(db, failure_detail="Failed to update notification"):
        setattr(notification, "status", str(new_status))
        setattr(notification, "read", True)
    return notification


def delete_expired_notifications(db: Session, *, now: datetime | None = None) -> int:
    """Remove notifications past their time-to-live. Returns the number deleted."""

    stmt = delete(Notification).where(Notification.created_at < _expiry_cutoff(now)).returning(Notification.id)
    try:
        rows = db.execute(stmt).fetchall()
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to delete expired notifications")
        raise
    return len(rows)


__all__ = [
    "DEFAULT_NOTIFICATION_TYPE",
    "NotificationStatus",
    "NotificationType",
    "add_notification",
    "build_notification",
    "count_unread_notifications",
    "delete_expired_notifications",
    "delete_notification",
    "list_notifications",
    "mark_all_read",
    "mark_notification_read",
    "notification_ttl",
    "update_notification_status",
]
