"""Read helpers over the friend graph, block lists and chat-room keys."""
from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ..models import ChatRoom, Friendship, UserBlock
from .chat_status import ChatStatus


def ordered_pair(a: UUID, b: UUID) -> tuple[UUID, UUID]:
    return (a, b) if str(a) < str(b) else (b, a)


def chat_room_id(a: UUID, b: UUID) -> str:
    """Deterministic room key: both user ids, sorted, joined by an underscore."""

    first, second = ordered_pair(a, b)
    return f"{first}_{second}"


def get_friendship(db: Session, user_id: UUID, friend_id: UUID) -> Friendship | None:
    first, second = ordered_pair(user_id, friend_id)
    stmt = select(Friendship).where(and_(Friendship.user_a_id == first, Friendship.user_b_id == second))
    return db.scalars(stmt).first()


def are_friends(db: Session, user_id: UUID, friend_id: UUID) -> bool:
    return get_friendship(db, user_id, friend_id) is not None


def friend_ids(db: Session, user_id: UUID) -> set[UUID]:
    stmt = select(Friendship).where(or_(Friendship.user_a_id == user_id, Friendship.user_b_id == user_id))
    return {friendship.other(user_id) for friendship in db.scalars(stmt)}


def blocked_user_ids(db: Session, user_id: UUID) -> set[UUID]:
    """Users ``user_id`` has blocked."""

    return set(db.scalars(select(UserBlock.blocked_id).where(UserBlock.blocker_id == user_id)))


def blocked_by_user_ids(db: Session, user_id: UUID) -> set[UUID]:
    """Users who have blocked ``user_id``."""

    return set(db.scalars(select(UserBlock.blocker_id).where(UserBlock.blocked_id == user_id)))


def hidden_user_ids(db: Session, user_id: UUID) -> set[UUID]:
    """Everyone on either side of a block with ``user_id``; these never appear in its listings."""

    return blocked_user_ids(db, user_id) | blocked_by_user_ids(db, user_id)


def has_blocked(db: Session, blocker_id: UUID, blocked_id: UUID) -> bool:
    stmt = select(UserBlock.id).where(UserBlock.blocker_id == blocker_id, UserBlock.blocked_id == blocked_id)
    return db.scalar(stmt) is not None


def is_blocked_between(db: Session, a: UUID, b: UUID) -> bool:
    """True when either user has blocked the other."""

    stmt = select(UserBlock.id).where(
        or_(
            and_(UserBlock.blocker_id == a, UserBlock.blocked_id == b),
            and_(UserBlock.blocker_id == b, UserBlock.blocked_id == a),
        )
    )
    return db.scalar(stmt) is not None


def get_chat_room(db: Session, a: UUID, b: UUID) -> ChatRoom | None:
    return db.get(ChatRoom, chat_room_id(a, b))


def new_chat_room(a: UUID, b: UUID, *, status_: ChatStatus) -> ChatRoom:
    first, second = ordered_pair(a, b)
    return ChatRoom(
        id=chat_room_id(a, b),
        user_a_id=first,
        user_b_id=second,
        chat_status={str(first): str(status_), str(second): str(status_)},
        unread_count={str(first): 0, str(second): 0},
    )


def write_statuses(room: ChatRoom, statuses: Iterable[tuple[UUID, ChatStatus]]) -> None:
    """Replace per-participant statuses; the JSON column is reassigned so the change is tracked."""

    updated = dict(room.chat_status or {})
    for user_id, value in statuses:
        updated[str(user_id)] = str(value)
    setattr(room, "chat_status", updated)


__all__ = [
    "are_friends",
    "blocked_by_user_ids",
    "blocked_user_ids",
    "chat_room_id",
    "friend_ids",
    "get_chat_room",
    "get_friendship",
    "has_blocked",
    "hidden_user_ids",
    "is_blocked_between",
    "new_chat_room",
    "ordered_pair",
    "write_statuses",
]
