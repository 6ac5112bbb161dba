"""One-to-one chat rooms and their messages."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import cast
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..database import batch_write
from ..models import ChatRoom, Message, User
from ..models.base import as_utc
from .chat_status import ChatStatus, parse_status
from .notification_service import NotificationType, build_notification
from .pagination import Page, fetch_page
from .social_graph import (
    are_friends,
    chat_room_id,
    friend_ids,
    get_chat_room,
    hidden_user_ids,
    is_blocked_between,
    new_chat_room,
    write_statuses,
)
from .storage_service import delete_media_best_effort

logger = logging.getLogger(__name__)

MESSAGE_TYPES = ("text", "image", "video", "voice", "post")
MAX_EDITS = 2
SEARCH_WINDOW = 200
DELETED_TEXT = "This message was deleted"
DELETED_MEDIA = "This media was deleted"


def _preview(type_: str, content: str) -> str:
    return content if type_ == "text" else f"[{type_.capitalize()}]"


def _require_room(db: Session, *, chat_id: str, user_id: UUID) -> ChatRoom:
    room = db.get(ChatRoom, chat_id)
    if room is None or user_id not in room.participants:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat room not found")
    return room


def _require_message(db: Session, *, room: ChatRoom, message_id: UUID) -> Message:
    message = db.get(Message, message_id)
    if message is None or message.chat_id != room.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return message


def _require_sender(message: Message, user_id: UUID, action: str) -> None:
    if message.sender_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Only the sender can {action} this message")


def get_or_create_chat_room(db: Session, *, user: User, participant_ids: list[UUID]) -> ChatRoom:
    """Return the room for exactly two participants, creating it when missing.

    Friends always see ``friends`` on both sides; a new room between
    non-friends starts as ``pending``.
    """

    user_id = cast(UUID, user.id)
    participants = list(dict.fromkeys(participant_ids))
    if len(participant_ids) != 2 or len(participants) != 2:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Chat room must have exactly 2 participants")
    if user_id not in participants:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only open your own chats")
    other_id = participants[0] if participants[1] == user_id else participants[1]
    if db.get(User, other_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if is_blocked_between(db, user_id, other_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This user is not available")

    friends = are_friends(db, user_id, other_id)
    room = get_chat_room(db, user_id, other_id)
    with batch_write(db, failure_detail="Failed to open chat room"):
        if room is None:
            room = new_chat_room(user_id, other_id, status_=ChatStatus.FRIENDS if friends else ChatStatus.PENDING)
            db.add(room)
        elif friends and parse_status((room.chat_status or {}).get(str(user_id))) != ChatStatus.FRIENDS:
            write_statuses(room, [(user_id, ChatStatus.FRIENDS), (other_id, ChatStatus.FRIENDS)])
    return room


def list_chat_rooms(db: Session, *, user: User, limit: int = 100) -> list[ChatRoom]:
    """Rooms for the message list, newest activity first.

    Every friend gets a room even before the first message; a stale empty or
    ``pending`` status on the viewer's side is promoted to ``friends`` while
    un-add statuses are preserved. Blocked pairs are hidden entirely.
    """

    user_id = cast(UUID, user.id)
    hidden = hidden_user_ids(db, user_id)
    with batch_write(db, failure_detail="Failed to load chat rooms"):
        for friend_id in friend_ids(db, user_id) - hidden:
            room = get_chat_room(db, user_id, friend_id)
            if room is None:
                db.add(new_chat_room(user_id, friend_id, status_=ChatStatus.FRIENDS))
                continue
            current = (room.chat_status or {}).get(str(user_id))
            if not current or current == ChatStatus.PENDING:
                write_statuses(room, [(user_id, ChatStatus.FRIENDS)])

    stmt = select(ChatRoom).where(or_(ChatRoom.user_a_id == user_id, ChatRoom.user_b_id == user_id))
    rooms = [
        room
        for room in db.scalars(stmt)
        if room.other_participant(user_id) not in hidden
        and (room.chat_status or {}).get(str(user_id)) != ChatStatus.BLOCKED
    ]
    rooms.sort(key=lambda room: as_utc(room.last_message_at or room.created_at), reverse=True)
    return rooms[:limit]


def send_message(
    db: Session,
    *,
    sender: User,
    chat_id: str,
    content: str,
    type_: str = "text",
    media_url: str | None = None,
    reply_to_id: UUID | None = None,
) -> Message:
    """Store a message and update the room preview and the other side's unread count in one batch."""

    sender_id = cast(UUID, sender.id)
    if type_ not in MESSAGE_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported message type")
    if type_ == "text" and not content.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message content required")
    room = _require_room(db, chat_id=chat_id, user_id=sender_id)
    other_id = room.other_participant(sender_id)
    if is_blocked_between(db, sender_id, other_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This user is not available")
    if reply_to_id is not None:
        _require_message(db, room=room, message_id=reply_to_id)

    now = datetime.now(timezone.utc)
    message = Message(
        id=uuid.uuid4(),
        chat_id=room.id,
        sender_id=sender_id,
        content=content,
        type=type_,
        media_url=media_url,
        reply_to_id=reply_to_id,
        reactions={},
        deleted_for=[],
        created_at=now,
    )
    unread = dict(room.unread_count or {})
    unread[str(other_id)] = int(unread.get(str(other_id), 0)) + 1
    with batch_write(db, failure_detail="Failed to send message"):
        db.add(message)
        setattr(room, "last_message", _preview(type_, content))
        setattr(room, "last_message_type", type_)
        setattr(room, "last_message_at", now)
        setattr(room, "unread_count", unread)
        db.add(
            build_notification(
                recipient_id=other_id,
                sender_id=sender_id,
                type_=NotificationType.MESSAGE_RECEIVED,
                content=f"{sender.username}: {_preview(type_, content)}",
                payload={"chat_id": room.id, "message_id": str(message.id)},
            )
        )
    return message


def list_messages(
    db: Session,
    *,
    user: User,
    chat_id: str,
    cursor: str | None = None,
    limit: int = 50,
) -> Page[Message]:
    """Newest-first page of messages, minus those the viewer cleared for themselves.

    ``has_more`` reflects the raw page size, so a page can come back short
    after hidden messages are removed and still report more.
    """

    user_id = cast(UUID, user.id)
    room = _require_room(db, chat_id=chat_id, user_id=user_id)
    page = fetch_page(
        db,
        select(Message).where(Message.chat_id == room.id),
        sort_column=Message.created_at,
        id_column=Message.id,
        sort_attr="created_at",
        cursor_token=cursor,
        limit=limit,
    )
    page.items = [message for message in page.items if str(user_id) not in (message.deleted_for or [])]
    return page


def edit_message(db: Session, *, user: User, chat_id: str, message_id: UUID, new_text: str) -> Message:
    user_id = cast(UUID, user.id)
    if not new_text.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message content required")
    room = _require_room(db, chat_id=chat_id, user_id=user_id)
    message = _require_message(db, room=room, message_id=message_id)
    _require_sender(message, user_id, "edit")
    if message.is_deleted:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Deleted messages cannot be edited")
    if message.type != "text":
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only text messages can be edited")
    if (message.edit_count or 0) >= MAX_EDITS:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Message has already been edited {MAX_EDITS} times and cannot be edited again",
        )

    is_last = _is_last_message(room, message)
    with batch_write(db, failure_detail="Failed to edit message"):
        setattr(message, "content", new_text)
        setattr(message, "is_edited", True)
        setattr(message, "edited_at", datetime.now(timezone.utc))
        setattr(message, "edit_count", (message.edit_count or 0) + 1)
        if is_last:
            setattr(room, "last_message", new_text)
            setattr(room, "last_message_type", message.type)
    return message


def _is_last_message(room: ChatRoom, message: Message) -> bool:
    if room.last_message_at is None:
        return False
    return as_utc(message.created_at) == as_utc(room.last_message_at)


def delete_message(db: Session, *, user: User, chat_id: str, message_id: UUID) -> Message:
    """Replace the message with a tombstone that keeps its timestamp and position."""

    user_id = cast(UUID, user.id)
    room = _require_room(db, chat_id=chat_id, user_id=user_id)
    message = _require_message(db, room=room, message_id=message_id)
    _require_sender(message, user_id, "delete")
    if message.is_deleted:
        return message

    media_url = message.media_url
    deleted_content = DELETED_TEXT if message.type == "text" else DELETED_MEDIA
    is_last = _is_last_message(room, message)
    with batch_write(db, failure_detail="Failed to delete message"):
        setattr(message, "content", deleted_content)
        setattr(message, "is_deleted", True)
        setattr(message, "deleted_by", user_id)
        setattr(message, "deleted_at", datetime.now(timezone.utc))
        setattr(message, "original_media_url", media_url)
        setattr(message, "media_url", None)
        setattr(message, "reactions", {})
        if is_last:
            setattr(room, "last_message", deleted_content)
            setattr(room, "last_message_type", message.type)

    if media_url:
        delete_media_best_effort([media_url])
    return message


def add_reaction(db: Session, *, user: User, chat_id: str, message_id: UUID, emoji: str) -> Message:
    user_id = cast(UUID, user.id)
    room = _require_room(db, chat_id=chat_id, user_id=user_id)
    message = _require_message(db, room=room, message_id=message_id)
    if message.is_deleted:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Cannot react to a deleted message")
    reactions = dict(message.reactions or {})
    reactions[str(user_id)] = emoji
    with batch_write(db, failure_detail="Failed to add reaction"):
        setattr(message, "reactions", reactions)
    return message


def remove_reaction(db: Session, *, user: User, chat_id: str, message_id: UUID) -> Message:
    user_id = cast(UUID, user.id)
    room = _require_room(db, chat_id=chat_id, user_id=user_id)
    message = _require_message(db, room=room, message_id=message_id)
    reactions = dict(message.reactions or {})
    if reactions.pop(str(user_id), None) is None:
        return message
    with batch_write(db, failure_detail="Failed to remove reaction"):
        setattr(message, "reactions", reactions)
    return message


def clear_chat_for_me(db: Session, *, user: User, chat_id: str) -> int:
    """Hide every message in the room from the viewer only. Returns how many were newly hidden."""

    user_id = cast(UUID, user.id)
    room = _require_room(db, chat_id=chat_id, user_id=user_id)
    key = str(user_id)
    hidden = 0
    with batch_write(db, failure_detail="Failed to clear chat"):
        for message in db.scalars(select(Message).where(Message.chat_id == room.id)):
            deleted_for = list(message.deleted_for or [])
            if key in deleted_for:
                continue
            deleted_for.append(key)
            setattr(message, "deleted_for", deleted_for)
            hidden += 1
        setattr(room, "last_message", "")
        setattr(room, "last_message_type", "text")
        unread = dict(room.unread_count or {})
        unread[key] = 0
        setattr(room, "unread_count", unread)
    return hidden


def mark_chat_read(db: Session, *, user: User, chat_id: str) -> ChatRoom:
    user_id = cast(UUID, user.id)
    room = _require_room(db, chat_id=chat_id, user_id=user_id)
    unread = dict(room.unread_count or {})
    unread[str(user_id)] = 0
    with batch_write(db, failure_detail="Failed to mark chat as read"):
        setattr(room, "unread_count", unread)
    return room


def count_unread_messages(db: Session, *, user: User) -> int:
    user_id = cast(UUID, user.id)
    return sum(int((room.unread_count or {}).get(str(user_id), 0)) for room in list_chat_rooms(db, user=user))


def search_messages(db: Session, *, user: User, chat_id: str, query: str) -> list[Message]:
    """Case-insensitive search over the most recent visible text messages."""

    user_id = cast(UUID, user.id)
    needle = query.strip().lower()
    if not needle:
        return []
    room = _require_room(db, chat_id=chat_id, user_id=user_id)
    stmt = (
        select(Message)
        .where(Message.chat_id == room.id)
        .order_by(Message.created_at.desc())
        .limit(SEARCH_WINDOW)
    )
    return [
        message
        for message in db.scalars(stmt)
        if message.type == "text"
        and not message.is_deleted
        and str(user_id) not in (message.deleted_for or [])
        and needle in message.content.lower()
    ]


__all__ = [
    "DELETED_MEDIA",
    "DELETED_TEXT",
    "MAX_EDITS",
    "MESSAGE_TYPES",
    "add_reaction",
    "chat_room_id",
    "clear_chat_for_me",
    "count_unread_messages",
    "delete_message",
    "edit_message",
    "get_or_create_chat_room",
    "list_chat_rooms",
    "list_messages",
    "mark_chat_read",
    "remove_reaction",
    "search_messages",
    "send_message",
]
