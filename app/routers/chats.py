"""Chat room and message API routes."""
from __future__ import annotations

from typing import cast
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import ChatRoom, User
from ..schemas import (
    ChatRoomCreate,
    ChatRoomResponse,
    ClearChatResponse,
    MessageEditRequest,
    MessagePageResponse,
    MessageResponse,
    MessageSendRequest,
    ReactionRequest,
    UnreadCountResponse,
)
from ..services import chat_service
from ..services.auth_service import get_current_user
from ..services.chat_status import read_pair

router = APIRouter(prefix="/chats", tags=["chats"])


def _room_response(room: ChatRoom, viewer: User) -> ChatRoomResponse:
    viewer_id = cast(UUID, viewer.id)
    other_id = room.other_participant(viewer_id)
    mine, theirs = read_pair(room.chat_status, me=viewer_id, them=other_id)
    return ChatRoomResponse(
        id=room.id,
        other_user_id=other_id,
        my_status=mine,
        their_status=theirs,
        unread_count=int((room.unread_count or {}).get(str(viewer_id), 0)),
        last_message=room.last_message,
        last_message_type=room.last_message_type,
        last_message_at=room.last_message_at,
    )


@router.get("/", response_model=list[ChatRoomResponse])
async def list_rooms(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> list[ChatRoomResponse]:
    return [_room_response(room, current_user) for room in chat_service.list_chat_rooms(db, user=current_user)]


@router.post("/", response_model=ChatRoomResponse)
async def open_room(
    payload: ChatRoomCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ChatRoomResponse:
    room = chat_service.get_or_create_chat_room(db, user=current_user, participant_ids=payload.participant_ids)
    return _room_response(room, current_user)


@router.get("/unread", response_model=UnreadCountResponse)
async def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=chat_service.count_unread_messages(db, user=current_user))


@router.get("/{chat_id}/messages", response_model=MessagePageResponse)
async def list_room_messages(
    chat_id: str,
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessagePageResponse:
    page = chat_service.list_messages(db, user=current_user, chat_id=chat_id, cursor=cursor, limit=limit)
    return MessagePageResponse(
        items=[MessageResponse.model_validate(message) for message in page.items],
        next_cursor=page.next_cursor.encode() if page.next_cursor else None,
        has_more=page.has_more,
    )


@router.post("/{chat_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_room_message(
    chat_id: str,
    payload: MessageSendRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    message = chat_service.send_message(
        db,
        sender=current_user,
        chat_id=chat_id,
        content=payload.content,
        type_=payload.type,
        media_url=payload.media_url,
        reply_to_id=payload.reply_to_id,
    )
    return MessageResponse.model_validate(message)


@router.get("/{chat_id}/search", response_model=list[MessageResponse])
async def search_room(
    chat_id: str,
    q: str = Query(..., min_length=1, max_length=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> list[MessageResponse]:
    results = chat_service.search_messages(db, user=current_user, chat_id=chat_id, query=q)
    return [MessageResponse.model_validate(message) for message in results]


@router.post("/{chat_id}/read", response_model=ChatRoomResponse)
async def mark_read(
    chat_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ChatRoomResponse:
    room = chat_service.mark_chat_read(db, user=current_user, chat_id=chat_id)
    return _room_response(room, current_user)


@router.post("/{chat_id}/clear", response_model=ClearChatResponse)
async def clear_for_me(
    chat_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ClearChatResponse:
    return ClearChatResponse(cleared=chat_service.clear_chat_for_me(db, user=current_user, chat_id=chat_id))


@router.patch("/{chat_id}/messages/{message_id}", response_model=MessageResponse)
async def edit_room_message(
    chat_id: str,
    message_id: UUID,
    payload: MessageEditRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    message = chat_service.edit_message(
        db, user=current_user, chat_id=chat_id, message_id=message_id, new_text=payload.content
    )
    return MessageResponse.model_validate(message)


@router.delete("/{chat_id}/messages/{message_id}", response_model=MessageResponse)
async def delete_room_message(
    chat_id: str,
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    message = chat_service.delete_message(db, user=current_user, chat_id=chat_id, message_id=message_id)
    return MessageResponse.model_validate(message)


@router.put("/{chat_id}/messages/{message_id}/reaction", response_model=MessageResponse)
async def react(
    chat_id: str,
    message_id: UUID,
    payload: ReactionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    message = chat_service.add_reaction(
        db, user=current_user, chat_id=chat_id, message_id=message_id, emoji=payload.emoji
    )
    return MessageResponse.model_validate(message)


@router.delete("/{chat_id}/messages/{message_id}/reaction", response_model=MessageResponse)
async def unreact(
    chat_id: str,
    message_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    message = chat_service.remove_reaction(db, user=current_user, chat_id=chat_id, message_id=message_id)
    return MessageResponse.model_validate(message)
