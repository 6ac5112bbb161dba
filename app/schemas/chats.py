"""Schemas for chat rooms and messages."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ChatRoomCreate(BaseModel):
    participant_ids: list[UUID]


class ChatRoomResponse(BaseModel):
    id: str
    other_user_id: UUID
    my_status: str
    their_status: str
    unread_count: int = 0
    last_message: str | None = None
    last_message_type: str | None = None
    last_message_at: datetime | None = None


class MessageSendRequest(BaseModel):
    content: str = Field(default="", max_length=5000)
    type: Literal["text", "image", "video", "voice", "post"] = "text"
    media_url: str | None = None
    reply_to_id: UUID | None = None


class MessageEditRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class ReactionRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=16)


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    chat_id: str
    sender_id: UUID
    content: str
    type: str
    media_url: str | None = None
    reply_to_id: UUID | None = None
    reactions: dict[str, Any] = Field(default_factory=dict)
    is_deleted: bool = False
    is_edited: bool = False
    edit_count: int = 0
    created_at: datetime


class MessagePageResponse(BaseModel):
    items: list[MessageResponse]
    next_cursor: str | None = None
    has_more: bool = False


class UnreadCountResponse(BaseModel):
    unread_count: int = 0


class ClearChatResponse(BaseModel):
    cleared: int


__all__ = [
    "ChatRoomCreate",
    "ChatRoomResponse",
    "ClearChatResponse",
    "MessageEditRequest",
    "MessagePageResponse",
    "MessageResponse",
    "MessageSendRequest",
    "ReactionRequest",
    "UnreadCountResponse",
]
