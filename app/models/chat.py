"""SQLAlchemy ORM models for one-to-one chat rooms and their messages."""
from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import expression, func

from app.database import Base
from .base import utcnow

_JSON = JSON().with_variant(JSONB, "postgresql")


class ChatRoom(Base):
    __tablename__ = "chat_rooms"

    # "<uid1>_<uid2>" with the two ids in sorted order.
    id = Column(String(80), primary_key=True)
    user_a_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    user_b_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    chat_status = Column(_JSON, nullable=False, default=dict)
    unread_count = Column(_JSON, nullable=False, default=dict)
    last_message = Column(Text, nullable=True)
    last_message_type = Column(String(16), nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    messages = relationship("Message", back_populates="chat", cascade="all, delete-orphan")

    @property
    def participants(self) -> list[uuid.UUID]:
        return [self.user_a_id, self.user_b_id]

    def other_participant(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user_b_id if self.user_a_id == user_id else self.user_a_id


class Message(Base):
    __tablename__ = "messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chat_id = Column(String(80), ForeignKey("chat_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    type = Column(String(16), nullable=False, default="text")
    media_url = Column(String(1024), nullable=True)
    reply_to_id = Column(UUID(as_uuid=True), nullable=True)
    reactions = Column(_JSON, nullable=False, default=dict)
    deleted_for = Column(_JSON, nullable=False, default=list)
    is_deleted = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    deleted_by = Column(UUID(as_uuid=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    original_media_url = Column(String(1024), nullable=True)
    is_edited = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    edit_count = Column(Integer, nullable=False, default=0, server_default="0")
    edited_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)

    chat = relationship("ChatRoom", back_populates="messages")
    sender = relationship("User", foreign_keys=[sender_id])


__all__ = ["ChatRoom", "Message"]
