"""ORM model representing friend invitations between users."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import expression, func

from app.database import Base
from .base import utcnow

FRIEND_REQUEST_STATUSES = ("pending", "accepted", "denied")


def friend_request_id(sender_id, recipient_id) -> str:
    return f"{sender_id}_{recipient_id}"


class FriendRequest(Base):
    __tablename__ = "friend_requests"

    # Keyed "<sender>_<recipient>" so each direction has at most one request.
    id = Column(String(80), primary_key=True)
    sender_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        Enum(*FRIEND_REQUEST_STATUSES, name="friend_request_status"),
        nullable=False,
        default="pending",
        server_default="pending",
    )
    seen = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])


__all__ = ["FRIEND_REQUEST_STATUSES", "FriendRequest", "friend_request_id"]
