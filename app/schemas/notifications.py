"""Schemas for notifications."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    recipient_id: UUID
    sender_id: UUID | None = None
    type: str
    content: str
    status: str | None = None
    created_at: datetime
    read: bool
    payload: dict[str, Any] | None = None


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]


class NotificationSummaryResponse(BaseModel):
    unread_count: int = 0


class NotificationStatusUpdate(BaseModel):
    status: Literal["accepted", "denied"]


__all__ = [
    "NotificationListResponse",
    "NotificationResponse",
    "NotificationStatusUpdate",
    "NotificationSummaryResponse",
]
