"""Schemas for friend requests, friend lists and blocking."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .profiles import UserSummary


class FriendRequestPayload(BaseModel):
    user_id: UUID = Field(..., description="User the request is sent to")


class FriendRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_id: UUID
    recipient_id: UUID
    status: str
    seen: bool = False
    created_at: datetime
    responded_at: datetime | None = None


class FriendsOverviewResponse(BaseModel):
    friends: list[UserSummary]
    incoming_requests: list[FriendRequestResponse]
    outgoing_requests: list[FriendRequestResponse]
    unseen_request_count: int = 0


class ChatStatusPair(BaseModel):
    my_status: str
    their_status: str


class RelationResponse(BaseModel):
    user_id: UUID
    are_friends: bool
    room_exists: bool
    my_status: str | None = None
    their_status: str | None = None
    one_way_unadd: bool
    can_restore: bool
    blocked: bool
    blocked_by: bool
    outgoing_request: str | None = None
    incoming_request: str | None = None


class BlockStatusResponse(BaseModel):
    user_id: UUID
    blocked: bool
    blocked_by: bool


class FriendSearchResponse(BaseModel):
    query: str
    results: list[UserSummary]


__all__ = [
    "BlockStatusResponse",
    "ChatStatusPair",
    "FriendRequestPayload",
    "FriendRequestResponse",
    "FriendSearchResponse",
    "FriendsOverviewResponse",
    "RelationResponse",
]
