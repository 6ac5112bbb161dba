"""Schemas for collections and their membership."""
from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

CollectionType = Literal["Individual", "Invite", "Request", "Open"]


class CollectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: str | None = Field(default=None, max_length=2000)
    type: CollectionType = "Individual"
    is_public: bool = True
    image_url: str | None = None
    invited_user_ids: list[UUID] = Field(default_factory=list)


class CollectionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=150)
    description: str | None = Field(default=None, max_length=2000)
    image_url: str | None = None
    is_public: bool | None = None
    allowed_users: list[UUID] | None = None
    denied_users: list[UUID] | None = None


class CollectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    name: str
    description: str | None = None
    type: str
    is_public: bool
    image_url: str | None = None
    created_at: datetime
    deleted_at: datetime | None = None
    member_count: int = 0


class CollectionListResponse(BaseModel):
    items: list[CollectionResponse]


class MembersRequest(BaseModel):
    user_ids: list[UUID] = Field(..., min_length=1)


class MemberRequest(BaseModel):
    user_id: UUID


class MembershipResponse(BaseModel):
    owner_id: UUID
    member_ids: list[UUID]
    admin_ids: list[UUID]


__all__ = [
    "CollectionCreate",
    "CollectionListResponse",
    "CollectionResponse",
    "CollectionType",
    "CollectionUpdate",
    "MemberRequest",
    "MembersRequest",
    "MembershipResponse",
]
