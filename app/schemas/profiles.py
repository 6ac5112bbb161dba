"""Schemas for profile endpoints."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    name: str | None = None
    profile_image_url: str | None = None


class ProfileResponse(UserSummary):
    email: str | None = None
    bio: str | None = None
    background_image_url: str | None = None
    created_at: datetime
    last_active_at: datetime


class ProfileUpdateRequest(BaseModel):
    username: str | None = Field(default=None, min_length=3, max_length=32)
    name: str | None = Field(default=None, max_length=150)
    bio: str | None = Field(default=None, max_length=500)
    profile_image_url: str | None = None
    background_image_url: str | None = None


class UsernameAvailability(BaseModel):
    username: str
    available: bool


__all__ = ["ProfileResponse", "ProfileUpdateRequest", "UserSummary", "UsernameAvailability"]
