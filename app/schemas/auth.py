"""Pydantic schemas for authentication endpoints."""
from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=32)
    password: str = Field(..., min_length=6, max_length=128)
    name: str | None = Field(default=None, max_length=150)
    email: EmailStr | None = None


class LoginRequest(BaseModel):
    username: str
    password: str


class AuthResponse(BaseModel):
    access_token: str
    user_id: UUID
    token_type: str = "bearer"


class AccountDeleteRequest(BaseModel):
    password: str


__all__ = ["AccountDeleteRequest", "AuthResponse", "LoginRequest", "RegisterRequest"]
