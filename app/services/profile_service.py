"""Profile lookups and updates."""
from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database import batch_write
from ..models import User
from ..schemas import ProfileUpdateRequest
from .auth_service import username_taken
from .social_graph import is_blocked_between
from .storage_service import delete_media_best_effort


def get_profile(db: Session, username: str, *, viewer_id: UUID | None = None) -> User:
    """Look up a profile by username; users on either side of a block see nothing."""

    user = db.scalar(select(User).where(User.username == username))
    if user is None or (viewer_id is not None and is_blocked_between(db, viewer_id, user.id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def is_username_available(db: Session, username: str, *, exclude_id: UUID | None = None) -> bool:
    candidate = username.strip()
    if not candidate:
        return False
    return not username_taken(db, candidate, exclude_id=exclude_id)


def update_profile(db: Session, *, user_id: UUID, payload: ProfileUpdateRequest) -> User:
    """Apply the fields the client actually sent."""

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    update_data = payload.model_dump(exclude_unset=True)

    if "username" in update_data:
        username = (update_data["username"] or "").strip()
        if not username:
            update_data.pop("username")
        elif username != user.username and not is_username_available(db, username, exclude_id=user_id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already in use")
        else:
            update_data["username"] = username

    # Empty image URLs never clear an existing image.
    replaced: list[str | None] = []
    for field in ("profile_image_url", "background_image_url"):
        if field in update_data:
            if update_data[field] in (None, ""):
                update_data.pop(field)
            elif update_data[field] != getattr(user, field):
                replaced.append(getattr(user, field))

    with batch_write(db, failure_detail="Failed to update profile"):
        for field, value in update_data.items():
            setattr(user, field, value)

    delete_media_best_effort(replaced)
    db.refresh(user)
    return user


__all__ = ["get_profile", "is_username_available", "update_profile"]
