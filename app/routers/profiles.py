"""Profile API routes."""
from __future__ import annotations

import logging
from typing import Literal, cast
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import User
from ..schemas import ProfileResponse, ProfileUpdateRequest, UsernameAvailability
from ..services import get_current_user, get_profile, is_username_available, update_profile
from ..services.media_upload_service import MediaProcessingError, MediaUpload, upload_media_items
from ..services.storage_service import StorageConfigurationError, StorageUploadError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/username-available", response_model=UsernameAvailability)
async def username_available(
    username: str = Query(..., min_length=1, max_length=32),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> UsernameAvailability:
    available = is_username_available(db, username, exclude_id=cast(UUID, current_user.id))
    return UsernameAvailability(username=username, available=available)


@router.put("/me", response_model=ProfileResponse)
async def update_my_profile(
    payload: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ProfileResponse:
    updated = update_profile(db, user_id=cast(UUID, current_user.id), payload=payload)
    return ProfileResponse.model_validate(updated)


@router.post("/me/image", response_model=ProfileResponse)
async def upload_my_image(
    kind: Literal["profile", "background"] = Query("profile"),
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ProfileResponse:
    """Compress and store a profile or background image, then attach it."""

    if not (file.content_type or "").startswith("image/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only images are supported")
    upload = MediaUpload(data=await file.read(), content_type=file.content_type or "image/jpeg", filename=file.filename)
    try:
        [result] = await upload_media_items([upload], folder=f"profiles/{current_user.id}")
    except MediaProcessingError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (StorageConfigurationError, StorageUploadError) as exc:
        logger.error("Profile image upload failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Image upload failed") from exc

    field = "profile_image_url" if kind == "profile" else "background_image_url"
    payload = ProfileUpdateRequest(**{field: result.url})
    updated = update_profile(db, user_id=cast(UUID, current_user.id), payload=payload)
    return ProfileResponse.model_validate(updated)


@router.get("/{username}", response_model=ProfileResponse)
async def retrieve_profile(
    username: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ProfileResponse:
    user = get_profile(db, username, viewer_id=cast(UUID, current_user.id))
    return ProfileResponse.model_validate(user)
