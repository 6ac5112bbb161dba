"""Notification API routes."""
from __future__ import annotations

from typing import cast
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import User
from ..schemas import (
    NotificationListResponse,
    NotificationResponse,
    NotificationStatusUpdate,
    NotificationSummaryResponse,
)
from ..services import notification_service
from ..services.auth_service import get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=NotificationListResponse)
async def list_my_notifications(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> NotificationListResponse:
    items = notification_service.list_notifications(db, cast(UUID, current_user.id))
    return NotificationListResponse(items=[NotificationResponse.model_validate(item) for item in items])


@router.get("/summary", response_model=NotificationSummaryResponse)
async def notification_summary(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> NotificationSummaryResponse:
    count = notification_service.count_unread_notifications(db, cast(UUID, current_user.id))
    return NotificationSummaryResponse(unread_count=count)


@router.post("/read-all", status_code=status.HTTP_204_NO_CONTENT)
async def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    notification_service.mark_all_read(db, cast(UUID, current_user.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> NotificationResponse:
    notification = notification_service.mark_notification_read(
        db, notification_id=notification_id, recipient_id=cast(UUID, current_user.id)
    )
    return NotificationResponse.model_validate(notification)


@router.put("/{notification_id}/status", response_model=NotificationResponse)
async def update_notification_status(
    notification_id: UUID,
    payload: NotificationStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> NotificationResponse:
    notification = notification_service.update_notification_status(
        db,
        notification_id=notification_id,
        recipient_id=cast(UUID, current_user.id),
        new_status=notification_service.NotificationStatus(payload.status),
    )
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    notification_service.delete_notification(
        db, notification_id=notification_id, recipient_id=cast(UUID, current_user.id)
    )
