"""Notification lifecycle: unread counts, actionable statuses and expiry."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.models import Notification
from app.services import notification_service
from app.services.cleanup_service import perform_sweep
from app.services.notification_service import NotificationStatus, NotificationType


def test_add_and_count_unread(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")

    notification_service.add_notification(db, recipient_id=alice.id, sender_id=bob.id, content="hello")
    notification_service.add_notification(
        db,
        recipient_id=alice.id,
        content="join us",
        type_=NotificationType.COLLECTION_INVITE,
        status_=NotificationStatus.PENDING,
    )

    items = notification_service.list_notifications(db, alice.id)
    assert [item.content for item in items] == ["join us", "hello"]
    assert items[0].status == "pending"
    assert notification_service.count_unread_notifications(db, alice.id) == 2

    notification_service.mark_all_read(db, alice.id)
    assert notification_service.count_unread_notifications(db, alice.id) == 0


def test_unknown_recipient_is_rejected(db):
    from uuid import uuid4

    with pytest.raises(ValueError):
        notification_service.add_notification(db, recipient_id=uuid4(), content="lost")


def test_expired_notifications_are_hidden_then_swept(db, user_factory):
    alice = user_factory("alice")
    stale = Notification(
        recipient_id=alice.id,
        type="generic",
        content="old news",
        created_at=datetime.now(timezone.utc) - timedelta(hours=25),
    )
    db.add(stale)
    db.commit()
    notification_service.add_notification(db, recipient_id=alice.id, content="fresh")

    assert [item.content for item in notification_service.list_notifications(db, alice.id)] == ["fresh"]
    assert notification_service.count_unread_notifications(db, alice.id) == 1

    summary = perform_sweep(db)
    assert summary.notifications == 1
    assert summary.total == 1
    assert db.query(Notification).count() == 1


def test_notification_api_status_and_delete(authed_client, db, user_factory):
    alice = user_factory("alice")
    other = user_factory("other")
    invite = notification_service.add_notification(
        db,
        recipient_id=alice.id,
        content="join",
        type_=NotificationType.COLLECTION_INVITE,
        status_=NotificationStatus.PENDING,
    )
    client = authed_client(alice)

    assert client.get("/notifications/summary").json() == {"unread_count": 1}

    answered = client.put(f"/notifications/{invite.id}/status", json={"status": "accepted"})
    assert answered.status_code == 200
    assert answered.json()["status"] == "accepted"
    assert answered.json()["read"] is True

    forbidden = authed_client(other).delete(f"/notifications/{invite.id}")
    assert forbidden.status_code == 404

    removed = authed_client(alice).delete(f"/notifications/{invite.id}")
    assert removed.status_code == 204
    assert authed_client(alice).get("/notifications/").json() == {"items": []}
