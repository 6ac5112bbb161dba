"""Permanent account deletion removes everything the user owns."""
from __future__ import annotations

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from app.main import app
from app.models import ChatRoom, Collection, Message, Notification, Post, User
from app.services import chat_service, collection_service, friendship_service, notification_service, post_service
from app.services.account_service import delete_account

PASSWORD = "correct-horse"


def _populate(db, alice, bob):
    request = friendship_service.send_friend_request(db, sender=alice, recipient_id=bob.id)
    friendship_service.accept_friend_request(db, request_id=request.id, recipient=bob)
    room = chat_service.get_or_create_chat_room(db, user=alice, participant_ids=[alice.id, bob.id])
    chat_service.send_message(db, sender=alice, chat_id=room.id, content="", type_="image", media_url="https://cdn/chat.jpg")

    collection = collection_service.create_collection(db, owner=alice, name="Trips", type_="Open")
    post_service.create_post(
        db, author=alice, collection_id=collection.id, media_items=[{"url": "https://cdn/post.jpg", "type": "image"}]
    )
    notification_service.add_notification(db, recipient_id=bob.id, sender_id=alice.id, content="hi bob")


def test_wrong_password_is_refused(db, user_factory):
    alice = user_factory("alice", password=PASSWORD)

    with pytest.raises(HTTPException) as exc:
        delete_account(db, user=db.get(User, alice.id), password="nope", storage_delete=lambda urls: 0)

    assert exc.value.status_code == 403
    assert db.get(User, alice.id) is not None


def test_delete_account_removes_data_and_media(db, user_factory):
    alice = user_factory("alice", password=PASSWORD)
    bob = user_factory("bob")
    _populate(db, alice, bob)
    removed: list[str] = []

    def storage_delete(urls):
        removed.extend(url for url in urls if url)
        return len(removed)

    failed = delete_account(db, user=db.get(User, alice.id), password=PASSWORD, storage_delete=storage_delete)

    assert failed == []
    assert db.get(User, alice.id) is None
    assert db.scalar(select(func.count()).select_from(Collection)) == 0
    assert db.scalar(select(func.count()).select_from(Post)) == 0
    assert db.scalar(select(func.count()).select_from(ChatRoom)) == 0
    assert db.scalar(select(func.count()).select_from(Message)) == 0
    assert sorted(removed) == ["https://cdn/chat.jpg", "https://cdn/post.jpg"]

    leftover = db.scalars(select(Notification).where(Notification.recipient_id == bob.id)).all()
    assert all(item.sender_id is None for item in leftover)
    assert friendship_service.list_friends(db, user=bob) == []


def test_storage_failure_is_reported_but_account_is_gone(db, user_factory):
    alice = user_factory("alice", password=PASSWORD)

    def broken_storage(urls):
        raise RuntimeError("bucket offline")

    failed = delete_account(db, user=db.get(User, alice.id), password=PASSWORD, storage_delete=broken_storage)

    assert failed == ["storage"]
    assert db.get(User, alice.id) is None


def test_delete_account_endpoint(user_factory):
    user_factory("alice", password=PASSWORD)

    with TestClient(app) as client:
        token = client.post("/auth/login", json={"username": "alice", "password": PASSWORD}).json()["access_token"]
        headers = {"Authorization": f"Bearer {token}"}

        refused = client.post("/auth/delete-account", json={"password": "wrong"}, headers=headers)
        assert refused.status_code == 403

        deleted = client.post("/auth/delete-account", json={"password": PASSWORD}, headers=headers)
        assert deleted.status_code == 204

        assert client.get("/auth/me", headers=headers).status_code == 401
