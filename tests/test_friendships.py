"""Friend request, un-add and restore flows against a real session."""
from __future__ import annotations

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from app.models import FriendRequest, Notification
from app.services import chat_service, friendship_service
from app.services.chat_status import ChatStatus
from app.services.social_graph import are_friends, chat_room_id, get_chat_room


def _befriend(db, a, b) -> None:
    request = friendship_service.send_friend_request(db, sender=a, recipient_id=b.id)
    friendship_service.accept_friend_request(db, request_id=request.id, recipient=b)


def _statuses(db, a, b) -> tuple[str, str]:
    db.expire_all()
    room = get_chat_room(db, a.id, b.id)
    assert room is not None
    return room.chat_status[str(a.id)], room.chat_status[str(b.id)]


def test_request_then_accept_makes_friends(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")

    request = friendship_service.send_friend_request(db, sender=alice, recipient_id=bob.id)
    assert request.status == "pending"
    assert request.id == f"{alice.id}_{bob.id}"
    assert [item.id for item in friendship_service.list_incoming_requests(db, user=bob)] == [request.id]
    assert friendship_service.count_pending_requests(db, user=bob, unseen_only=True) == 1

    friendship_service.mark_requests_seen(db, user=bob)
    assert friendship_service.count_pending_requests(db, user=bob, unseen_only=True) == 0

    accepted = friendship_service.accept_friend_request(db, request_id=request.id, recipient=bob)
    assert accepted.status == "accepted"
    assert are_friends(db, alice.id, bob.id)
    assert _statuses(db, alice, bob) == ("friends", "friends")
    assert [friend.id for friend in friendship_service.list_friends(db, user=alice)] == [bob.id]

    types = set(db.scalars(select(Notification.type)))
    assert types == {"friend.request", "friend.added"}


def test_cannot_request_self_or_duplicate(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")

    with pytest.raises(HTTPException) as self_request:
        friendship_service.send_friend_request(db, sender=alice, recipient_id=alice.id)
    assert self_request.value.status_code == 400

    friendship_service.send_friend_request(db, sender=alice, recipient_id=bob.id)
    with pytest.raises(HTTPException) as duplicate:
        friendship_service.send_friend_request(db, sender=alice, recipient_id=bob.id)
    assert duplicate.value.status_code == 409


def test_deny_leaves_users_unconnected(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    request = friendship_service.send_friend_request(db, sender=alice, recipient_id=bob.id)

    denied = friendship_service.deny_friend_request(db, request_id=request.id, recipient=bob)

    assert denied.status == "denied"
    assert not are_friends(db, alice.id, bob.id)
    with pytest.raises(HTTPException) as again:
        friendship_service.accept_friend_request(db, request_id=request.id, recipient=bob)
    assert again.value.status_code == 409


def test_removal_by_both_sides_ends_in_both_unadded(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    _befriend(db, alice, bob)

    assert friendship_service.remove_friend(db, user=alice, friend_id=bob.id) == (
        ChatStatus.I_UNADDED,
        ChatStatus.THEY_UNADDED,
    )
    assert not are_friends(db, alice.id, bob.id)
    assert _statuses(db, alice, bob) == ("iUnadded", "theyUnadded")

    assert friendship_service.remove_friend(db, user=bob, friend_id=alice.id) == (
        ChatStatus.BOTH_UNADDED,
        ChatStatus.BOTH_UNADDED,
    )
    assert _statuses(db, alice, bob) == ("bothUnadded", "bothUnadded")


def test_one_way_unadd_can_be_restored_directly(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    _befriend(db, alice, bob)
    friendship_service.remove_friend(db, user=alice, friend_id=bob.id)

    summary = friendship_service.relation_summary(db, user=alice, other_id=bob.id)
    assert summary.can_restore and summary.one_way_unadd and not summary.are_friends

    friendship_service.restore_friendship(db, user=alice, other_id=bob.id)

    assert are_friends(db, alice.id, bob.id)
    assert _statuses(db, alice, bob) == ("friends", "friends")


def test_strangers_with_an_open_room_cannot_be_unadded_or_restored(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    chat_service.get_or_create_chat_room(db, user=alice, participant_ids=[alice.id, bob.id])

    with pytest.raises(HTTPException) as removal:
        friendship_service.remove_friend(db, user=alice, friend_id=bob.id)
    assert removal.value.status_code == 404
    assert _statuses(db, alice, bob) == ("pending", "pending")

    with pytest.raises(HTTPException) as restore:
        friendship_service.restore_friendship(db, user=alice, other_id=bob.id)
    assert restore.value.status_code == 409
    assert not are_friends(db, alice.id, bob.id)


def test_mutual_unadd_requires_a_new_request(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    _befriend(db, alice, bob)
    friendship_service.remove_friend(db, user=alice, friend_id=bob.id)
    friendship_service.remove_friend(db, user=bob, friend_id=alice.id)

    with pytest.raises(HTTPException) as restore:
        friendship_service.restore_friendship(db, user=alice, other_id=bob.id)
    assert restore.value.status_code == 409

    request = friendship_service.send_friend_request(db, sender=alice, recipient_id=bob.id)
    assert _statuses(db, alice, bob) == ("pendingAdd", "bothUnadded")

    friendship_service.accept_friend_request(db, request_id=request.id, recipient=bob)
    assert _statuses(db, alice, bob) == ("friends", "friends")


def test_crossing_requests_converge_to_friends(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")

    friendship_service.send_friend_request(db, sender=alice, recipient_id=bob.id)
    second = friendship_service.send_friend_request(db, sender=bob, recipient_id=alice.id)

    assert second.status == "accepted"
    assert are_friends(db, alice.id, bob.id)
    statuses = set(db.scalars(select(FriendRequest.status)))
    assert statuses == {"accepted"}
    assert get_chat_room(db, alice.id, bob.id).id == chat_room_id(bob.id, alice.id)


def test_search_hides_friends_and_one_way_pairs(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bobby")
    carol = user_factory("bobcat")
    dave = user_factory("bobsled")
    _befriend(db, alice, bob)
    _befriend(db, alice, carol)
    friendship_service.remove_friend(db, user=alice, friend_id=carol.id)

    results = friendship_service.list_addable_users(db, user=alice, query="bob")

    assert [user.id for user in results] == [dave.id]


def test_friends_api_round_trip(authed_client, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")

    sent = authed_client(alice).post("/friends/requests", json={"user_id": str(bob.id)})
    assert sent.status_code == 201, sent.text
    request_id = sent.json()["id"]

    client = authed_client(bob)
    overview = client.get("/friends/")
    assert overview.status_code == 200
    assert overview.json()["unseen_request_count"] == 1

    accepted = client.post(f"/friends/requests/{request_id}/accept")
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    removed = client.delete(f"/friends/{alice.id}")
    assert removed.json() == {"my_status": "iUnadded", "their_status": "theyUnadded"}

    relation = authed_client(alice).get(f"/friends/{bob.id}/relation")
    assert relation.status_code == 200
    body = relation.json()
    assert body["my_status"] == "theyUnadded"
    assert body["can_restore"] is True
