"""Chat rooms and messages: previews, unread counts, edits, tombstones and clears."""
from __future__ import annotations

import pytest
from fastapi import HTTPException

from app.services import chat_service, friendship_service
from app.services.social_graph import chat_room_id


def _open_room(db, a, b):
    request = friendship_service.send_friend_request(db, sender=a, recipient_id=b.id)
    friendship_service.accept_friend_request(db, request_id=request.id, recipient=b)
    return chat_service.get_or_create_chat_room(db, user=a, participant_ids=[a.id, b.id])


def test_room_requires_exactly_two_participants(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")

    with pytest.raises(HTTPException) as exc:
        chat_service.get_or_create_chat_room(db, user=alice, participant_ids=[alice.id, bob.id, alice.id])
    assert exc.value.status_code == 400

    room = chat_service.get_or_create_chat_room(db, user=alice, participant_ids=[bob.id, alice.id])
    assert room.id == chat_room_id(alice.id, bob.id)
    assert room.chat_status == {str(alice.id): "pending", str(bob.id): "pending"}


def test_send_updates_preview_and_unread(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    room = _open_room(db, alice, bob)

    chat_service.send_message(db, sender=alice, chat_id=room.id, content="hello")
    chat_service.send_message(db, sender=alice, chat_id=room.id, content="", type_="image", media_url="https://cdn/x.jpg")

    db.refresh(room)
    assert room.last_message == "[Image]"
    assert room.unread_count[str(bob.id)] == 2
    assert chat_service.count_unread_messages(db, user=bob) == 2

    chat_service.mark_chat_read(db, user=bob, chat_id=room.id)
    assert chat_service.count_unread_messages(db, user=bob) == 0


def test_empty_text_message_is_rejected(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    room = _open_room(db, alice, bob)

    with pytest.raises(HTTPException) as exc:
        chat_service.send_message(db, sender=alice, chat_id=room.id, content="   ")
    assert exc.value.status_code == 400


def test_edit_limit_and_sender_only(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    room = _open_room(db, alice, bob)
    message = chat_service.send_message(db, sender=alice, chat_id=room.id, content="frist")

    with pytest.raises(HTTPException) as not_sender:
        chat_service.edit_message(db, user=bob, chat_id=room.id, message_id=message.id, new_text="hacked")
    assert not_sender.value.status_code == 403

    chat_service.edit_message(db, user=alice, chat_id=room.id, message_id=message.id, new_text="first")
    edited = chat_service.edit_message(db, user=alice, chat_id=room.id, message_id=message.id, new_text="first!")
    assert edited.is_edited and edited.edit_count == 2
    db.refresh(room)
    assert room.last_message == "first!"

    with pytest.raises(HTTPException) as limit:
        chat_service.edit_message(db, user=alice, chat_id=room.id, message_id=message.id, new_text="third")
    assert limit.value.status_code == 409


def test_delete_leaves_tombstone_in_place(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    room = _open_room(db, alice, bob)
    first = chat_service.send_message(db, sender=alice, chat_id=room.id, content="keep")
    second = chat_service.send_message(db, sender=alice, chat_id=room.id, content="oops")
    chat_service.add_reaction(db, user=bob, chat_id=room.id, message_id=second.id, emoji="😂")

    deleted = chat_service.delete_message(db, user=alice, chat_id=room.id, message_id=second.id)

    assert deleted.is_deleted
    assert deleted.content == chat_service.DELETED_TEXT
    assert deleted.reactions == {}
    page = chat_service.list_messages(db, user=bob, chat_id=room.id)
    assert [message.id for message in page.items] == [second.id, first.id]
    db.refresh(room)
    assert room.last_message == chat_service.DELETED_TEXT

    with pytest.raises(HTTPException) as exc:
        chat_service.add_reaction(db, user=bob, chat_id=room.id, message_id=second.id, emoji="👍")
    assert exc.value.status_code == 409


def test_deleting_an_earlier_message_keeps_the_latest_preview(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    room = _open_room(db, alice, bob)
    first = chat_service.send_message(db, sender=alice, chat_id=room.id, content="first")
    chat_service.send_message(db, sender=alice, chat_id=room.id, content="second")

    chat_service.delete_message(db, user=alice, chat_id=room.id, message_id=first.id)

    db.refresh(room)
    assert room.last_message == "second"


def test_reactions_are_one_per_user(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    room = _open_room(db, alice, bob)
    message = chat_service.send_message(db, sender=alice, chat_id=room.id, content="hi")

    chat_service.add_reaction(db, user=bob, chat_id=room.id, message_id=message.id, emoji="👍")
    updated = chat_service.add_reaction(db, user=bob, chat_id=room.id, message_id=message.id, emoji="❤️")
    assert updated.reactions == {str(bob.id): "❤️"}

    cleared = chat_service.remove_reaction(db, user=bob, chat_id=room.id, message_id=message.id)
    assert cleared.reactions == {}


def test_clear_chat_hides_history_for_one_side_only(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    room = _open_room(db, alice, bob)
    for text in ("one", "two", "three"):
        chat_service.send_message(db, sender=alice, chat_id=room.id, content=text)

    assert chat_service.clear_chat_for_me(db, user=bob, chat_id=room.id) == 3
    assert chat_service.clear_chat_for_me(db, user=bob, chat_id=room.id) == 0

    assert chat_service.list_messages(db, user=bob, chat_id=room.id).items == []
    assert len(chat_service.list_messages(db, user=alice, chat_id=room.id).items) == 3
    assert chat_service.search_messages(db, user=bob, chat_id=room.id, query="two") == []
    assert [m.content for m in chat_service.search_messages(db, user=alice, chat_id=room.id, query="TWO")] == ["two"]
    db.refresh(room)
    # The preview is shared, so it is blank for both sides until the next message.
    assert room.last_message == ""
    assert room.unread_count[str(bob.id)] == 0
    assert room.unread_count.get(str(alice.id), 0) == 0


def test_message_pages_walk_back_in_time(authed_client, db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    room = _open_room(db, alice, bob)
    for index in range(5):
        chat_service.send_message(db, sender=alice, chat_id=room.id, content=f"m{index}")

    client = authed_client(bob)
    first = client.get(f"/chats/{room.id}/messages", params={"limit": 3})
    assert first.status_code == 200, first.text
    body = first.json()
    assert [item["content"] for item in body["items"]] == ["m4", "m3", "m2"]
    assert body["has_more"] is True

    second = client.get(f"/chats/{room.id}/messages", params={"limit": 3, "cursor": body["next_cursor"]})
    assert [item["content"] for item in second.json()["items"]] == ["m1", "m0"]
    assert second.json()["has_more"] is False


def test_friends_get_rooms_before_first_message(authed_client, db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    request = friendship_service.send_friend_request(db, sender=alice, recipient_id=bob.id)
    friendship_service.accept_friend_request(db, request_id=request.id, recipient=bob)

    response = authed_client(alice).get("/chats/")

    assert response.status_code == 200
    rooms = response.json()
    assert len(rooms) == 1
    assert rooms[0]["other_user_id"] == str(bob.id)
    assert rooms[0]["my_status"] == "friends"
