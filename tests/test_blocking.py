"""Blocking: symmetric hiding, the server-function path and the direct-write fallback."""
from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from fastapi import HTTPException

from app.clients.functions_client import FunctionCallError, FunctionsNotConfiguredError, call_function
from app.config import get_settings
from app.database import SessionLocal
from app.models import UserBlock
from app.services import chat_service, friendship_service
from app.services.rate_limiter import RateLimiter
from app.services.retry import RetryPolicy
from app.services.social_graph import get_chat_room, has_blocked


def _befriend(db, a, b) -> None:
    request = friendship_service.send_friend_request(db, sender=a, recipient_id=b.id)
    friendship_service.accept_friend_request(db, request_id=request.id, recipient=b)


async def _unavailable(name, payload, *, caller_id):
    raise FunctionsNotConfiguredError("not configured")


def test_block_hides_users_from_each_other(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    _befriend(db, alice, bob)

    asyncio.run(friendship_service.block_user(db, user=alice, blocked_id=bob.id, call=_unavailable))

    assert friendship_service.is_blocked(db, user=alice, other_id=bob.id)
    assert friendship_service.is_blocked_by(db, user=bob, other_id=alice.id)
    assert friendship_service.list_friends(db, user=alice) == []
    assert friendship_service.list_friends(db, user=bob) == []
    assert chat_service.list_chat_rooms(db, user=bob) == []
    assert friendship_service.list_addable_users(db, user=bob, query="ali") == []
    db.expire_all()
    room = get_chat_room(db, alice.id, bob.id)
    assert set(room.chat_status.values()) == {"blocked"}

    with pytest.raises(HTTPException) as exc:
        friendship_service.send_friend_request(db, sender=bob, recipient_id=alice.id)
    assert exc.value.status_code == 403


def test_one_sided_block_counts_for_both_directions(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    assert not friendship_service.are_users_mutually_blocked(db, alice.id, bob.id)

    asyncio.run(friendship_service.block_user(db, user=alice, blocked_id=bob.id, call=_unavailable))

    assert friendship_service.are_users_mutually_blocked(db, alice.id, bob.id)
    assert friendship_service.are_users_mutually_blocked(db, bob.id, alice.id)


def test_block_is_idempotent(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")

    asyncio.run(friendship_service.block_user(db, user=alice, blocked_id=bob.id, call=_unavailable))
    asyncio.run(friendship_service.block_user(db, user=alice, blocked_id=bob.id, call=_unavailable))

    assert db.query(UserBlock).count() == 1


def test_unblock_restores_friends_status(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    _befriend(db, alice, bob)
    asyncio.run(friendship_service.block_user(db, user=alice, blocked_id=bob.id, call=_unavailable))

    asyncio.run(friendship_service.unblock_user(db, user=alice, blocked_id=bob.id, call=_unavailable))

    assert not has_blocked(db, alice.id, bob.id)
    db.expire_all()
    room = get_chat_room(db, alice.id, bob.id)
    assert set(room.chat_status.values()) == {"friends"}


def test_unblock_keeps_room_hidden_while_other_block_stands(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    _befriend(db, alice, bob)
    asyncio.run(friendship_service.block_user(db, user=alice, blocked_id=bob.id, call=_unavailable))
    asyncio.run(friendship_service.block_user(db, user=bob, blocked_id=alice.id, call=_unavailable))
    assert friendship_service.are_users_mutually_blocked(db, alice.id, bob.id)

    asyncio.run(friendship_service.unblock_user(db, user=alice, blocked_id=bob.id, call=_unavailable))

    db.expire_all()
    room = get_chat_room(db, alice.id, bob.id)
    assert set(room.chat_status.values()) == {"blocked"}


def test_function_success_skips_direct_write(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")
    calls = []

    async def _server_side(name, payload, *, caller_id):
        calls.append((name, payload, caller_id))
        with SessionLocal() as other:
            other.add(UserBlock(blocker_id=caller_id, blocked_id=bob.id))
            other.commit()
        return {"success": True}

    asyncio.run(friendship_service.block_user(db, user=alice, blocked_id=bob.id, call=_server_side))

    assert calls == [("blockUser", {"blockedUid": str(bob.id)}, alice.id)]
    assert db.query(UserBlock).count() == 1


def test_function_reporting_failure_falls_back(db, user_factory):
    alice = user_factory("alice")
    bob = user_factory("bob")

    async def _refuses(name, payload, *, caller_id):
        return {"success": False, "error": "internal"}

    asyncio.run(friendship_service.block_user(db, user=alice, blocked_id=bob.id, call=_refuses))

    assert has_blocked(db, alice.id, bob.id)


def test_call_function_retries_transient_status(monkeypatch):
    monkeypatch.setattr(get_settings(), "functions_base_url", "https://functions.test/api")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if len(seen) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"result": {"success": True}})

    result = asyncio.run(
        call_function(
            "blockUser",
            {"blockedUid": "abc"},
            caller_id="00000000-0000-0000-0000-000000000001",
            transport=httpx.MockTransport(handler),
            policy=RetryPolicy(max_attempts=4, initial_delay=0.0),
            limiter=RateLimiter(max_per_window=10, window_seconds=1.0, max_concurrent=2),
        )
    )

    assert result == {"success": True}
    assert len(seen) == 3
    assert str(seen[0].url) == "https://functions.test/api/blockUser"
    assert json.loads(seen[0].content) == {"data": {"blockedUid": "abc"}}


def test_call_function_wraps_fatal_errors(monkeypatch):
    monkeypatch.setattr(get_settings(), "functions_base_url", "https://functions.test")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "bad request"})

    with pytest.raises(FunctionCallError):
        asyncio.run(
            call_function(
                "unblockUser",
                {},
                caller_id="00000000-0000-0000-0000-000000000001",
                transport=httpx.MockTransport(handler),
                policy=RetryPolicy(max_attempts=4, initial_delay=0.0),
                limiter=RateLimiter(),
            )
        )


def test_call_function_requires_configuration(monkeypatch):
    monkeypatch.setattr(get_settings(), "functions_base_url", None)

    with pytest.raises(FunctionsNotConfiguredError):
        asyncio.run(call_function("blockUser", {}, caller_id="x"))
