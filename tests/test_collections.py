"""Collection visibility, membership roles and the recently-deleted lifecycle."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from app.clients.functions_client import FunctionCallError
from app.models import Collection, Notification, Post
from app.services import collection_service, friendship_service, post_service
from app.services.cleanup_service import perform_sweep
from app.services.collection_service import Membership, can_user_view_collection


async def _unavailable(name, payload, *, caller_id):
    raise FunctionCallError("offline")


def _membership(owner, *, members=(), admins=()):
    return Membership(owner_id=owner, member_ids=frozenset(members), admin_ids=frozenset(admins))


def test_visibility_rules_follow_privacy_lists(user_factory):
    owner = user_factory("owner")
    member = user_factory("member")
    stranger = user_factory("stranger")
    public = Collection(owner_id=owner.id, name="Public", is_public=True, allowed_users=[], denied_users=[str(stranger.id)])
    private = Collection(owner_id=owner.id, name="Private", is_public=False, allowed_users=[str(stranger.id)], denied_users=[])
    membership = _membership(owner.id, members={owner.id, member.id}, admins={owner.id})

    assert can_user_view_collection(public, member.id, membership)
    assert not can_user_view_collection(public, stranger.id, membership)
    assert can_user_view_collection(private, stranger.id, membership)
    assert can_user_view_collection(private, owner.id, _membership(owner.id))
    private.allowed_users = []
    assert not can_user_view_collection(private, stranger.id, membership)
    assert can_user_view_collection(private, member.id, membership)


def test_create_makes_owner_admin_and_invites(db, user_factory):
    owner = user_factory("owner")
    guest = user_factory("guest")

    collection = collection_service.create_collection(
        db, owner=owner, name="  Trip  ", type_="Invite", invited_user_ids=[guest.id, owner.id]
    )

    assert collection.name == "Trip"
    assert collection.invited_users == [str(guest.id)]
    membership = collection_service.load_membership(db, collection)
    assert membership.is_admin(owner.id)
    assert collection_service.member_count(db, collection.id) == 1
    invite = db.scalars(select(Notification).where(Notification.recipient_id == guest.id)).one()
    assert invite.type == "collection.invite"
    assert invite.status == "pending"


def test_unknown_type_is_rejected(db, user_factory):
    owner = user_factory("owner")
    with pytest.raises(HTTPException) as exc:
        collection_service.create_collection(db, owner=owner, name="x", type_="Secret")
    assert exc.value.status_code == 400


def test_join_rules_depend_on_collection_type(db, user_factory):
    owner = user_factory("owner")
    guest = user_factory("guest")
    walker = user_factory("walker")
    open_ = collection_service.create_collection(db, owner=owner, name="Open", type_="Open")
    invite = collection_service.create_collection(db, owner=owner, name="Invite", type_="Invite", invited_user_ids=[guest.id])
    request = collection_service.create_collection(db, owner=owner, name="Request", type_="Request")

    collection_service.join_collection(db, collection_id=open_.id, user=walker)
    with pytest.raises(HTTPException) as again:
        collection_service.join_collection(db, collection_id=open_.id, user=walker)
    assert again.value.status_code == 409

    with pytest.raises(HTTPException) as uninvited:
        collection_service.join_collection(db, collection_id=invite.id, user=walker)
    assert uninvited.value.status_code == 403
    joined = collection_service.join_collection(db, collection_id=invite.id, user=guest)
    assert joined.invited_users == []

    with pytest.raises(HTTPException) as direct:
        collection_service.join_collection(db, collection_id=request.id, user=walker)
    assert direct.value.status_code == 403
    collection_service.request_to_join(db, collection_id=request.id, user=walker)
    collection_service.add_member(db, collection_id=request.id, actor=owner, user_id=walker.id)
    assert collection_service.load_membership(db, request).is_member(walker.id)


def test_admin_roles_are_owner_controlled(db, user_factory):
    owner = user_factory("owner")
    helper = user_factory("helper")
    member = user_factory("member")
    collection = collection_service.create_collection(db, owner=owner, name="Crew", type_="Open")
    collection_service.join_collection(db, collection_id=collection.id, user=helper)
    collection_service.join_collection(db, collection_id=collection.id, user=member)

    with pytest.raises(HTTPException) as not_owner:
        collection_service.promote_to_admin(db, collection_id=collection.id, actor=helper, user_id=member.id)
    assert not_owner.value.status_code == 403

    collection_service.promote_to_admin(db, collection_id=collection.id, actor=owner, user_id=helper.id)
    collection_service.remove_member(db, collection_id=collection.id, actor=helper, user_id=member.id)
    assert not collection_service.load_membership(db, collection).is_member(member.id)

    with pytest.raises(HTTPException) as owner_removed:
        collection_service.remove_member(db, collection_id=collection.id, actor=helper, user_id=owner.id)
    assert owner_removed.value.status_code == 400

    with pytest.raises(HTTPException) as owner_leaves:
        collection_service.leave_collection(db, collection_id=collection.id, user=owner)
    assert owner_leaves.value.status_code == 400

    collection_service.demote_from_admin(db, collection_id=collection.id, actor=owner, user_id=helper.id)
    assert not collection_service.load_membership(db, collection).is_admin(helper.id)


def test_block_hides_owner_collections(db, user_factory):
    owner = user_factory("owner")
    viewer = user_factory("viewer")
    collection = collection_service.create_collection(db, owner=owner, name="Mine")
    assert collection_service.list_visible_collections(db, profile_user_id=owner.id, viewer=viewer) == [collection]

    asyncio.run(friendship_service.block_user(db, user=owner, blocked_id=viewer.id, call=_unavailable))

    assert collection_service.list_visible_collections(db, profile_user_id=owner.id, viewer=viewer) == []
    with pytest.raises(HTTPException) as exc:
        collection_service.get_collection(db, collection_id=collection.id, viewer=viewer)
    assert exc.value.status_code == 403


def test_follow_is_idempotent(db, user_factory):
    owner = user_factory("owner")
    fan = user_factory("fan")
    collection = collection_service.create_collection(db, owner=owner, name="Art")

    collection_service.follow_collection(db, collection_id=collection.id, user=fan)
    collection_service.follow_collection(db, collection_id=collection.id, user=fan)
    assert collection_service.list_followed_collections(db, user=fan) == [collection]

    collection_service.unfollow_collection(db, collection_id=collection.id, user=fan)
    assert collection_service.list_followed_collections(db, user=fan) == []


def test_soft_delete_and_recover_within_window(db, user_factory):
    owner = user_factory("owner")
    collection = collection_service.create_collection(db, owner=owner, name="Oops")

    collection_service.soft_delete_collection(db, collection_id=collection.id, actor=owner)
    assert collection_service.list_user_collections(db, user_id=owner.id) == []
    assert collection_service.list_deleted_collections(db, owner=owner) == [collection]

    with pytest.raises(HTTPException) as gone:
        collection_service.recover_collection(
            db, collection_id=collection.id, actor=owner, now=datetime.now(timezone.utc) + timedelta(days=16)
        )
    assert gone.value.status_code == 410

    collection_service.recover_collection(db, collection_id=collection.id, actor=owner)
    assert collection_service.list_user_collections(db, user_id=owner.id) == [collection]


def test_permanent_delete_requires_soft_delete(db, user_factory):
    owner = user_factory("owner")
    collection = collection_service.create_collection(db, owner=owner, name="Gone")

    with pytest.raises(HTTPException) as exc:
        collection_service.permanently_delete_collection(db, collection_id=collection.id, actor=owner)
    assert exc.value.status_code == 409

    collection_service.soft_delete_collection(db, collection_id=collection.id, actor=owner)
    collection_service.permanently_delete_collection(db, collection_id=collection.id, actor=owner)
    assert db.get(Collection, collection.id) is None


def test_sweep_purges_expired_collections_and_their_posts(db, user_factory):
    owner = user_factory("owner")
    expired = collection_service.create_collection(db, owner=owner, name="Old")
    recent = collection_service.create_collection(db, owner=owner, name="New")
    post_service.create_post(
        db, author=owner, collection_id=expired.id, media_items=[{"url": "https://cdn/a.jpg", "type": "image"}]
    )
    collection_service.soft_delete_collection(db, collection_id=expired.id, actor=owner)
    collection_service.soft_delete_collection(db, collection_id=recent.id, actor=owner)

    summary = perform_sweep(db, now=datetime.now(timezone.utc) + timedelta(days=15, minutes=1))

    assert summary.collections == 2
    assert db.scalars(select(Post)).all() == []

    survivor = collection_service.create_collection(db, owner=owner, name="Fresh")
    collection_service.soft_delete_collection(db, collection_id=survivor.id, actor=owner)
    assert perform_sweep(db).collections == 0


def test_collection_api_create_and_read(authed_client, user_factory):
    owner = user_factory("owner")
    client = authed_client(owner)

    created = client.post("/collections/", json={"name": "Summer", "type": "Open", "is_public": True})
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["member_count"] == 1

    fetched = client.get(f"/collections/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Summer"

    mine = client.get("/collections/mine")
    assert [item["id"] for item in mine.json()["items"]] == [body["id"]]
