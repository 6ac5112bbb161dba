"""Posts inside collections: publishing, pinning, stars, comments and tombstones."""
from __future__ import annotations

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from app.models import Notification
from app.services import collection_service, post_service

IMAGE = [{"url": "https://cdn.test/p.jpg", "type": "image"}]


@pytest.fixture
def crew(db, user_factory):
    owner = user_factory("owner")
    member = user_factory("member")
    outsider = user_factory("outsider")
    collection = collection_service.create_collection(db, owner=owner, name="Crew", type_="Open")
    collection_service.join_collection(db, collection_id=collection.id, user=member)
    return owner, member, outsider, collection


def test_only_members_can_post(db, crew):
    owner, member, outsider, collection = crew

    post = post_service.create_post(db, author=member, collection_id=collection.id, media_items=IMAGE, caption=" hi ")
    assert post.caption == "hi"
    assert post.media_items == [{"url": "https://cdn.test/p.jpg", "type": "image", "thumbnail_url": None}]

    with pytest.raises(HTTPException) as exc:
        post_service.create_post(db, author=outsider, collection_id=collection.id, media_items=IMAGE)
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException) as bad_media:
        post_service.create_post(db, author=member, collection_id=collection.id, media_items=[{"url": "x", "type": "gif"}])
    assert bad_media.value.status_code == 400


def test_pinned_posts_lead_the_first_page_only(db, crew):
    owner, member, _, collection = crew
    posts = [
        post_service.create_post(db, author=member, collection_id=collection.id, media_items=IMAGE, caption=f"p{i}")
        for i in range(4)
    ]
    post_service.set_post_pinned(db, post_id=posts[0].id, actor=owner, pinned=True)

    with pytest.raises(HTTPException) as exc:
        post_service.set_post_pinned(db, post_id=posts[1].id, actor=member, pinned=True)
    assert exc.value.status_code == 403

    first = post_service.list_collection_posts(db, collection_id=collection.id, viewer=member, limit=2)
    assert [post.caption for post in first.items] == ["p0", "p3", "p2"]
    assert first.has_more

    second = post_service.list_collection_posts(
        db, collection_id=collection.id, viewer=member, cursor=first.next_cursor.encode(), limit=2
    )
    assert [post.caption for post in second.items] == ["p1"]
    assert not second.has_more


def test_stars_are_idempotent_and_notify_author(db, crew):
    owner, member, _, collection = crew
    post = post_service.create_post(db, author=member, collection_id=collection.id, media_items=IMAGE)

    assert post_service.set_post_starred(db, post_id=post.id, user=owner, starred=True) == 1
    assert post_service.set_post_starred(db, post_id=post.id, user=owner, starred=True) == 1
    assert post_service.has_starred(db, post_id=post.id, user_id=owner.id)
    assert post_service.set_post_starred(db, post_id=post.id, user=owner, starred=False) == 0

    stars = db.scalars(select(Notification).where(Notification.type == "post.star")).all()
    assert len(stars) == 1
    assert stars[0].recipient_id == member.id


def test_comments_are_validated_and_paged(db, crew):
    owner, member, _, collection = crew
    post = post_service.create_post(db, author=member, collection_id=collection.id, media_items=IMAGE)

    with pytest.raises(HTTPException) as empty:
        post_service.add_comment(db, post_id=post.id, user=owner, content="   ")
    assert empty.value.status_code == 400

    for text in ("one", "two", "three"):
        post_service.add_comment(db, post_id=post.id, user=owner, content=text)

    page = post_service.list_comments(db, post_id=post.id, viewer=member, limit=2)
    assert [comment.content for comment in page.items] == ["three", "two"]
    assert page.has_more


def test_delete_tombstones_post_for_author_or_admin(db, crew):
    owner, member, outsider, collection = crew
    post = post_service.create_post(db, author=member, collection_id=collection.id, media_items=IMAGE)

    with pytest.raises(HTTPException) as exc:
        post_service.delete_post(db, post_id=post.id, actor=outsider)
    assert exc.value.status_code == 403

    deleted = post_service.delete_post(db, post_id=post.id, actor=owner)
    assert deleted.is_deleted and deleted.media_items == []
    with pytest.raises(HTTPException) as gone:
        post_service.get_post(db, post_id=post.id, viewer=member)
    assert gone.value.status_code == 404


def test_post_api_flow(authed_client, crew):
    owner, member, _, collection = crew
    client = authed_client(member)

    created = client.post(
        "/posts/",
        json={"collection_id": str(collection.id), "caption": "sunset", "media_items": IMAGE},
    )
    assert created.status_code == 201, created.text
    post_id = created.json()["id"]

    starred = client.put(f"/posts/{post_id}/star", json={"starred": True})
    assert starred.status_code == 200
    assert starred.json()["star_count"] == 1

    comment = client.post(f"/posts/{post_id}/comments", json={"content": "nice"})
    assert comment.status_code == 201

    listing = client.get(f"/posts/collection/{collection.id}")
    body = listing.json()
    assert [item["caption"] for item in body["items"]] == ["sunset"]
    assert body["items"][0]["viewer_has_starred"] is True


def test_media_upload_rejects_unsupported_files(authed_client, user_factory):
    client = authed_client(user_factory("uploader"))

    response = client.post("/posts/media", files={"files": ("notes.txt", b"hello", "text/plain")})

    assert response.status_code == 400
