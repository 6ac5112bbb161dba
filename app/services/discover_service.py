"""Rule-based ranking for the Discover feed.

Scores are a weighted sum of social signals, a light popularity proxy, a
recency bonus and a small random jitter. The jitter keeps the top of the feed
from settling into the same order on every load.
"""
from __future__ import annotations

import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Sequence, TypeVar, cast
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..models import Collection, CollectionFollower, CollectionMember, Post, PostStar, User
from ..models.base import as_utc
from .collection_service import can_user_view_collection, load_membership
from .social_graph import friend_ids, hidden_user_ids

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DiscoverWeights:
    follows_creator: float = 10.0
    friend_joined: float = 8.0
    friend_follows_creator: float = 4.0
    friend_liked: float = 3.0
    friend_posted: float = 6.0
    friend_in_collection: float = 6.0
    members_per_point: float = 50.0
    recency_max: float = 10.0
    recency_hours: float = 10.0
    jitter_max: float = 3.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "DiscoverWeights":
        settings = settings or get_settings()
        return cls(
            follows_creator=settings.discover_follows_creator,
            friend_joined=settings.discover_friend_joined,
            friend_follows_creator=settings.discover_friend_follows_creator,
            friend_liked=settings.discover_friend_liked,
            friend_posted=settings.discover_friend_posted,
            friend_in_collection=settings.discover_friend_in_collection,
            members_per_point=settings.discover_members_per_point,
            recency_max=settings.discover_recency_max,
            recency_hours=settings.discover_recency_hours,
            jitter_max=settings.discover_jitter_max,
        )


@dataclass(slots=True)
class FriendSignals:
    """What the viewer's friends have done, indexed by the thing they did it to."""

    following_creators: set[UUID] = field(default_factory=set)
    joined: dict[UUID, set[UUID]] = field(default_factory=dict)
    follow_creator: dict[UUID, set[UUID]] = field(default_factory=dict)
    liked_collection: dict[UUID, set[UUID]] = field(default_factory=dict)
    liked_post: dict[UUID, set[UUID]] = field(default_factory=dict)
    posted_in: dict[UUID, set[UUID]] = field(default_factory=dict)

    @staticmethod
    def _count(index: dict[UUID, set[UUID]], key: UUID) -> int:
        return len(index.get(key, ()))

    def friends_joined(self, collection_id: UUID) -> int:
        return self._count(self.joined, collection_id)

    def friends_following(self, creator_id: UUID) -> int:
        return self._count(self.follow_creator, creator_id)

    def friends_liked_collection(self, collection_id: UUID) -> int:
        return self._count(self.liked_collection, collection_id)

    def friends_liked_post(self, post_id: UUID) -> int:
        return self._count(self.liked_post, post_id)

    def friends_posted_in(self, collection_id: UUID) -> int:
        return self._count(self.posted_in, collection_id)


@dataclass(slots=True)
class DiscoverFeed:
    collections: list[Collection]
    posts: list[tuple[Post, Collection]]


def recency_bonus(created_at: datetime, now: datetime, weights: DiscoverWeights) -> float:
    """Linear decay from ``recency_max`` at creation to zero after ``recency_hours``."""

    hours = (now - as_utc(created_at)).total_seconds() / 3600.0
    # Clock skew can date a row slightly in the future.
    hours = max(hours, 0.0)
    return max(0.0, weights.recency_max - hours * (weights.recency_max / weights.recency_hours))


def score_collection(
    *,
    owner_id: UUID,
    collection_id: UUID,
    member_count: int,
    created_at: datetime,
    signals: FriendSignals,
    now: datetime,
    rng: random.Random,
    weights: DiscoverWeights,
) -> float:
    score = 0.0
    if owner_id in signals.following_creators:
        score += weights.follows_creator
    score += weights.friend_joined * signals.friends_joined(collection_id)
    score += weights.friend_follows_creator * signals.friends_following(owner_id)
    score += weights.friend_liked * signals.friends_liked_collection(collection_id)
    score += weights.friend_posted * signals.friends_posted_in(collection_id)
    score += member_count / weights.members_per_point
    score += recency_bonus(created_at, now, weights)
    score += rng.uniform(0.0, weights.jitter_max)
    return score


def score_post(
    *,
    author_id: UUID,
    post_id: UUID,
    collection_id: UUID,
    member_count: int,
    created_at: datetime,
    signals: FriendSignals,
    now: datetime,
    rng: random.Random,
    weights: DiscoverWeights,
) -> float:
    score = 0.0
    if author_id in signals.following_creators:
        score += weights.follows_creator
    score += weights.friend_liked * signals.friends_liked_post(post_id)
    score += weights.friend_follows_creator * signals.friends_following(author_id)
    score += weights.friend_in_collection * signals.friends_joined(collection_id)
    score += member_count / weights.members_per_point
    score += recency_bonus(created_at, now, weights)
    score += rng.uniform(0.0, weights.jitter_max)
    return score


def rank_candidates(candidates: Iterable[T], score: Callable[[T], float], limit: int) -> list[T]:
    """Highest score first, top ``limit`` only. Each candidate is scored once."""

    scored = [(score(candidate), index, candidate) for index, candidate in enumerate(candidates)]
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [candidate for _, _, candidate in scored[:limit]]


def _index(rows: Iterable[tuple[UUID, UUID]]) -> dict[UUID, set[UUID]]:
    index: dict[UUID, set[UUID]] = defaultdict(set)
    for key, friend in rows:
        index[key].add(friend)
    return dict(index)


def load_friend_signals(db: Session, viewer_id: UUID) -> FriendSignals:
    """Collect the viewer's and their friends' activity in a handful of queries."""

    following_creators = set(
        db.scalars(
            select(Collection.owner_id)
            .join(CollectionFollower, CollectionFollower.collection_id == Collection.id)
            .where(CollectionFollower.user_id == viewer_id, Collection.deleted_at.is_(None))
        )
    )
    friends = friend_ids(db, viewer_id) - hidden_user_ids(db, viewer_id)
    if not friends:
        return FriendSignals(following_creators=following_creators)

    joined = db.execute(
        select(CollectionMember.collection_id, CollectionMember.user_id).where(CollectionMember.user_id.in_(friends))
    ).all()
    follows = db.execute(
        select(Collection.owner_id, CollectionFollower.user_id)
        .join(Collection, Collection.id == CollectionFollower.collection_id)
        .where(CollectionFollower.user_id.in_(friends), Collection.deleted_at.is_(None))
    ).all()
    stars = db.execute(
        select(PostStar.post_id, Post.collection_id, PostStar.user_id)
        .join(Post, Post.id == PostStar.post_id)
        .where(PostStar.user_id.in_(friends), Post.is_deleted.is_(False))
    ).all()
    posted = db.execute(
        select(Post.collection_id, Post.author_id)
        .where(Post.author_id.in_(friends), Post.is_deleted.is_(False))
        .distinct()
    ).all()
    return FriendSignals(
        following_creators=following_creators,
        joined=_index(joined),
        follow_creator=_index(follows),
        liked_collection=_index((collection_id, friend) for _, collection_id, friend in stars),
        liked_post=_index((post_id, friend) for post_id, _, friend in stars),
        posted_in=_index(posted),
    )


def _member_counts(db: Session, collection_ids: set[UUID]) -> dict[UUID, int]:
    if not collection_ids:
        return {}
    rows = db.execute(
        select(CollectionMember.collection_id, func.count())
        .where(CollectionMember.collection_id.in_(collection_ids))
        .group_by(CollectionMember.collection_id)
    ).all()
    return {collection_id: int(count) for collection_id, count in rows}


def _eligible(db: Session, collection: Collection, viewer_id: UUID, hidden: set[UUID]) -> bool:
    """Visible to the viewer, not theirs, not joined and not owned by someone on either side of a block."""

    if collection.deleted_at is not None or collection.owner_id == viewer_id or collection.owner_id in hidden:
        return False
    membership = load_membership(db, collection)
    if membership.is_member(viewer_id):
        return False
    return can_user_view_collection(collection, viewer_id, membership)


def load_discover_feed(
    db: Session,
    viewer: User,
    *,
    limit: int | None = None,
    exclude_collection_ids: Sequence[UUID] = (),
    exclude_post_ids: Sequence[UUID] = (),
    rng: random.Random | None = None,
    now: datetime | None = None,
    weights: DiscoverWeights | None = None,
) -> DiscoverFeed:
    settings = get_settings()
    viewer_id = cast(UUID, viewer.id)
    limit = limit or settings.discover_default_limit
    candidate_limit = settings.discover_candidate_limit
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)
    weights = weights or DiscoverWeights.from_settings(settings)
    excluded_collections = set(exclude_collection_ids)
    excluded_posts = set(exclude_post_ids)
    hidden = hidden_user_ids(db, viewer_id)

    collection_rows = db.scalars(
        select(Collection)
        .where(Collection.is_public.is_(True), Collection.deleted_at.is_(None))
        .order_by(Collection.created_at.desc())
        .limit(candidate_limit)
    )
    collections = [
        collection
        for collection in collection_rows
        if collection.id not in excluded_collections and _eligible(db, collection, viewer_id, hidden)
    ]

    post_rows = db.scalars(
        select(Post).where(Post.is_deleted.is_(False)).order_by(Post.created_at.desc()).limit(candidate_limit)
    )
    eligible_cache: dict[UUID, bool] = {}
    posts: list[tuple[Post, Collection]] = []
    for post in post_rows:
        if post.id in excluded_posts or post.collection_id in excluded_collections:
            continue
        if post.author_id == viewer_id or post.author_id in hidden:
            continue
        collection = post.collection
        if collection.id not in eligible_cache:
            eligible_cache[collection.id] = _eligible(db, collection, viewer_id, hidden)
        if eligible_cache[collection.id]:
            posts.append((post, collection))

    counts = _member_counts(db, {c.id for c in collections} | {c.id for _, c in posts})
    signals = load_friend_signals(db, viewer_id)

    ranked_collections = rank_candidates(
        collections,
        lambda c: score_collection(
            owner_id=c.owner_id,
            collection_id=c.id,
            member_count=counts.get(c.id, 0),
            created_at=c.created_at,
            signals=signals,
            now=now,
            rng=rng,
            weights=weights,
        ),
        limit,
    )
    ranked_posts = rank_candidates(
        posts,
        lambda item: score_post(
            author_id=item[0].author_id,
            post_id=item[0].id,
            collection_id=item[1].id,
            member_count=counts.get(item[1].id, 0),
            created_at=item[0].created_at,
            signals=signals,
            now=now,
            rng=rng,
            weights=weights,
        ),
        limit,
    )
    logger.debug(
        "Discover feed for %s: %d/%d collections, %d/%d posts",
        viewer_id,
        len(ranked_collections),
        len(collections),
        len(ranked_posts),
        len(posts),
    )
    return DiscoverFeed(collections=ranked_collections, posts=ranked_posts)


__all__ = [
    "DiscoverFeed",
    "DiscoverWeights",
    "FriendSignals",
    "load_discover_feed",
    "load_friend_signals",
    "rank_candidates",
    "recency_bonus",
    "score_collection",
    "score_post",
]
