"""Business logic for friend requests, un-adds, restores and blocks.

Each mutation reads the pair's chat statuses, applies a transition from
:mod:`app.services.chat_status` and writes the friend graph, the chat room and
the request lifecycle in one batch. Blocks sit outside that vocabulary: they
are an overriding filter applied before any status logic wherever users are
listed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, cast
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.orm import Session

from ..clients.functions_client import FunctionCallError, call_function
from ..database import batch_write
from ..models import FriendRequest, Friendship, User, UserBlock
from ..models.friend_request import friend_request_id
from .chat_status import (
    UNADD_STATES,
    ChatStatus,
    can_restore_friendship,
    has_one_way_unadd,
    read_pair,
    status_after_request,
    statuses_after_accept,
    statuses_after_remove,
    statuses_after_unblock,
)
from .notification_service import NotificationStatus, NotificationType, build_notification
from .social_graph import (
    are_friends,
    blocked_by_user_ids,
    blocked_user_ids,
    get_chat_room,
    get_friendship,
    has_blocked,
    hidden_user_ids,
    is_blocked_between,
    new_chat_room,
    ordered_pair,
    write_statuses,
)

logger = logging.getLogger(__name__)

FunctionCaller = Callable[..., Awaitable[dict]]

_REMOVABLE_WITHOUT_FRIENDSHIP = UNADD_STATES | {ChatStatus.PENDING_ADD}


@dataclass(frozen=True, slots=True)
class BlockStatus:
    blocked: bool
    blocked_by: bool

    @property
    def hidden(self) -> bool:
        return self.blocked or self.blocked_by


@dataclass(frozen=True, slots=True)
class RelationSummary:
    """Everything a profile or chat screen needs to pick the right friend action."""

    are_friends: bool
    room_exists: bool
    my_status: ChatStatus | None
    their_status: ChatStatus | None
    one_way_unadd: bool
    can_restore: bool
    blocked: bool
    blocked_by: bool
    outgoing_request: str | None
    incoming_request: str | None


def _require_user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _ensure_not_blocked(db: Session, a: UUID, b: UUID) -> None:
    if is_blocked_between(db, a, b):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This user is not available")


def _add_friendship(db: Session, a: UUID, b: UUID) -> None:
    if get_friendship(db, a, b) is None:
        first, second = ordered_pair(a, b)
        db.add(Friendship(user_a_id=first, user_b_id=second, created_at=datetime.now(timezone.utc)))


def _mark_accepted(request: FriendRequest, now: datetime) -> None:
    setattr(request, "status", "accepted")
    setattr(request, "responded_at", now)


def _converge_to_friends(db: Session, a: UUID, b: UUID, *, now: datetime) -> None:
    """Stage the writes that make ``a`` and ``b`` friends on both sides (caller commits)."""

    _add_friendship(db, a, b)
    room = get_chat_room(db, a, b)
    if room is None:
        db.add(new_chat_room(a, b, status_=ChatStatus.FRIENDS))
        return
    mine, theirs = read_pair(room.chat_status, me=a, them=b)
    new_mine, new_theirs = statuses_after_accept(mine, theirs)
    write_statuses(room, [(a, new_mine), (b, new_theirs)])


def send_friend_request(db: Session, *, sender: User, recipient_id: UUID) -> FriendRequest:
    """Send (or re-send) a request; a pending request the other way converges immediately."""

    sender_id = cast(UUID, sender.id)
    if recipient_id == sender_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot add yourself as a friend")
    recipient = _require_user(db, recipient_id)
    _ensure_not_blocked(db, sender_id, recipient_id)
    if are_friends(db, sender_id, recipient_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already friends")

    request = db.get(FriendRequest, friend_request_id(sender_id, recipient_id))
    if request is not None and request.status == "pending":
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Friend request already sent")
    reverse = db.get(FriendRequest, friend_request_id(recipient_id, sender_id))

    now = datetime.now(timezone.utc)
    with batch_write(db, failure_detail="Failed to send friend request"):
        if request is None:
            request = FriendRequest(
                id=friend_request_id(sender_id, recipient_id),
                sender_id=sender_id,
                recipient_id=recipient_id,
            )
            db.add(request)
        setattr(request, "status", "pending")
        setattr(request, "seen", False)
        setattr(request, "created_at", now)
        setattr(request, "responded_at", None)

        if reverse is not None and reverse.status == "pending":
            # Both sides asked: treat as mutual re-add.
            _mark_accepted(request, now)
            _mark_accepted(reverse, now)
            _converge_to_friends(db, sender_id, recipient_id, now=now)
            db.add(
                build_notification(
                    recipient_id=recipient_id,
                    sender_id=sender_id,
                    type_=NotificationType.FRIEND_ADDED,
                    content=f"{sender.username} is now your friend",
                    payload={"user_id": str(sender_id)},
                )
            )
        else:
            room = get_chat_room(db, sender_id, recipient_id)
            if room is not None:
                mine, theirs = read_pair(room.chat_status, me=sender_id, them=recipient_id)
                write_statuses(room, [(sender_id, status_after_request(mine, theirs))])
            db.add(
                build_notification(
                    recipient_id=recipient_id,
                    sender_id=sender_id,
                    type_=NotificationType.FRIEND_REQUEST,
                    content=f"{sender.username} sent you a friend request",
                    payload={"request_id": request.id, "user_id": str(sender_id)},
                    status_=NotificationStatus.PENDING,
                )
            )
    logger.debug("Friend request %s -> %s stored as %s", sender_id, recipient.id, request.status)
    return request


def _incoming_request(db: Session, *, request_id: str, recipient: User) -> FriendRequest:
    request = db.get(FriendRequest, request_id)
    if request is None or request.recipient_id != cast(UUID, recipient.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    if request.status != "pending":
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Request already processed")
    return request


def accept_friend_request(db: Session, *, request_id: str, recipient: User) -> FriendRequest:
    request = _incoming_request(db, request_id=request_id, recipient=recipient)
    sender_id = cast(UUID, request.sender_id)
    recipient_id = cast(UUID, recipient.id)
    _ensure_not_blocked(db, sender_id, recipient_id)

    now = datetime.now(timezone.utc)
    reverse = db.get(FriendRequest, friend_request_id(recipient_id, sender_id))
    with batch_write(db, failure_detail="Failed to accept friend request"):
        _mark_accepted(request, now)
        if reverse is not None and reverse.status == "pending":
            _mark_accepted(reverse, now)
        _converge_to_friends(db, recipient_id, sender_id, now=now)
        db.add(
            build_notification(
                recipient_id=sender_id,
                sender_id=recipient_id,
                type_=NotificationType.FRIEND_ADDED,
                content=f"{recipient.username} accepted your friend request",
                payload={"user_id": str(recipient_id)},
            )
        )
    return request


def deny_friend_request(db: Session, *, request_id: str, recipient: User) -> FriendRequest:
    request = _incoming_request(db, request_id=request_id, recipient=recipient)
    with batch_write(db, failure_detail="Failed to deny friend request"):
        setattr(request, "status", "denied")
        setattr(request, "responded_at", datetime.now(timezone.utc))
    return request


def remove_friend(db: Session, *, user: User, friend_id: UUID) -> tuple[ChatStatus, ChatStatus]:
    """Un-add ``friend_id`` and return the resulting ``(mine, theirs)`` statuses."""

    user_id = cast(UUID, user.id)
    friendship = get_friendship(db, user_id, friend_id)
    room = get_chat_room(db, user_id, friend_id)
    mine, theirs = read_pair(room.chat_status if room is not None else None, me=user_id, them=friend_id)
    # Without a friendship row only a pair that is already mid un-add may be removed again.
    if friendship is None and (room is None or not ({mine, theirs} & _REMOVABLE_WITHOUT_FRIENDSHIP)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friendship not found")

    new_mine, new_theirs = statuses_after_remove(mine, theirs)
    with batch_write(db, failure_detail="Failed to remove friend"):
        if friendship is not None:
            db.delete(friendship)
        if room is None:
            room = new_chat_room(user_id, friend_id, status_=ChatStatus.FRIENDS)
            db.add(room)
        write_statuses(room, [(user_id, new_mine), (friend_id, new_theirs)])
    return new_mine, new_theirs


def restore_friendship(db: Session, *, user: User, other_id: UUID) -> None:
    """Restore a one-way un-add directly, without a new request."""

    user_id = cast(UUID, user.id)
    _ensure_not_blocked(db, user_id, other_id)
    room = get_chat_room(db, user_id, other_id)
    mine, theirs = read_pair(room.chat_status if room is not None else None, me=user_id, them=other_id)
    if not can_restore_friendship(mine, theirs, room_exists=room is not None):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This friendship cannot be restored directly; send a friend request instead",
        )

    stale_requests = delete(FriendRequest).where(
        FriendRequest.id.in_([friend_request_id(user_id, other_id), friend_request_id(other_id, user_id)])
    )
    with batch_write(db, failure_detail="Failed to restore friendship"):
        _converge_to_friends(db, user_id, other_id, now=datetime.now(timezone.utc))
        db.execute(stale_requests)


def _apply_block(db: Session, *, blocker_id: UUID, blocked_id: UUID) -> None:
    with batch_write(db, failure_detail="Failed to block user"):
        if not has_blocked(db, blocker_id, blocked_id):
            db.add(UserBlock(blocker_id=blocker_id, blocked_id=blocked_id, created_at=datetime.now(timezone.utc)))
        room = get_chat_room(db, blocker_id, blocked_id)
        if room is not None:
            write_statuses(room, [(blocker_id, ChatStatus.BLOCKED), (blocked_id, ChatStatus.BLOCKED)])


def _apply_unblock(db: Session, *, blocker_id: UUID, blocked_id: UUID) -> None:
    with batch_write(db, failure_detail="Failed to unblock user"):
        db.execute(delete(UserBlock).where(UserBlock.blocker_id == blocker_id, UserBlock.blocked_id == blocked_id))
        db.flush()
        room = get_chat_room(db, blocker_id, blocked_id)
        # The other side's own block keeps the room hidden.
        if room is not None and not has_blocked(db, blocked_id, blocker_id):
            mine, theirs = statuses_after_unblock(still_friends=are_friends(db, blocker_id, blocked_id))
            write_statuses(room, [(blocker_id, mine), (blocked_id, theirs)])


async def _route_through_function(
    name: str,
    payload: dict,
    *,
    caller_id: UUID,
    call: FunctionCaller,
) -> bool:
    try:
        result = await call(name, payload, caller_id=caller_id)
    except FunctionCallError as exc:
        logger.warning("%s function unavailable, falling back to direct write: %s", name, exc)
        return False
    if not result.get("success"):
        logger.warning("%s function reported failure, falling back to direct write: %s", name, result)
        return False
    return True


async def block_user(
    db: Session,
    *,
    user: User,
    blocked_id: UUID,
    call: FunctionCaller = call_function,
) -> None:
    user_id = cast(UUID, user.id)
    if blocked_id == user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot block yourself")
    _require_user(db, blocked_id)

    routed = await _route_through_function(
        "blockUser", {"blockedUid": str(blocked_id)}, caller_id=user_id, call=call
    )
    db.expire_all()
    if routed and has_blocked(db, user_id, blocked_id):
        return
    _apply_block(db, blocker_id=user_id, blocked_id=blocked_id)


async def unblock_user(
    db: Session,
    *,
    user: User,
    blocked_id: UUID,
    call: FunctionCaller = call_function,
) -> None:
    user_id = cast(UUID, user.id)
    if not has_blocked(db, user_id, blocked_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User is not blocked")

    routed = await _route_through_function(
        "unblockUser", {"blockedUid": str(blocked_id)}, caller_id=user_id, call=call
    )
    db.expire_all()
    if routed and not has_blocked(db, user_id, blocked_id):
        return
    _apply_unblock(db, blocker_id=user_id, blocked_id=blocked_id)


def is_blocked(db: Session, *, user: User, other_id: UUID) -> bool:
    """True when ``user`` has blocked ``other_id``."""

    return has_blocked(db, cast(UUID, user.id), other_id)


def is_blocked_by(db: Session, *, user: User, other_id: UUID) -> bool:
    return has_blocked(db, other_id, cast(UUID, user.id))


def is_friend(db: Session, *, user: User, other_id: UUID) -> bool:
    return are_friends(db, cast(UUID, user.id), other_id)


def are_users_mutually_blocked(db: Session, a: UUID, b: UUID) -> bool:
    """True when either user has blocked the other."""

    return is_blocked_between(db, a, b)


def get_block_statuses(db: Session, *, user: User, user_ids: list[UUID]) -> dict[UUID, BlockStatus]:
    user_id = cast(UUID, user.id)
    blocked = blocked_user_ids(db, user_id)
    blocked_by = blocked_by_user_ids(db, user_id)
    return {other: BlockStatus(blocked=other in blocked, blocked_by=other in blocked_by) for other in user_ids}


def list_blocked_users(db: Session, *, user: User) -> list[User]:
    stmt = (
        select(User)
        .join(UserBlock, UserBlock.blocked_id == User.id)
        .where(UserBlock.blocker_id == cast(UUID, user.id))
        .order_by(UserBlock.created_at.desc())
    )
    return list(db.scalars(stmt))


def list_friends(db: Session, *, user: User) -> list[User]:
    user_id = cast(UUID, user.id)
    hidden = hidden_user_ids(db, user_id)
    stmt = (
        select(User, Friendship.created_at)
        .join(Friendship, or_(Friendship.user_a_id == User.id, Friendship.user_b_id == User.id))
        .where(or_(Friendship.user_a_id == user_id, Friendship.user_b_id == user_id), User.id != user_id)
        .order_by(Friendship.created_at.asc())
    )
    return [friend for friend, _ in db.execute(stmt) if friend.id not in hidden]


def _pending_requests(db: Session, *, column, user_id: UUID, other_column) -> list[FriendRequest]:
    hidden = hidden_user_ids(db, user_id)
    stmt = (
        select(FriendRequest)
        .where(column == user_id, FriendRequest.status == "pending")
        .order_by(FriendRequest.created_at.desc())
    )
    return [request for request in db.scalars(stmt) if getattr(request, other_column) not in hidden]


def list_incoming_requests(db: Session, *, user: User) -> list[FriendRequest]:
    return _pending_requests(
        db, column=FriendRequest.recipient_id, user_id=cast(UUID, user.id), other_column="sender_id"
    )


def list_outgoing_requests(db: Session, *, user: User) -> list[FriendRequest]:
    return _pending_requests(
        db, column=FriendRequest.sender_id, user_id=cast(UUID, user.id), other_column="recipient_id"
    )


def count_pending_requests(db: Session, *, user: User, unseen_only: bool = False) -> int:
    stmt = (
        select(func.count())
        .select_from(FriendRequest)
        .where(FriendRequest.recipient_id == cast(UUID, user.id), FriendRequest.status == "pending")
    )
    if unseen_only:
        stmt = stmt.where(FriendRequest.seen.is_(False))
    return int(db.scalar(stmt) or 0)


def mark_requests_seen(db: Session, *, user: User) -> None:
    stmt = (
        update(FriendRequest)
        .where(
            FriendRequest.recipient_id == cast(UUID, user.id),
            FriendRequest.status == "pending",
            FriendRequest.seen.is_(False),
        )
        .values(seen=True)
    )
    with batch_write(db, failure_detail="Failed to update friend requests"):
        db.execute(stmt)


def relation_summary(db: Session, *, user: User, other_id: UUID) -> RelationSummary:
    user_id = cast(UUID, user.id)
    room = get_chat_room(db, user_id, other_id)
    room_exists = room is not None
    mine, theirs = read_pair(room.chat_status if room_exists else None, me=user_id, them=other_id)
    outgoing = db.get(FriendRequest, friend_request_id(user_id, other_id))
    incoming = db.get(FriendRequest, friend_request_id(other_id, user_id))
    return RelationSummary(
        are_friends=are_friends(db, user_id, other_id),
        room_exists=room_exists,
        my_status=mine if room_exists else None,
        their_status=theirs if room_exists else None,
        one_way_unadd=has_one_way_unadd(mine, theirs, room_exists=room_exists),
        can_restore=can_restore_friendship(mine, theirs, room_exists=room_exists),
        blocked=has_blocked(db, user_id, other_id),
        blocked_by=has_blocked(db, other_id, user_id),
        outgoing_request=outgoing.status if outgoing is not None else None,
        incoming_request=incoming.status if incoming is not None else None,
    )


def list_addable_users(db: Session, *, user: User, query: str, limit: int = 20) -> list[User]:
    """Search users who belong in the general add-user list.

    Excludes the viewer, current friends, anyone on either side of a block and
    pairs whose relation may only be repaired from the message screen.
    """

    user_id = cast(UUID, user.id)
    term = query.strip()
    if not term:
        return []
    excluded = hidden_user_ids(db, user_id) | {user_id}
    stmt = (
        select(User)
        .where(or_(User.username.ilike(f"%{term}%"), User.name.ilike(f"%{term}%")))
        .order_by(User.username.asc())
        .limit(limit * 3)
    )
    results: list[User] = []
    for candidate in db.scalars(stmt):
        candidate_id = cast(UUID, candidate.id)
        if candidate_id in excluded or are_friends(db, user_id, candidate_id):
            continue
        room = get_chat_room(db, user_id, candidate_id)
        if room is not None:
            mine, theirs = read_pair(room.chat_status, me=user_id, them=candidate_id)
            if has_one_way_unadd(mine, theirs, room_exists=True):
                continue
        results.append(candidate)
        if len(results) >= limit:
            break
    return results


def pending_request_between(db: Session, a: UUID, b: UUID) -> FriendRequest | None:
    stmt = select(FriendRequest).where(
        FriendRequest.status == "pending",
        or_(
            and_(FriendRequest.sender_id == a, FriendRequest.recipient_id == b),
            and_(FriendRequest.sender_id == b, FriendRequest.recipient_id == a),
        ),
    )
    return db.scalars(stmt).first()


__all__ = [
    "BlockStatus",
    "RelationSummary",
    "accept_friend_request",
    "are_users_mutually_blocked",
    "block_user",
    "count_pending_requests",
    "deny_friend_request",
    "get_block_statuses",
    "is_blocked",
    "is_blocked_by",
    "is_friend",
    "list_addable_users",
    "list_blocked_users",
    "list_friends",
    "list_incoming_requests",
    "list_outgoing_requests",
    "mark_requests_seen",
    "pending_request_between",
    "relation_summary",
    "remove_friend",
    "restore_friendship",
    "send_friend_request",
    "unblock_user",
]
