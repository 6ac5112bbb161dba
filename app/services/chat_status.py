"""Chat-status vocabulary and the pure transitions of the friend/un-add lifecycle.

Every chat room stores one status per participant. Each side is written
independently, so a pair of users is described by ``(mine, theirs)`` as seen
from whichever participant is acting. The functions here never touch the
database; :mod:`app.services.friendship_service` reads the pair, applies one of
these transitions and writes both sides back in a single batch.
"""
from __future__ import annotations

import logging
from enum import StrEnum
from typing import Mapping

logger = logging.getLogger(__name__)


class ChatStatus(StrEnum):
    FRIENDS = "friends"
    PENDING = "pending"
    I_UNADDED = "iUnadded"
    THEY_UNADDED = "theyUnadded"
    BOTH_UNADDED = "bothUnadded"
    PENDING_ADD = "pendingAdd"
    BLOCKED = "blocked"
    UNADDED = "unadded"


StatusPair = tuple[ChatStatus, ChatStatus]

UNADD_STATES: frozenset[ChatStatus] = frozenset(
    {ChatStatus.I_UNADDED, ChatStatus.THEY_UNADDED, ChatStatus.BOTH_UNADDED}
)

# Pairs (mine, theirs) that keep someone out of the general add-user list
# because the relation is only repairable from the message screen.
_ONE_WAY_UNADD_PAIRS: frozenset[StatusPair] = frozenset(
    {
        (ChatStatus.BOTH_UNADDED, ChatStatus.BOTH_UNADDED),
        (ChatStatus.FRIENDS, ChatStatus.FRIENDS),
        (ChatStatus.I_UNADDED, ChatStatus.THEY_UNADDED),
        (ChatStatus.THEY_UNADDED, ChatStatus.I_UNADDED),
        (ChatStatus.I_UNADDED, ChatStatus.FRIENDS),
        (ChatStatus.FRIENDS, ChatStatus.I_UNADDED),
        (ChatStatus.PENDING_ADD, ChatStatus.THEY_UNADDED),
        (ChatStatus.PENDING_ADD, ChatStatus.I_UNADDED),
        (ChatStatus.THEY_UNADDED, ChatStatus.PENDING_ADD),
        (ChatStatus.I_UNADDED, ChatStatus.PENDING_ADD),
        (ChatStatus.PENDING_ADD, ChatStatus.BOTH_UNADDED),
        (ChatStatus.BOTH_UNADDED, ChatStatus.PENDING_ADD),
    }
)

# Pairs (mine, theirs) from which the acting user may restore the friendship
# directly, without a new request.
_RESTORABLE_PAIRS: frozenset[StatusPair] = frozenset(
    {
        (ChatStatus.I_UNADDED, ChatStatus.THEY_UNADDED),
        (ChatStatus.I_UNADDED, ChatStatus.FRIENDS),
        (ChatStatus.THEY_UNADDED, ChatStatus.I_UNADDED),
        (ChatStatus.THEY_UNADDED, ChatStatus.FRIENDS),
        (ChatStatus.PENDING_ADD, ChatStatus.THEY_UNADDED),
        (ChatStatus.PENDING_ADD, ChatStatus.FRIENDS),
    }
)


def parse_status(value: str | ChatStatus | None) -> ChatStatus:
    """Read a stored status; a missing entry means the pair never diverged from ``friends``."""

    if value is None:
        return ChatStatus.FRIENDS
    return ChatStatus(value)


def read_pair(chat_status: Mapping[str, str] | None, *, me: object, them: object) -> StatusPair:
    """Return ``(mine, theirs)`` from a room's per-participant status map."""

    statuses = chat_status or {}
    return parse_status(statuses.get(str(me))), parse_status(statuses.get(str(them)))


def status_after_request(mine: ChatStatus, theirs: ChatStatus) -> ChatStatus:
    """Return the sender's own status after they send a friend request.

    Re-adding someone while either side still sees the relation as removed
    marks the sender ``pendingAdd``; the recipient's side is left untouched.
    """

    if mine in UNADD_STATES or theirs in (ChatStatus.THEY_UNADDED, ChatStatus.BOTH_UNADDED):
        return ChatStatus.PENDING_ADD
    return mine


def statuses_after_accept(mine: ChatStatus, theirs: ChatStatus) -> StatusPair:
    # Accepting always converges, including the mutual pendingAdd case.
    return ChatStatus.FRIENDS, ChatStatus.FRIENDS


def other_side_already_removed(mine: ChatStatus, theirs: ChatStatus) -> bool:
    return (
        mine in (ChatStatus.THEY_UNADDED, ChatStatus.BOTH_UNADDED)
        or theirs in (ChatStatus.I_UNADDED, ChatStatus.THEY_UNADDED, ChatStatus.BOTH_UNADDED)
    )


def statuses_after_remove(mine: ChatStatus, theirs: ChatStatus) -> StatusPair:
    """Return ``(mine, theirs)`` after the acting user un-adds the other."""

    if other_side_already_removed(mine, theirs):
        return ChatStatus.BOTH_UNADDED, ChatStatus.BOTH_UNADDED
    return ChatStatus.I_UNADDED, ChatStatus.THEY_UNADDED


def statuses_after_restore(mine: ChatStatus, theirs: ChatStatus) -> StatusPair:
    if not can_restore_friendship(mine, theirs, room_exists=True):
        raise ValueError(f"relation ({mine}, {theirs}) cannot be restored directly")
    return ChatStatus.FRIENDS, ChatStatus.FRIENDS


def statuses_after_unblock(*, still_friends: bool) -> StatusPair:
    status = ChatStatus.FRIENDS if still_friends else ChatStatus.UNADDED
    return status, status


def is_one_way(mine: ChatStatus, theirs: ChatStatus) -> bool:
    return (mine, theirs) in {
        (ChatStatus.I_UNADDED, ChatStatus.THEY_UNADDED),
        (ChatStatus.THEY_UNADDED, ChatStatus.I_UNADDED),
    }


def has_one_way_unadd(mine: ChatStatus, theirs: ChatStatus, *, room_exists: bool) -> bool:
    """Return True when the pair should only be re-added from the message screen."""

    if not room_exists:
        return False
    if (mine, theirs) in _ONE_WAY_UNADD_PAIRS:
        return True
    logger.debug("Unclassified chat status pair (%s, %s) treated as addable", mine, theirs)
    return False


def can_restore_friendship(mine: ChatStatus, theirs: ChatStatus, *, room_exists: bool) -> bool:
    return room_exists and (mine, theirs) in _RESTORABLE_PAIRS


__all__ = [
    "ChatStatus",
    "StatusPair",
    "UNADD_STATES",
    "can_restore_friendship",
    "has_one_way_unadd",
    "is_one_way",
    "other_side_already_removed",
    "parse_status",
    "read_pair",
    "status_after_request",
    "statuses_after_accept",
    "statuses_after_remove",
    "statuses_after_restore",
    "statuses_after_unblock",
]
