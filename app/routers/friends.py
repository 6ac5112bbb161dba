"""Friend management API routes: requests, un-adds, restores and blocks."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import FriendRequest, User
from ..schemas import (
    BlockStatusResponse,
    ChatStatusPair,
    FriendRequestPayload,
    FriendRequestResponse,
    FriendSearchResponse,
    FriendsOverviewResponse,
    RelationResponse,
    UserSummary,
)
from ..services import friendship_service
from ..services.auth_service import get_current_user

router = APIRouter(prefix="/friends", tags=["friends"])


def _request_response(request: FriendRequest) -> FriendRequestResponse:
    return FriendRequestResponse.model_validate(request)


@router.get("/", response_model=FriendsOverviewResponse)
async def friends_overview(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> FriendsOverviewResponse:
    friends = friendship_service.list_friends(db, user=current_user)
    incoming = friendship_service.list_incoming_requests(db, user=current_user)
    outgoing = friendship_service.list_outgoing_requests(db, user=current_user)
    return FriendsOverviewResponse(
        friends=[UserSummary.model_validate(friend) for friend in friends],
        incoming_requests=[_request_response(item) for item in incoming],
        outgoing_requests=[_request_response(item) for item in outgoing],
        unseen_request_count=friendship_service.count_pending_requests(db, user=current_user, unseen_only=True),
    )


@router.get("/search", response_model=FriendSearchResponse)
async def search_users(
    q: str = Query(..., min_length=1, max_length=150, alias="query"),
    limit: int = Query(20, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> FriendSearchResponse:
    results = friendship_service.list_addable_users(db, user=current_user, query=q, limit=limit)
    return FriendSearchResponse(query=q.strip(), results=[UserSummary.model_validate(user) for user in results])


@router.post("/requests", response_model=FriendRequestResponse, status_code=status.HTTP_201_CREATED)
async def send_friend_request_endpoint(
    payload: FriendRequestPayload,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> FriendRequestResponse:
    request = friendship_service.send_friend_request(db, sender=current_user, recipient_id=payload.user_id)
    return _request_response(request)


@router.post("/requests/seen", status_code=status.HTTP_204_NO_CONTENT)
async def mark_requests_seen_endpoint(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    friendship_service.mark_requests_seen(db, user=current_user)


@router.post("/requests/{request_id}/accept", response_model=FriendRequestResponse)
async def accept_friend_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> FriendRequestResponse:
    request = friendship_service.accept_friend_request(db, request_id=request_id, recipient=current_user)
    return _request_response(request)


@router.post("/requests/{request_id}/deny", response_model=FriendRequestResponse)
async def deny_friend_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> FriendRequestResponse:
    request = friendship_service.deny_friend_request(db, request_id=request_id, recipient=current_user)
    return _request_response(request)


@router.delete("/{friend_id}", response_model=ChatStatusPair)
async def remove_friend_endpoint(
    friend_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ChatStatusPair:
    mine, theirs = friendship_service.remove_friend(db, user=current_user, friend_id=friend_id)
    return ChatStatusPair(my_status=mine, their_status=theirs)


@router.post("/{other_id}/restore", status_code=status.HTTP_204_NO_CONTENT)
async def restore_friendship_endpoint(
    other_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    friendship_service.restore_friendship(db, user=current_user, other_id=other_id)


@router.get("/{other_id}/relation", response_model=RelationResponse)
async def relation_endpoint(
    other_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> RelationResponse:
    summary = friendship_service.relation_summary(db, user=current_user, other_id=other_id)
    return RelationResponse(
        user_id=other_id,
        are_friends=summary.are_friends,
        room_exists=summary.room_exists,
        my_status=summary.my_status,
        their_status=summary.their_status,
        one_way_unadd=summary.one_way_unadd,
        can_restore=summary.can_restore,
        blocked=summary.blocked,
        blocked_by=summary.blocked_by,
        outgoing_request=summary.outgoing_request,
        incoming_request=summary.incoming_request,
    )


@router.get("/blocked", response_model=list[UserSummary])
async def list_blocked_endpoint(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> list[UserSummary]:
    return [UserSummary.model_validate(user) for user in friendship_service.list_blocked_users(db, user=current_user)]


@router.post("/{other_id}/block", response_model=BlockStatusResponse)
async def block_endpoint(
    other_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> BlockStatusResponse:
    await friendship_service.block_user(db, user=current_user, blocked_id=other_id)
    state = friendship_service.get_block_statuses(db, user=current_user, user_ids=[other_id])[other_id]
    return BlockStatusResponse(user_id=other_id, blocked=state.blocked, blocked_by=state.blocked_by)


@router.delete("/{other_id}/block", response_model=BlockStatusResponse)
async def unblock_endpoint(
    other_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> BlockStatusResponse:
    await friendship_service.unblock_user(db, user=current_user, blocked_id=other_id)
    state = friendship_service.get_block_statuses(db, user=current_user, user_ids=[other_id])[other_id]
    return BlockStatusResponse(user_id=other_id, blocked=state.blocked, blocked_by=state.blocked_by)
