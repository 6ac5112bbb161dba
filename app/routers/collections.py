"""Collection API routes: lifecycle, visibility, membership and followers."""
from __future__ import annotations

from typing import cast
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import Collection, User
from ..schemas import (
    CollectionCreate,
    CollectionListResponse,
    CollectionResponse,
    CollectionUpdate,
    MemberRequest,
    MembersRequest,
    MembershipResponse,
)
from ..services import collection_service
from ..services.auth_service import get_current_user

router = APIRouter(prefix="/collections", tags=["collections"])


def collection_response(db: Session, collection: Collection) -> CollectionResponse:
    response = CollectionResponse.model_validate(collection)
    response.member_count = collection_service.member_count(db, cast(UUID, collection.id))
    return response


def _list_response(db: Session, collections: list[Collection]) -> CollectionListResponse:
    return CollectionListResponse(items=[collection_response(db, item) for item in collections])


@router.post("/", response_model=CollectionResponse, status_code=status.HTTP_201_CREATED)
async def create_collection_endpoint(
    payload: CollectionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> CollectionResponse:
    collection = collection_service.create_collection(
        db,
        owner=current_user,
        name=payload.name,
        description=payload.description,
        type_=payload.type,
        is_public=payload.is_public,
        image_url=payload.image_url,
        invited_user_ids=payload.invited_user_ids,
    )
    return collection_response(db, collection)


@router.get("/mine", response_model=CollectionListResponse)
async def my_collections(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> CollectionListResponse:
    return _list_response(db, collection_service.list_user_collections(db, user_id=cast(UUID, current_user.id)))


@router.get("/followed", response_model=CollectionListResponse)
async def followed_collections(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> CollectionListResponse:
    return _list_response(db, collection_service.list_followed_collections(db, user=current_user))


@router.get("/deleted", response_model=CollectionListResponse)
async def deleted_collections(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> CollectionListResponse:
    return _list_response(db, collection_service.list_deleted_collections(db, owner=current_user))


@router.get("/user/{user_id}", response_model=CollectionListResponse)
async def user_collections(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> CollectionListResponse:
    collections = collection_service.list_visible_collections(db, profile_user_id=user_id, viewer=current_user)
    return _list_response(db, collections)


@router.get("/{collection_id}", response_model=CollectionResponse)
async def get_collection_endpoint(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> CollectionResponse:
    collection = collection_service.get_collection(db, collection_id=collection_id, viewer=current_user)
    return collection_response(db, collection)


@router.patch("/{collection_id}", response_model=CollectionResponse)
async def update_collection_endpoint(
    collection_id: UUID,
    payload: CollectionUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> CollectionResponse:
    collection = collection_service.update_collection(
        db,
        collection_id=collection_id,
        actor=current_user,
        **payload.model_dump(exclude_unset=True),
    )
    return collection_response(db, collection)


@router.delete("/{collection_id}", response_model=CollectionResponse)
async def soft_delete_endpoint(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> CollectionResponse:
    collection = collection_service.soft_delete_collection(db, collection_id=collection_id, actor=current_user)
    return collection_response(db, collection)


@router.post("/{collection_id}/recover", response_model=CollectionResponse)
async def recover_endpoint(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> CollectionResponse:
    collection = collection_service.recover_collection(db, collection_id=collection_id, actor=current_user)
    return collection_response(db, collection)


@router.delete("/{collection_id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
async def permanent_delete_endpoint(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    collection_service.permanently_delete_collection(db, collection_id=collection_id, actor=current_user)


@router.get("/{collection_id}/members", response_model=MembershipResponse)
async def membership_endpoint(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MembershipResponse:
    collection = collection_service.get_collection(db, collection_id=collection_id, viewer=current_user)
    membership = collection_service.load_membership(db, collection)
    return MembershipResponse(
        owner_id=membership.owner_id,
        member_ids=sorted(membership.member_ids, key=str),
        admin_ids=sorted(membership.admin_ids, key=str),
    )


@router.post("/{collection_id}/join", response_model=CollectionResponse)
async def join_endpoint(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> CollectionResponse:
    collection = collection_service.join_collection(db, collection_id=collection_id, user=current_user)
    return collection_response(db, collection)


@router.post("/{collection_id}/request", status_code=status.HTTP_202_ACCEPTED)
async def request_join_endpoint(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> dict[str, str]:
    collection_service.request_to_join(db, collection_id=collection_id, user=current_user)
    return {"status": "requested"}


@router.post("/{collection_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_endpoint(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    collection_service.leave_collection(db, collection_id=collection_id, user=current_user)


@router.post("/{collection_id}/invite", response_model=list[UUID])
async def invite_endpoint(
    collection_id: UUID,
    payload: MembersRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> list[UUID]:
    return collection_service.invite_users(
        db, collection_id=collection_id, actor=current_user, user_ids=payload.user_ids
    )


@router.post("/{collection_id}/members", status_code=status.HTTP_204_NO_CONTENT)
async def add_member_endpoint(
    collection_id: UUID,
    payload: MemberRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    collection_service.add_member(db, collection_id=collection_id, actor=current_user, user_id=payload.user_id)


@router.delete("/{collection_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member_endpoint(
    collection_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    collection_service.remove_member(db, collection_id=collection_id, actor=current_user, user_id=user_id)


@router.post("/{collection_id}/admins/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def promote_endpoint(
    collection_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    collection_service.promote_to_admin(db, collection_id=collection_id, actor=current_user, user_id=user_id)


@router.delete("/{collection_id}/admins/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def demote_endpoint(
    collection_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    collection_service.demote_from_admin(db, collection_id=collection_id, actor=current_user, user_id=user_id)


@router.post("/{collection_id}/follow", status_code=status.HTTP_204_NO_CONTENT)
async def follow_endpoint(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    collection_service.follow_collection(db, collection_id=collection_id, user=current_user)


@router.delete("/{collection_id}/follow", status_code=status.HTTP_204_NO_CONTENT)
async def unfollow_endpoint(
    collection_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    collection_service.unfollow_collection(db, collection_id=collection_id, user=current_user)
