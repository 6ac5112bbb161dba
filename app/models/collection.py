"""ORM models for collections, their members and their followers."""
from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, JSON, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import expression, func

from app.database import Base
from .base import utcnow

_JSON = JSON().with_variant(JSONB, "postgresql")

COLLECTION_TYPES = ("Individual", "Invite", "Request", "Open")


class Collection(Base):
    __tablename__ = "collections"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(16), nullable=False, default="Individual")
    is_public = Column(Boolean, nullable=False, default=True, server_default=expression.true())
    image_url = Column(String(1024), nullable=True)
    allowed_users = Column(_JSON, nullable=False, default=list)
    denied_users = Column(_JSON, nullable=False, default=list)
    invited_users = Column(_JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
    # Set when moved to the owner's recently-deleted set.
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    owner = relationship("User", back_populates="owned_collections")
    members = relationship("CollectionMember", back_populates="collection", cascade="all, delete-orphan")
    followers = relationship("CollectionFollower", back_populates="collection", cascade="all, delete-orphan")
    posts = relationship("Post", back_populates="collection", cascade="all, delete-orphan")


class CollectionMember(Base):
    __tablename__ = "collection_members"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    collection_id = Column(
        UUID(as_uuid=True), ForeignKey("collections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_admin = Column(Boolean, nullable=False, default=False, server_default=expression.false())
    joined_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    collection = relationship("Collection", back_populates="members")

    __table_args__ = (UniqueConstraint("collection_id", "user_id", name="uq_collection_member"),)


class CollectionFollower(Base):
    __tablename__ = "collection_followers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    collection_id = Column(
        UUID(as_uuid=True), ForeignKey("collections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    collection = relationship("Collection", back_populates="followers")

    __table_args__ = (UniqueConstraint("collection_id", "user_id", name="uq_collection_follower"),)


__all__ = ["COLLECTION_TYPES", "Collection", "CollectionFollower", "CollectionMember"]
