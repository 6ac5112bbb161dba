"""initial schema for users, friends, chats, collections, posts and notifications

Revision ID: 20261019_initial_coy_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_initial_coy_schema"
down_revision = None
branch_labels = None
depends_on = None

_UUID = postgresql.UUID(as_uuid=True)
_JSON = sa.JSON().with_variant(postgresql.JSONB, "postgresql")


def _user_fk(column: str, *, nullable: bool = False, ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(column, _UUID, sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable)


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", _UUID, primary_key=True, nullable=False),
        sa.Column("username", sa.String(length=150), nullable=False),
        sa.Column("name", sa.String(length=150)),
        sa.Column("email", sa.String(length=255)),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("bio", sa.String(length=500)),
        sa.Column("profile_image_url", sa.String(length=1024)),
        sa.Column("background_image_url", sa.String(length=1024)),
        sa.Column("last_active_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        _created_at(),
        _created_at("updated_at"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    friend_request_status = sa.Enum("pending", "accepted", "denied", name="friend_request_status")
    op.create_table(
        "friend_requests",
        sa.Column("id", sa.String(length=80), primary_key=True, nullable=False),
        _user_fk("sender_id"),
        _user_fk("recipient_id"),
        sa.Column("status", friend_request_status, nullable=False, server_default="pending"),
        sa.Column("seen", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.Column("responded_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_friend_requests_sender_id", "friend_requests", ["sender_id"])
    op.create_index("ix_friend_requests_recipient_id", "friend_requests", ["recipient_id"])

    op.create_table(
        "friendships",
        sa.Column("id", _UUID, primary_key=True, nullable=False),
        _user_fk("user_a_id"),
        _user_fk("user_b_id"),
        _created_at(),
        sa.UniqueConstraint("user_a_id", "user_b_id", name="uq_friendship_pair"),
    )
    op.create_index("ix_friendships_user_a_id", "friendships", ["user_a_id"])
    op.create_index("ix_friendships_user_b_id", "friendships", ["user_b_id"])

    op.create_table(
        "user_blocks",
        sa.Column("id", _UUID, primary_key=True, nullable=False),
        _user_fk("blocker_id"),
        _user_fk("blocked_id"),
        _created_at(),
        sa.UniqueConstraint("blocker_id", "blocked_id", name="uq_user_block_pair"),
    )
    op.create_index("ix_user_blocks_blocker_id", "user_blocks", ["blocker_id"])
    op.create_index("ix_user_blocks_blocked_id", "user_blocks", ["blocked_id"])

    op.create_table(
        "chat_rooms",
        sa.Column("id", sa.String(length=80), primary_key=True, nullable=False),
        _user_fk("user_a_id"),
        _user_fk("user_b_id"),
        sa.Column("chat_status", _JSON, nullable=False),
        sa.Column("unread_count", _JSON, nullable=False),
        sa.Column("last_message", sa.Text()),
        sa.Column("last_message_type", sa.String(length=16)),
        sa.Column("last_message_at", sa.DateTime(timezone=True)),
        _created_at(),
    )
    op.create_index("ix_chat_rooms_user_a_id", "chat_rooms", ["user_a_id"])
    op.create_index("ix_chat_rooms_user_b_id", "chat_rooms", ["user_b_id"])

    op.create_table(
        "messages",
        sa.Column("id", _UUID, primary_key=True, nullable=False),
        sa.Column("chat_id", sa.String(length=80), sa.ForeignKey("chat_rooms.id", ondelete="CASCADE"), nullable=False),
        _user_fk("sender_id"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("media_url", sa.String(length=1024)),
        sa.Column("reply_to_id", _UUID),
        sa.Column("reactions", _JSON, nullable=False),
        sa.Column("deleted_for", _JSON, nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_by", _UUID),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        sa.Column("original_media_url", sa.String(length=1024)),
        sa.Column("is_edited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("edit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("edited_at", sa.DateTime(timezone=True)),
        _created_at(),
    )
    op.create_index("ix_messages_chat_id", "messages", ["chat_id"])
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])
    op.create_index("ix_messages_created_at", "messages", ["created_at"])

    op.create_table(
        "collections",
        sa.Column("id", _UUID, primary_key=True, nullable=False),
        _user_fk("owner_id"),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("image_url", sa.String(length=1024)),
        sa.Column("allowed_users", _JSON, nullable=False),
        sa.Column("denied_users", _JSON, nullable=False),
        sa.Column("invited_users", _JSON, nullable=False),
        _created_at(),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_collections_owner_id", "collections", ["owner_id"])
    op.create_index("ix_collections_created_at", "collections", ["created_at"])
    op.create_index("ix_collections_deleted_at", "collections", ["deleted_at"])

    for table, extra, constraint in (
        ("collection_members", [sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()), _created_at("joined_at")], "uq_collection_member"),
        ("collection_followers", [_created_at()], "uq_collection_follower"),
    ):
        op.create_table(
            table,
            sa.Column("id", _UUID, primary_key=True, nullable=False),
            sa.Column("collection_id", _UUID, sa.ForeignKey("collections.id", ondelete="CASCADE"), nullable=False),
            _user_fk("user_id"),
            *extra,
            sa.UniqueConstraint("collection_id", "user_id", name=constraint),
        )
        op.create_index(f"ix_{table}_collection_id", table, ["collection_id"])
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])

    op.create_table(
        "posts",
        sa.Column("id", _UUID, primary_key=True, nullable=False),
        sa.Column("collection_id", _UUID, sa.ForeignKey("collections.id", ondelete="CASCADE"), nullable=False),
        _user_fk("author_id"),
        sa.Column("caption", sa.Text()),
        sa.Column("media_items", _JSON, nullable=False),
        sa.Column("is_pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pinned_at", sa.DateTime(timezone=True)),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        _created_at(),
    )
    op.create_index("ix_posts_collection_id", "posts", ["collection_id"])
    op.create_index("ix_posts_author_id", "posts", ["author_id"])
    op.create_index("ix_posts_created_at", "posts", ["created_at"])

    op.create_table(
        "post_stars",
        sa.Column("id", _UUID, primary_key=True, nullable=False),
        sa.Column("post_id", _UUID, sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        _created_at(),
        sa.UniqueConstraint("post_id", "user_id", name="uq_post_star"),
    )
    op.create_index("ix_post_stars_post_id", "post_stars", ["post_id"])
    op.create_index("ix_post_stars_user_id", "post_stars", ["user_id"])

    op.create_table(
        "post_comments",
        sa.Column("id", _UUID, primary_key=True, nullable=False),
        sa.Column("post_id", _UUID, sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        _user_fk("user_id"),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_post_comments_post_id", "post_comments", ["post_id"])
    op.create_index("ix_post_comments_user_id", "post_comments", ["user_id"])

    op.create_table(
        "notifications",
        sa.Column("id", _UUID, primary_key=True, nullable=False),
        _user_fk("recipient_id"),
        _user_fk("sender_id", nullable=True, ondelete="SET NULL"),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32)),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.Column("payload", _JSON),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
    op.create_index("ix_notifications_sender_id", "notifications", ["sender_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade() -> None:
    for table in (
        "notifications",
        "post_comments",
        "post_stars",
        "posts",
        "collection_followers",
        "collection_members",
        "collections",
        "messages",
        "chat_rooms",
        "user_blocks",
        "friendships",
        "friend_requests",
        "users",
    ):
        op.drop_table(table)

    sa.Enum(name="friend_request_status").drop(op.get_bind(), checkfirst=True)
