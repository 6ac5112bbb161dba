"""Convenience exports for ORM models."""
from .chat import ChatRoom, Message
from .collection import Collection, CollectionFollower, CollectionMember
from .friend_request import FriendRequest
from .friendship import Friendship, UserBlock
from .notification import Notification
from .post import Post, PostComment, PostStar
from .user import User

__all__ = [
    "ChatRoom",
    "Collection",
    "CollectionFollower",
    "CollectionMember",
    "FriendRequest",
    "Friendship",
    "Message",
    "Notification",
    "Post",
    "PostComment",
    "PostStar",
    "User",
    "UserBlock",
]
