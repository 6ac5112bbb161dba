"""Aggregate router exports."""
from .auth import router as auth_router
from .chats import router as chats_router
from .collections import router as collections_router
from .discover import router as discover_router
from .friends import router as friends_router
from .notifications import router as notifications_router
from .posts import router as posts_router
from .profiles import router as profiles_router
from .system import router as system_router

__all__ = [
    "auth_router",
    "chats_router",
    "collections_router",
    "discover_router",
    "friends_router",
    "notifications_router",
    "posts_router",
    "profiles_router",
    "system_router",
]
