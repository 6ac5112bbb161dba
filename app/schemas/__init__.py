"""Convenience exports for schema layer."""
from .auth import AccountDeleteRequest, AuthResponse, LoginRequest, RegisterRequest
from .chats import (
    ChatRoomCreate,
    ChatRoomResponse,
    ClearChatResponse,
    MessageEditRequest,
    MessagePageResponse,
    MessageResponse,
    MessageSendRequest,
    ReactionRequest,
    UnreadCountResponse,
)
from .collections import (
    CollectionCreate,
    CollectionListResponse,
    CollectionResponse,
    CollectionUpdate,
    MemberRequest,
    MembersRequest,
    MembershipResponse,
)
from .discover import DiscoverFeedResponse, DiscoverPost
from .friends import (
    BlockStatusResponse,
    ChatStatusPair,
    FriendRequestPayload,
    FriendRequestResponse,
    FriendSearchResponse,
    FriendsOverviewResponse,
    RelationResponse,
)
from .notifications import (
    NotificationListResponse,
    NotificationResponse,
    NotificationStatusUpdate,
    NotificationSummaryResponse,
)
from .posts import (
    MediaItem,
    MediaUploadResponse,
    PinRequest,
    PostCommentCreate,
    PostCommentPageResponse,
    PostCommentResponse,
    PostCreate,
    PostPageResponse,
    PostResponse,
    StarRequest,
    StarResponse,
)
from .profiles import ProfileResponse, ProfileUpdateRequest, UserSummary, UsernameAvailability

__all__ = [
    "AccountDeleteRequest",
    "AuthResponse",
    "BlockStatusResponse",
    "ChatRoomCreate",
    "ChatRoomResponse",
    "ChatStatusPair",
    "ClearChatResponse",
    "CollectionCreate",
    "CollectionListResponse",
    "CollectionResponse",
    "CollectionUpdate",
    "DiscoverFeedResponse",
    "DiscoverPost",
    "FriendRequestPayload",
    "FriendRequestResponse",
    "FriendSearchResponse",
    "FriendsOverviewResponse",
    "LoginRequest",
    "MediaItem",
    "MediaUploadResponse",
    "MemberRequest",
    "MembersRequest",
    "MembershipResponse",
    "MessageEditRequest",
    "MessagePageResponse",
    "MessageResponse",
    "MessageSendRequest",
    "NotificationListResponse",
    "NotificationResponse",
    "NotificationStatusUpdate",
    "NotificationSummaryResponse",
    "PinRequest",
    "PostCommentCreate",
    "PostCommentPageResponse",
    "PostCommentResponse",
    "PostCreate",
    "PostPageResponse",
    "PostResponse",
    "ProfileResponse",
    "ProfileUpdateRequest",
    "ReactionRequest",
    "RegisterRequest",
    "StarRequest",
    "StarResponse",
    "UnreadCountResponse",
    "UserSummary",
    "UsernameAvailability",
]
