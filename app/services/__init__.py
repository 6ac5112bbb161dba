"""Convenience exports for service layer."""
from .auth_service import (
    authenticate_user,
    create_access_token,
    decode_access_token,
    get_current_user,
    register_user,
)
from .cleanup_service import CleanupError, SweepSummary, perform_sweep, run_sweep
from .notification_service import (
    NotificationStatus,
    NotificationType,
    add_notification,
    count_unread_notifications,
    list_notifications,
    mark_all_read,
)
from .profile_service import get_profile, is_username_available, update_profile
from .storage_service import StorageConfigurationError, StorageUploadError, get_storage_client, upload_bytes

__all__ = [
    "CleanupError",
    "NotificationStatus",
    "NotificationType",
    "StorageConfigurationError",
    "StorageUploadError",
    "SweepSummary",
    "add_notification",
    "authenticate_user",
    "count_unread_notifications",
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "get_profile",
    "get_storage_client",
    "is_username_available",
    "list_notifications",
    "mark_all_read",
    "perform_sweep",
    "register_user",
    "run_sweep",
    "update_profile",
    "upload_bytes",
]
