"""Enums for model fields."""

from enum import Enum


class DevicePlatform(str, Enum):
    """Client platforms that can hold a push token."""

    IOS = "ios"
    ANDROID = "android"
    WEB = "web"
    MACOS = "macos"

    def uses_apns(self) -> bool:
        """Check if this platform is delivered through APNs."""
        return self in (DevicePlatform.IOS, DevicePlatform.MACOS)


class NotificationType(str, Enum):
    """Events that can produce a push notification."""

    MENTION = "mention"
    DIRECT_MESSAGE = "direct_message"
    THREAD_REPLY = "thread_reply"
    TASK_ASSIGNED = "task_assigned"
    TASK_DUE = "task_due"
    TASK_COMPLETED = "task_completed"
    WORKSPACE_INVITE = "workspace_invite"
    MESSAGE = "message"  # every message in a channel, opt-in only


class NotificationPriority(str, Enum):
    """Delivery priority of a queued notification."""

    HIGH = "high"
    NORMAL = "normal"


class NotificationStatus(str, Enum):
    """Lifecycle of a queued notification."""

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Check if the item will never be picked up again."""
        return self in (
            NotificationStatus.SENT,
            NotificationStatus.FAILED,
            NotificationStatus.CANCELLED,
        )


class MuteLevel(str, Enum):
    """Per-scope suppression tier."""

    NONE = "none"
    MENTIONS_ONLY = "mentions_only"
    ALL = "all"


class BadgeCategory(str, Enum):
    """Unread counters kept per user and workspace."""

    MESSAGES = "unread_messages"
    MENTIONS = "unread_mentions"
    DIRECT_MESSAGES = "unread_direct_messages"
    TASKS = "unread_tasks"
