"""SQLAlchemy models."""

from src.models.badge_count import BadgeCount
from src.models.delivery_log import DeliveryLogEntry
from src.models.device_token import DeviceToken
from src.models.notification_preference import NotificationPreference
from src.models.notification_queue import NotificationQueueItem
from src.models.user import User
from src.models.user_activity import UserActivity

__all__ = [
    "User",
    "DeviceToken",
    "NotificationPreference",
    "NotificationQueueItem",
    "DeliveryLogEntry",
    "BadgeCount",
    "UserActivity",
]
