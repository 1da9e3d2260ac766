"""Platform-specific push payloads."""

from typing import Any

from src.models.device_token import DeviceToken
from src.models.enums import DevicePlatform, NotificationPriority, NotificationType
from src.models.notification_queue import NotificationQueueItem
from src.services.preferences import EffectivePreferences

HIDDEN_PREVIEW_BODY = "New notification"
ANDROID_CHANNEL_PREFIX = "crew_"
ANDROID_ICON = "ic_notification"
ANDROID_COLOR = "#4f46e5"
WEB_ICON = "/icons/notification-192.png"

# Used as the title when the user hides sender names.
GENERIC_TITLES: dict[NotificationType, str] = {
    NotificationType.MENTION: "New mention",
    NotificationType.DIRECT_MESSAGE: "New direct message",
    NotificationType.THREAD_REPLY: "New reply",
    NotificationType.MESSAGE: "New message",
    NotificationType.TASK_ASSIGNED: "New task assigned",
    NotificationType.TASK_DUE: "Task due soon",
    NotificationType.TASK_COMPLETED: "Task completed",
    NotificationType.WORKSPACE_INVITE: "Workspace invitation",
}


def _data_payload(item: NotificationQueueItem) -> dict[str, str]:
    """FCM data values must all be strings. Reserved keys win over producer data."""
    data = {
        str(key): "" if value is None else str(value) for key, value in (item.data or {}).items()
    }
    data.update(
        {
            "notificationId": str(item.id),
            "notificationType": NotificationType(item.notification_type).value,
            "workspaceId": str(item.workspace_id) if item.workspace_id is not None else "",
            "threadId": str(item.thread_id) if item.thread_id is not None else "",
            "messageId": str(item.message_id) if item.message_id is not None else "",
        }
    )
    return data


def display_text(item: NotificationQueueItem, prefs: EffectivePreferences) -> tuple[str, str]:
    """Get the title and body the user has agreed to see on a lock screen."""
    notification_type = NotificationType(item.notification_type)
    title = item.title if prefs.show_sender_name else GENERIC_TITLES[notification_type]
    body = item.body if prefs.show_message_preview else HIDDEN_PREVIEW_BODY
    return title, body


def build_push_payload(
    item: NotificationQueueItem,
    device: DeviceToken,
    prefs: EffectivePreferences,
) -> dict[str, Any]:
    """Build the gateway payload for one queued notification and one device."""
    platform = DevicePlatform(device.platform)
    priority = NotificationPriority(item.priority)
    notification_type = NotificationType(item.notification_type)
    title, body = display_text(item, prefs)
    badge = (item.badge_count or 1) if prefs.badge_enabled else None
    sound = "default" if prefs.sound_enabled else None

    payload: dict[str, Any] = {
        "token": device.device_token,
        "platform": platform.value,
        "title": title,
        "body": body,
        "data": _data_payload(item),
    }

    if platform.uses_apns():
        payload["apns"] = {
            "headers": {
                "apns-priority": "10" if priority == NotificationPriority.HIGH else "5",
                "apns-push-type": "alert",
            },
            "aps": {
                "alert": {"title": title, "body": body},
                "badge": badge,
                "sound": sound,
                "mutable_content": True,
                "thread_id": str(item.thread_id or item.workspace_id or "default"),
                "category": item.category,
            },
        }
    elif platform == DevicePlatform.ANDROID:
        payload["android"] = {
            "priority": "high" if priority == NotificationPriority.HIGH else "normal",
            "notification": {
                "title": title,
                "body": body,
                "channel_id": f"{ANDROID_CHANNEL_PREFIX}{notification_type.value}",
                "icon": ANDROID_ICON,
                "color": ANDROID_COLOR,
                "sound": sound,
                "notification_count": badge,
                "default_vibrate_timings": prefs.vibration_enabled,
            },
        }
    elif platform == DevicePlatform.WEB:
        payload["webpush"] = {
            "headers": {"Urgency": "high" if priority == NotificationPriority.HIGH else "normal"},
            "notification": {
                "title": title,
                "body": body,
                "icon": WEB_ICON,
                "tag": f"{notification_type.value}-{item.thread_id or item.workspace_id or item.id}",
                "silent": not prefs.sound_enabled,
            },
        }

    return payload
