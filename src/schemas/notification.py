"""Push notification Pydantic schemas."""

from datetime import datetime, time
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.models.enums import DevicePlatform, MuteLevel, NotificationPriority, NotificationType


def _validate_timezone(value: str | None) -> str | None:
    if value is None:
        return value
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {value}") from e
    return value


# --- Devices ---


class DeviceTokenRegister(BaseModel):
    """Register a device for push notifications."""

    token: str = Field(..., min_length=1, max_length=500)
    platform: DevicePlatform
    device_info: dict[str, Any] | None = None


class DeviceTokenRefresh(BaseModel):
    """Replace a rotated device token."""

    old_token: str = Field(..., min_length=1, max_length=500)
    new_token: str = Field(..., min_length=1, max_length=500)
    platform: DevicePlatform | None = None


class DeviceTokenResponse(BaseModel):
    """Device token response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    device_token: str
    platform: DevicePlatform
    is_active: bool
    last_used_at: datetime


# --- Preferences ---


class ScopeFields(BaseModel):
    """Global when both ids are empty, workspace, or thread within a workspace."""

    workspace_id: int | None = None
    thread_id: int | None = None


class PreferenceFields(BaseModel):
    """Every preference field; None means "not set at this scope"."""

    push_enabled: bool | None = None
    sound_enabled: bool | None = None
    badge_enabled: bool | None = None
    vibration_enabled: bool | None = None
    notify_all_messages: bool | None = None
    notify_mentions: bool | None = None
    notify_direct_messages: bool | None = None
    notify_thread_replies: bool | None = None
    notify_task_assigned: bool | None = None
    notify_task_due: bool | None = None
    notify_task_completed: bool | None = None
    notify_workspace_invites: bool | None = None
    mute_level: MuteLevel | None = None
    muted_until: datetime | None = None
    dnd_enabled: bool | None = None
    dnd_start_time: time | None = None
    dnd_end_time: time | None = None
    dnd_timezone: str | None = Field(None, max_length=50)
    dnd_allow_mentions: bool | None = None
    dnd_until: datetime | None = None
    quiet_hours_enabled: bool | None = None
    quiet_hours_start: time | None = None
    quiet_hours_end: time | None = None
    quiet_hours_timezone: str | None = Field(None, max_length=50)
    quiet_hours_weekends_only: bool | None = None
    show_message_preview: bool | None = None
    show_sender_name: bool | None = None

    @field_validator("dnd_timezone", "quiet_hours_timezone")
    @classmethod
    def validate_timezone(cls, value: str | None) -> str | None:
        return _validate_timezone(value)


class PreferencesUpdate(ScopeFields, PreferenceFields):
    """Partial update for one scope. Only fields that are sent are changed."""

    def patch(self) -> dict[str, Any]:
        """Get the preference fields that were explicitly provided."""
        return self.model_dump(exclude_unset=True, exclude={"workspace_id", "thread_id"})


class PreferencesResponse(PreferenceFields):
    """Stored preference row for one scope."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    workspace_id: int | None
    thread_id: int | None
    updated_at: datetime


class EffectivePreferencesResponse(BaseModel):
    """Merged preferences after thread > workspace > global > defaults."""

    model_config = ConfigDict(from_attributes=True)

    push_enabled: bool
    sound_enabled: bool
    badge_enabled: bool
    vibration_enabled: bool
    notify_all_messages: bool
    notify_mentions: bool
    notify_direct_messages: bool
    notify_thread_replies: bool
    notify_task_assigned: bool
    notify_task_due: bool
    notify_task_completed: bool
    notify_workspace_invites: bool
    mute_level: MuteLevel
    muted_until: datetime | None
    dnd_enabled: bool
    dnd_start_time: time | None
    dnd_end_time: time | None
    dnd_timezone: str
    dnd_allow_mentions: bool
    dnd_until: datetime | None
    quiet_hours_enabled: bool
    quiet_hours_start: time | None
    quiet_hours_end: time | None
    quiet_hours_timezone: str
    quiet_hours_weekends_only: bool
    show_message_preview: bool
    show_sender_name: bool


class PreferencesView(BaseModel):
    """Stored row for the requested scope plus what actually applies."""

    scope: str
    stored: PreferencesResponse | None
    effective: EffectivePreferencesResponse


class MuteRequest(ScopeFields):
    """Mute a scope, optionally for a limited time."""

    mute_level: MuteLevel = MuteLevel.ALL
    duration_minutes: int | None = Field(None, gt=0)


class DndRequest(BaseModel):
    """Enable do-not-disturb on a schedule and/or as a snooze."""

    start_time: time | None = None
    end_time: time | None = None
    timezone: str | None = Field(None, max_length=50)
    allow_mentions: bool = True
    duration_minutes: int | None = Field(None, gt=0)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str | None) -> str | None:
        return _validate_timezone(value)

    @model_validator(mode="after")
    def validate_window(self):
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be set together")
        return self


# --- Badges ---


class BadgeCountResponse(BaseModel):
    """Total unread badge count."""

    count: int


class BadgeClearRequest(BaseModel):
    """Clear badge counters, for one workspace or everywhere."""

    workspace_id: int | None = None


class MessageResponse(BaseModel):
    """Generic acknowledgement."""

    success: bool = True
    message: str


# --- Producers ---


class NotificationIntent(BaseModel):
    """A request to tell a user about an event."""

    user_id: int
    workspace_id: int | None = None
    thread_id: int | None = None
    message_id: int | None = None
    notification_type: NotificationType
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., max_length=4000)
    data: dict[str, Any] = Field(default_factory=dict)
    category: str | None = Field(None, max_length=100)
    priority: NotificationPriority = NotificationPriority.HIGH
