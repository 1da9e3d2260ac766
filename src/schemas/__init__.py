"""Pydantic schemas for API requests and responses."""

from src.schemas.notification import (
    DeviceTokenRefresh,
    DeviceTokenRegister,
    DeviceTokenResponse,
    NotificationIntent,
    PreferencesUpdate,
    PreferencesView,
)

__all__ = [
    "DeviceTokenRegister",
    "DeviceTokenRefresh",
    "DeviceTokenResponse",
    "NotificationIntent",
    "PreferencesUpdate",
    "PreferencesView",
]
