"""Push notification API endpoints for devices, preferences and badges."""

from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import (
    get_badge_aggregator,
    get_current_user,
    get_device_registry,
    get_preference_store,
)
from src.models.device_token import DeviceToken
from src.models.notification_preference import NotificationPreference
from src.models.user import User
from src.schemas.notification import (
    BadgeClearRequest,
    BadgeCountResponse,
    DeviceTokenRefresh,
    DeviceTokenRegister,
    DeviceTokenResponse,
    DndRequest,
    EffectivePreferencesResponse,
    MessageResponse,
    MuteRequest,
    PreferencesResponse,
    PreferencesUpdate,
    PreferencesView,
)
from src.services.badges import BadgeAggregator
from src.services.device_registry import DeviceTokenRegistry
from src.services.preferences import PreferenceScope, PreferenceStore

router = APIRouter(prefix="/api/v1/push", tags=["push"])


def _scope(workspace_id: int | None, thread_id: int | None) -> PreferenceScope:
    try:
        return PreferenceScope(workspace_id, thread_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


# --- Devices ---


@router.post("/register", response_model=DeviceTokenResponse)
async def register_device(
    data: DeviceTokenRegister,
    registry: Annotated[DeviceTokenRegistry, Depends(get_device_registry)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> DeviceToken:
    """Register a device token for push notifications."""
    return registry.register(current_user.id, data.token, data.platform, data.device_info)


@router.delete("/unregister", response_model=MessageResponse)
async def unregister_device(
    token: str,
    registry: Annotated[DeviceTokenRegistry, Depends(get_device_registry)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> MessageResponse:
    """Stop sending push notifications to a device."""
    device = registry.unregister(current_user.id, token)
    if device is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Device token not found",
        )
    return MessageResponse(message="Device token unregistered")


@router.put("/refresh-token", response_model=DeviceTokenResponse)
async def refresh_device_token(
    data: DeviceTokenRefresh,
    registry: Annotated[DeviceTokenRegistry, Depends(get_device_registry)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> DeviceToken:
    """Replace a token the push provider rotated."""
    return registry.refresh(current_user.id, data.old_token, data.new_token, data.platform)


# --- Preferences ---


@router.get("/preferences", response_model=PreferencesView)
async def get_preferences(
    store: Annotated[PreferenceStore, Depends(get_preference_store)],
    current_user: Annotated[User, Depends(get_current_user)],
    workspace_id: int | None = None,
    thread_id: int | None = None,
) -> PreferencesView:
    """Get the stored preferences for a scope and the merged result that applies there."""
    scope = _scope(workspace_id, thread_id)
    stored = store.get_preferences(current_user.id, scope.workspace_id, scope.thread_id)
    effective = store.effective_preferences(current_user.id, scope.workspace_id, scope.thread_id)
    return PreferencesView(
        scope=scope.kind,
        stored=PreferencesResponse.model_validate(stored) if stored else None,
        effective=EffectivePreferencesResponse.model_validate(effective),
    )


@router.post("/preferences", response_model=PreferencesResponse)
async def update_preferences(
    data: PreferencesUpdate,
    store: Annotated[PreferenceStore, Depends(get_preference_store)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> NotificationPreference:
    """Update preferences for one scope. Fields left out are not changed."""
    scope = _scope(data.workspace_id, data.thread_id)
    try:
        return store.save_preferences(current_user.id, scope, data.patch())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


@router.post("/mute", response_model=PreferencesResponse)
async def mute(
    data: MuteRequest,
    store: Annotated[PreferenceStore, Depends(get_preference_store)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> NotificationPreference:
    """Mute the account, a workspace or a thread."""
    scope = _scope(data.workspace_id, data.thread_id)
    duration = timedelta(minutes=data.duration_minutes) if data.duration_minutes else None
    return store.mute_scope(current_user.id, scope, data.mute_level, duration)


@router.delete("/mute", response_model=PreferencesResponse)
async def unmute(
    store: Annotated[PreferenceStore, Depends(get_preference_store)],
    current_user: Annotated[User, Depends(get_current_user)],
    workspace_id: int | None = None,
    thread_id: int | None = None,
) -> NotificationPreference:
    """Remove the mute on a scope."""
    scope = _scope(workspace_id, thread_id)
    return store.unmute_scope(current_user.id, scope)


@router.post("/dnd", response_model=PreferencesResponse)
async def enable_dnd(
    data: DndRequest,
    store: Annotated[PreferenceStore, Depends(get_preference_store)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> NotificationPreference:
    """Turn on do-not-disturb."""
    duration = timedelta(minutes=data.duration_minutes) if data.duration_minutes else None
    return store.set_dnd(
        current_user.id,
        start_time=data.start_time,
        end_time=data.end_time,
        timezone=data.timezone,
        allow_mentions=data.allow_mentions,
        duration=duration,
    )


@router.delete("/dnd", response_model=PreferencesResponse)
async def disable_dnd(
    store: Annotated[PreferenceStore, Depends(get_preference_store)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> NotificationPreference:
    """Turn off do-not-disturb."""
    return store.disable_dnd(current_user.id)


# --- Badges ---


@router.get("/badge-count", response_model=BadgeCountResponse)
async def get_badge_count(
    badges: Annotated[BadgeAggregator, Depends(get_badge_aggregator)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> BadgeCountResponse:
    """Get the total unread count shown on the app icon."""
    return BadgeCountResponse(count=badges.total(current_user.id))


@router.post("/badge-count/clear", response_model=BadgeCountResponse)
async def clear_badge_count(
    data: BadgeClearRequest,
    badges: Annotated[BadgeAggregator, Depends(get_badge_aggregator)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> BadgeCountResponse:
    """Clear unread counters and return what is left."""
    badges.clear(current_user.id, data.workspace_id)
    return BadgeCountResponse(count=badges.total(current_user.id))
