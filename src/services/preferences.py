"""Notification preference storage and three-tier resolution."""

import dataclasses
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.config import get_settings
from src.models.enums import MuteLevel
from src.models.notification_preference import NotificationPreference
from src.services.time_windows import as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreferenceScope:
    """Which tier a preference row belongs to.

    (None, None) is global, (workspace, None) is a workspace, and
    (workspace, thread) is a thread inside that workspace.
    """

    workspace_id: int | None = None
    thread_id: int | None = None

    def __post_init__(self) -> None:
        if self.thread_id is not None and self.workspace_id is None:
            raise ValueError("A thread scope requires a workspace_id")

    @property
    def kind(self) -> str:
        if self.thread_id is not None:
            return "thread"
        if self.workspace_id is not None:
            return "workspace"
        return "global"


GLOBAL_SCOPE = PreferenceScope()


@dataclass(frozen=True)
class EffectivePreferences:
    """Fully resolved preferences; every field has a value."""

    push_enabled: bool = True
    sound_enabled: bool = True
    badge_enabled: bool = True
    vibration_enabled: bool = True
    notify_all_messages: bool = False
    notify_mentions: bool = True
    notify_direct_messages: bool = True
    notify_thread_replies: bool = True
    notify_task_assigned: bool = True
    notify_task_due: bool = True
    notify_task_completed: bool = True
    notify_workspace_invites: bool = True
    mute_level: MuteLevel = MuteLevel.NONE
    muted_until: datetime | None = None
    dnd_enabled: bool = False
    dnd_start_time: time | None = None
    dnd_end_time: time | None = None
    dnd_timezone: str = "UTC"
    dnd_allow_mentions: bool = True
    dnd_until: datetime | None = None
    quiet_hours_enabled: bool = False
    quiet_hours_start: time | None = None
    quiet_hours_end: time | None = None
    quiet_hours_timezone: str = "UTC"
    quiet_hours_weekends_only: bool = False
    show_message_preview: bool = True
    show_sender_name: bool = True


PREFERENCE_FIELDS = tuple(f.name for f in dataclasses.fields(EffectivePreferences))

# Mute level and its expiry are resolved together from the same tier.
_MUTE_FIELDS = ("mute_level", "muted_until")


def default_preferences(timezone: str | None = None) -> EffectivePreferences:
    """Get the hard-coded defaults, with timezones set to the configured default."""
    tz = timezone or get_settings().default_timezone
    return EffectivePreferences(dnd_timezone=tz, quiet_hours_timezone=tz)


def _mute_is_active(layer: Any, now: datetime) -> bool:
    if layer.mute_level is None:
        return False
    muted_until = as_utc(layer.muted_until)
    return muted_until is None or muted_until > now


def merge_preferences(
    layers: list[Any | None],
    defaults: EffectivePreferences,
    now: datetime | None = None,
) -> EffectivePreferences:
    """Merge preference tiers field by field, first non-null wins.

    `layers` is ordered most specific first (thread, workspace, global). Any
    layer may be None. Layers are read, never modified.
    """
    now = as_utc(now) or datetime.now(UTC)
    present = [layer for layer in layers if layer is not None]

    resolved: dict[str, Any] = {}
    for name in PREFERENCE_FIELDS:
        if name in _MUTE_FIELDS:
            continue
        value = next(
            (getattr(layer, name) for layer in present if getattr(layer, name) is not None),
            None,
        )
        if value is not None:
            resolved[name] = value

    mute_layer = next((layer for layer in present if _mute_is_active(layer, now)), None)
    if mute_layer is not None:
        resolved["mute_level"] = MuteLevel(mute_layer.mute_level)
        resolved["muted_until"] = mute_layer.muted_until

    return dataclasses.replace(defaults, **resolved)


class PreferenceStore:
    """Read and write notification preference rows."""

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()

    def _scope_query(self, user_id: int, scope: PreferenceScope):
        query = self.db.query(NotificationPreference).filter(
            NotificationPreference.user_id == user_id
        )
        if scope.workspace_id is None:
            query = query.filter(NotificationPreference.workspace_id.is_(None))
        else:
            query = query.filter(NotificationPreference.workspace_id == scope.workspace_id)
        if scope.thread_id is None:
            query = query.filter(NotificationPreference.thread_id.is_(None))
        else:
            query = query.filter(NotificationPreference.thread_id == scope.thread_id)
        return query

    def get_preferences(
        self,
        user_id: int,
        workspace_id: int | None = None,
        thread_id: int | None = None,
    ) -> NotificationPreference | None:
        """Get the stored row for exactly this scope, if any."""
        scope = PreferenceScope(workspace_id, thread_id)
        return self._scope_query(user_id, scope).first()

    def effective_preferences(
        self,
        user_id: int,
        workspace_id: int | None = None,
        thread_id: int | None = None,
        now: datetime | None = None,
    ) -> EffectivePreferences:
        """Resolve thread > workspace > global > defaults for one user."""
        global_prefs = self._scope_query(user_id, GLOBAL_SCOPE).first()

        workspace_prefs = None
        if workspace_id is not None:
            workspace_prefs = self._scope_query(user_id, PreferenceScope(workspace_id)).first()

        thread_prefs = None
        if thread_id is not None:
            # Thread ids are unique across workspaces.
            thread_prefs = (
                self.db.query(NotificationPreference)
                .filter(
                    NotificationPreference.user_id == user_id,
                    NotificationPreference.thread_id == thread_id,
                )
                .first()
            )

        return merge_preferences(
            [thread_prefs, workspace_prefs, global_prefs],
            default_preferences(self.settings.default_timezone),
            now=now,
        )

    def _get_or_create_for_update(
        self, user_id: int, scope: PreferenceScope
    ) -> NotificationPreference:
        record = self._scope_query(user_id, scope).with_for_update().first()
        if record:
            return record

        record = NotificationPreference(
            user_id=user_id,
            workspace_id=scope.workspace_id,
            thread_id=scope.thread_id,
        )
        self.db.add(record)
        try:
            self.db.flush()
        except IntegrityError:
            # Lost an insert race for the same scope; use the winner's row.
            self.db.rollback()
            record = self._scope_query(user_id, scope).with_for_update().one()
        return record

    def save_preferences(
        self,
        user_id: int,
        scope: PreferenceScope,
        patch: dict[str, Any],
    ) -> NotificationPreference:
        """Upsert the row for a scope, changing only the fields in `patch`."""
        unknown = set(patch) - set(PREFERENCE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown preference fields: {', '.join(sorted(unknown))}")

        record = self._get_or_create_for_update(user_id, scope)
        for field, value in patch.items():
            if field == "mute_level" and value is not None:
                value = MuteLevel(value)
            setattr(record, field, value)

        self.db.commit()
        self.db.refresh(record)
        logger.info(
            f"Saved {scope.kind} preferences for user {user_id}: {', '.join(sorted(patch))}"
        )
        return record

    def mute_scope(
        self,
        user_id: int,
        scope: PreferenceScope,
        level: MuteLevel = MuteLevel.ALL,
        duration: timedelta | None = None,
    ) -> NotificationPreference:
        """Mute a scope, permanently or for `duration`."""
        muted_until = datetime.now(UTC) + duration if duration else None
        return self.save_preferences(
            user_id, scope, {"mute_level": level, "muted_until": muted_until}
        )

    def unmute_scope(self, user_id: int, scope: PreferenceScope) -> NotificationPreference:
        """Remove any mute on a scope."""
        return self.save_preferences(
            user_id, scope, {"mute_level": MuteLevel.NONE, "muted_until": None}
        )

    def set_dnd(
        self,
        user_id: int,
        start_time: time | None = None,
        end_time: time | None = None,
        timezone: str | None = None,
        allow_mentions: bool = True,
        duration: timedelta | None = None,
    ) -> NotificationPreference:
        """Enable do-not-disturb on the global scope.

        With `duration`, DND is also snoozed on until now + duration
        regardless of the daily schedule.
        """
        patch: dict[str, Any] = {"dnd_enabled": True, "dnd_allow_mentions": allow_mentions}
        if start_time is not None:
            patch["dnd_start_time"] = start_time
        if end_time is not None:
            patch["dnd_end_time"] = end_time
        if timezone is not None:
            patch["dnd_timezone"] = timezone
        if duration:
            patch["dnd_until"] = datetime.now(UTC) + duration
        return self.save_preferences(user_id, GLOBAL_SCOPE, patch)

    def disable_dnd(self, user_id: int) -> NotificationPreference:
        """Turn off do-not-disturb, including any snooze."""
        return self.save_preferences(
            user_id, GLOBAL_SCOPE, {"dnd_enabled": False, "dnd_until": None}
        )
