"""Decides whether a user should be interrupted by a push notification."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.enums import MuteLevel, NotificationType
from src.services.device_registry import DeviceTokenRegistry
from src.services.preferences import EffectivePreferences, PreferenceStore
from src.services.presence import PresenceService
from src.services.time_windows import as_utc, in_dnd_window, in_quiet_hours

logger = logging.getLogger(__name__)


class SuppressionReason(StrEnum):
    """Why a notification was not queued."""

    NO_DEVICES = "no_devices"
    USER_PRESENT = "user_present"
    PUSH_DISABLED = "push_disabled"
    DO_NOT_DISTURB = "do_not_disturb"
    QUIET_HOURS = "quiet_hours"
    MUTED = "muted"
    TYPE_DISABLED = "type_disabled"
    ERROR = "error"


# Opt-out flags: on unless explicitly turned off.
TYPE_PREFERENCE_FLAGS: dict[NotificationType, str] = {
    NotificationType.MENTION: "notify_mentions",
    NotificationType.DIRECT_MESSAGE: "notify_direct_messages",
    NotificationType.THREAD_REPLY: "notify_thread_replies",
    NotificationType.TASK_ASSIGNED: "notify_task_assigned",
    NotificationType.TASK_DUE: "notify_task_due",
    NotificationType.TASK_COMPLETED: "notify_task_completed",
    NotificationType.WORKSPACE_INVITE: "notify_workspace_invites",
}


@dataclass(frozen=True)
class EligibilityDecision:
    """Outcome of eligibility resolution."""

    allowed: bool
    reason: SuppressionReason | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = EligibilityDecision(allowed=True)


def _deny(reason: SuppressionReason) -> EligibilityDecision:
    return EligibilityDecision(allowed=False, reason=reason)


def decide(
    has_devices: bool,
    is_present: bool,
    prefs: EffectivePreferences,
    notification_type: NotificationType,
    now: datetime,
) -> EligibilityDecision:
    """Apply the eligibility rules in order, stopping at the first "no".

    Presence always suppresses, even mentions. DND lets mentions through when
    configured to; quiet hours never do.
    """
    notification_type = NotificationType(notification_type)

    if not has_devices:
        return _deny(SuppressionReason.NO_DEVICES)

    if is_present:
        return _deny(SuppressionReason.USER_PRESENT)

    if not prefs.push_enabled:
        return _deny(SuppressionReason.PUSH_DISABLED)

    if in_dnd_window(prefs, now):
        if prefs.dnd_allow_mentions and notification_type == NotificationType.MENTION:
            return ALLOW
        return _deny(SuppressionReason.DO_NOT_DISTURB)

    if in_quiet_hours(prefs, now):
        return _deny(SuppressionReason.QUIET_HOURS)

    if prefs.mute_level == MuteLevel.ALL:
        return _deny(SuppressionReason.MUTED)
    if prefs.mute_level == MuteLevel.MENTIONS_ONLY and notification_type != NotificationType.MENTION:
        return _deny(SuppressionReason.MUTED)

    if notification_type == NotificationType.MESSAGE:
        if prefs.notify_all_messages is not True:
            return _deny(SuppressionReason.TYPE_DISABLED)
        return ALLOW

    flag = TYPE_PREFERENCE_FLAGS[notification_type]
    if getattr(prefs, flag) is False:
        return _deny(SuppressionReason.TYPE_DISABLED)

    return ALLOW


class EligibilityResolver:
    """Gathers devices, presence and preferences, then applies `decide`."""

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.registry = DeviceTokenRegistry(db)
        self.preferences = PreferenceStore(db)
        self.presence = PresenceService(db, self.settings)

    def evaluate(
        self,
        user_id: int,
        workspace_id: int | None,
        thread_id: int | None,
        notification_type: NotificationType,
        now: datetime | None = None,
    ) -> EligibilityDecision:
        """Decide whether to notify, with the reason when the answer is no.

        Lookup failures resolve to "no": a missed notification is cheaper
        than pushing to a user who muted the scope.
        """
        now = as_utc(now) or datetime.now(UTC)
        try:
            if not self.registry.active_tokens_for(user_id):
                return _deny(SuppressionReason.NO_DEVICES)

            if self.presence.is_present(user_id, workspace_id, now=now):
                return _deny(SuppressionReason.USER_PRESENT)

            prefs = self.preferences.effective_preferences(
                user_id, workspace_id, thread_id, now=now
            )
            return decide(True, False, prefs, notification_type, now)

        except Exception as e:
            logger.error(
                f"Error checking notification eligibility for user {user_id}: {e}",
                exc_info=True,
            )
            return _deny(SuppressionReason.ERROR)

    def should_deliver(
        self,
        user_id: int,
        workspace_id: int | None,
        thread_id: int | None,
        notification_type: NotificationType,
        now: datetime | None = None,
    ) -> bool:
        """Check whether a notification should be queued for the user right now."""
        return self.evaluate(user_id, workspace_id, thread_id, notification_type, now).allowed
