"""Daily cleanup of stale tokens, expired mutes, and old queue/log rows."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.delivery_log import DeliveryLogEntry
from src.models.device_token import DeviceToken
from src.models.enums import NotificationStatus
from src.models.notification_preference import NotificationPreference
from src.models.notification_queue import NotificationQueueItem

logger = logging.getLogger(__name__)

# Pending and in-flight rows are never purged, whatever their age.
PURGEABLE_STATUSES = [status for status in NotificationStatus if status.is_terminal]


class RetentionSweeper:
    """Prunes push notification state. Safe to run repeatedly or skip."""

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    def sweep(self, now: datetime | None = None) -> dict[str, int]:
        now = now or datetime.now(UTC)
        stats = {
            "tokens_deactivated": self._deactivate_idle_tokens(now),
            "mutes_cleared": self._clear_expired_mutes(now),
            "dnd_cleared": self._clear_expired_dnd(now),
            "queue_deleted": self._delete_old_queue_items(now),
            "logs_deleted": self._delete_old_logs(now),
        }
        self.db.commit()
        logger.info(f"Retention sweep complete: {stats}")
        return stats

    def _deactivate_idle_tokens(self, now: datetime) -> int:
        cutoff = now - timedelta(days=self.settings.token_idle_days)
        return (
            self.db.query(DeviceToken)
            .filter(DeviceToken.is_active.is_(True), DeviceToken.last_used_at < cutoff)
            .update({DeviceToken.is_active: False}, synchronize_session=False)
        )

    def _clear_expired_mutes(self, now: datetime) -> int:
        # Unset, not "none", so the scope falls back to the tier below it.
        return (
            self.db.query(NotificationPreference)
            .filter(
                NotificationPreference.muted_until.is_not(None),
                NotificationPreference.muted_until < now,
            )
            .update(
                {
                    NotificationPreference.mute_level: None,
                    NotificationPreference.muted_until: None,
                },
                synchronize_session=False,
            )
        )

    def _clear_expired_dnd(self, now: datetime) -> int:
        return (
            self.db.query(NotificationPreference)
            .filter(
                NotificationPreference.dnd_until.is_not(None),
                NotificationPreference.dnd_until < now,
            )
            .update({NotificationPreference.dnd_until: None}, synchronize_session=False)
        )

    def _delete_old_queue_items(self, now: datetime) -> int:
        cutoff = now - timedelta(days=self.settings.queue_retention_days)
        return (
            self.db.query(NotificationQueueItem)
            .filter(
                NotificationQueueItem.created_at < cutoff,
                NotificationQueueItem.status.in_(PURGEABLE_STATUSES),
            )
            .delete(synchronize_session=False)
        )

    def _delete_old_logs(self, now: datetime) -> int:
        cutoff = now - timedelta(days=self.settings.delivery_log_retention_days)
        return (
            self.db.query(DeliveryLogEntry)
            .filter(DeliveryLogEntry.created_at < cutoff)
            .delete(synchronize_session=False)
        )
