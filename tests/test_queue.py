"""Tests for the producer-facing notification queue."""

from datetime import UTC, datetime

import pytest

from src.models.enums import MuteLevel, NotificationPriority, NotificationStatus, NotificationType
from src.models.notification_queue import NotificationQueueItem
from src.schemas.notification import NotificationIntent
from src.services.badges import BadgeAggregator
from src.services.device_registry import DeviceTokenRegistry
from src.services.eligibility import EligibilityResolver, SuppressionReason
from src.services.notification_queue import NotificationQueue
from src.services.preferences import PreferenceScope, PreferenceStore

NOW = datetime(2024, 6, 12, 12, 0, tzinfo=UTC)


@pytest.fixture
def queue(db, settings):
    return NotificationQueue(db, EligibilityResolver(db, settings))


@pytest.fixture
def device(db, user):
    return DeviceTokenRegistry(db).register(user.id, "token-1", "ios")


def _intent(user_id: int, **overrides) -> NotificationIntent:
    data = {
        "user_id": user_id,
        "workspace_id": 10,
        "thread_id": 20,
        "message_id": 30,
        "notification_type": NotificationType.MENTION,
        "title": "Alice mentioned you",
        "body": "in #general: hello",
    }
    data.update(overrides)
    return NotificationIntent(**data)


def test_queue_persists_pending_item(db, queue, user, device):
    result = queue.queue_notification(_intent(user.id), now=NOW)

    assert result.queued is True
    assert result.reason is None
    item = db.query(NotificationQueueItem).filter_by(id=result.notification_id).one()
    assert item.status == NotificationStatus.PENDING
    assert item.notification_type == NotificationType.MENTION
    assert item.priority == NotificationPriority.HIGH
    assert item.retry_count == 0
    assert item.title == "Alice mentioned you"


def test_queue_without_devices_is_not_persisted(db, queue, user):
    result = queue.queue_notification(_intent(user.id), now=NOW)

    assert result.queued is False
    assert result.notification_id is None
    assert result.reason == SuppressionReason.NO_DEVICES
    assert db.query(NotificationQueueItem).count() == 0


def test_queue_suppressed_by_mute(db, queue, user, device):
    PreferenceStore(db).mute_scope(user.id, PreferenceScope(10, 20), MuteLevel.ALL)

    result = queue.queue_notification(_intent(user.id), now=NOW)

    assert result.reason == SuppressionReason.MUTED
    assert db.query(NotificationQueueItem).count() == 0
    assert BadgeAggregator(db).total(user.id) == 0


def test_queue_bumps_badge_and_stamps_total(db, queue, user, device):
    BadgeAggregator(db).adjust(user.id, 11, 2)

    result = queue.queue_notification(_intent(user.id), now=NOW)

    item = db.query(NotificationQueueItem).filter_by(id=result.notification_id).one()
    assert item.badge_count == 3
    assert BadgeAggregator(db).total(user.id) == 3


def test_workspace_invite_does_not_bump_badge(db, queue, user, device):
    result = queue.notify_workspace_invite(user.id, 10, "Acme", "Bob")

    assert result.queued is True
    assert BadgeAggregator(db).total(user.id) == 0


def test_failed_insert_rolls_back_badge(db, queue, user, device, monkeypatch):
    def fail_commit():
        raise RuntimeError("write failed")

    monkeypatch.setattr(db, "commit", fail_commit)

    with pytest.raises(RuntimeError):
        queue.queue_notification(_intent(user.id), now=NOW)

    monkeypatch.undo()
    assert db.query(NotificationQueueItem).count() == 0
    assert BadgeAggregator(db).total(user.id) == 0


class TestProducerHelpers:
    """Tests for the convenience producers."""

    def test_notify_mention_truncates_preview(self, db, queue, user, device):
        result = queue.notify_mention(user.id, 10, 20, 30, "Alice", "general", "x" * 300)

        item = db.query(NotificationQueueItem).filter_by(id=result.notification_id).one()
        assert item.title == "Alice mentioned you"
        assert item.body == "in #general: " + "x" * 100
        assert item.category == "MESSAGE_REPLY"
        assert item.data == {"senderName": "Alice", "channelName": "general"}

    def test_notify_direct_message(self, db, queue, user, device):
        result = queue.notify_direct_message(user.id, 10, 20, 30, "Alice", "hey")

        item = db.query(NotificationQueueItem).filter_by(id=result.notification_id).one()
        assert item.notification_type == NotificationType.DIRECT_MESSAGE
        assert item.title == "Alice"
        assert item.body == "hey"

    def test_notify_thread_reply_respects_type_flag(self, db, queue, user, device):
        PreferenceStore(db).save_preferences(
            user.id, PreferenceScope(10), {"notify_thread_replies": False}
        )

        result = queue.notify_thread_reply(user.id, 10, 20, 30, "Alice", "general", "ok")

        assert result.reason == SuppressionReason.TYPE_DISABLED

    def test_notify_task_due(self, db, queue, user, device):
        due = datetime(2024, 6, 13, 9, 0, tzinfo=UTC)

        result = queue.notify_task_due(user.id, 10, 5, "Ship it", due)

        item = db.query(NotificationQueueItem).filter_by(id=result.notification_id).one()
        assert item.notification_type == NotificationType.TASK_DUE
        assert item.data["dueDate"] == due.isoformat()
        assert item.data["taskId"] == 5

    def test_notify_task_completed_is_normal_priority(self, db, queue, user, device):
        result = queue.notify_task_completed(user.id, 10, 5, "Bob", "Ship it")

        item = db.query(NotificationQueueItem).filter_by(id=result.notification_id).one()
        assert item.priority == NotificationPriority.NORMAL
        assert item.body == "Bob completed: Ship it"

    def test_notify_task_assigned(self, db, queue, user, device):
        result = queue.notify_task_assigned(user.id, 10, 5, "Bob", "Ship it")

        item = db.query(NotificationQueueItem).filter_by(id=result.notification_id).one()
        assert item.body == "Bob assigned you: Ship it"
        assert BadgeAggregator(db).total(user.id) == 1
