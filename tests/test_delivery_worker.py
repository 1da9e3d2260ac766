"""Tests for the background delivery worker."""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from src.config import Settings
from src.models.delivery_log import DeliveryLogEntry
from src.models.device_token import DeviceToken
from src.models.enums import NotificationPriority, NotificationStatus, NotificationType
from src.models.notification_queue import NotificationQueueItem
from src.services.delivery_worker import DeliveryWorker
from src.services.device_registry import DeviceTokenRegistry
from src.services.preferences import GLOBAL_SCOPE, PreferenceStore
from src.services.push_gateway import (
    INTERNAL_ERROR,
    SERVER_UNAVAILABLE,
    TOKEN_NOT_REGISTERED,
    GatewayResult,
)
from src.services.push_payloads import build_push_payload as real_build_push_payload

NOW = datetime(2024, 6, 12, 12, 0, tzinfo=UTC)


def _queue_item(db, user_id: int, **overrides) -> NotificationQueueItem:
    values = {
        "user_id": user_id,
        "workspace_id": 10,
        "thread_id": 20,
        "notification_type": NotificationType.MENTION,
        "title": "Alice mentioned you",
        "body": "in #general: hello",
        "data": {},
        "badge_count": 1,
        "priority": NotificationPriority.HIGH,
        "status": NotificationStatus.PENDING,
        "scheduled_for": NOW - timedelta(minutes=1),
    }
    values.update(overrides)
    item = NotificationQueueItem(**values)
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture
def worker(session_factory, gateway, settings):
    return DeliveryWorker(session_factory, gateway, settings)


@pytest.fixture
def devices(db, user):
    registry = DeviceTokenRegistry(db)
    return [
        registry.register(user.id, "ios-token", "ios"),
        registry.register(user.id, "android-token", "android"),
    ]


def _reload(db, item_id: int) -> NotificationQueueItem:
    db.expire_all()
    return db.query(NotificationQueueItem).filter_by(id=item_id).one()


class TestRunCycle:
    """Tests for batch processing."""

    def test_sends_to_every_device(self, db, worker, gateway, user, devices):
        item = _queue_item(db, user.id)

        stats = worker.run_cycle(now=NOW)

        assert stats == {"processed": 1, "sent": 1, "failed": 0, "cancelled": 0, "errors": 0}
        assert sorted(p["token"] for p in gateway.sent) == ["android-token", "ios-token"]
        item = _reload(db, item.id)
        assert item.status == NotificationStatus.SENT
        assert item.sent_at is not None
        assert item.processed_at is not None
        assert item.failed_tokens == []
        logs = db.query(DeliveryLogEntry).filter_by(queue_id=item.id).all()
        assert len(logs) == 2
        assert all(log.success for log in logs)

    def test_permanent_failure_deactivates_only_that_token(
        self, db, session_factory, settings, make_gateway, user, devices
    ):
        gateway = make_gateway(
            {"ios-token": GatewayResult.failed(TOKEN_NOT_REGISTERED, "not found")}
        )
        worker = DeliveryWorker(session_factory, gateway, settings)
        item = _queue_item(db, user.id)

        worker.run_cycle(now=NOW)

        item = _reload(db, item.id)
        assert item.status == NotificationStatus.SENT
        assert item.failed_tokens == [
            {"device_token_id": devices[0].id, "error_code": TOKEN_NOT_REGISTERED}
        ]
        tokens = {d.device_token: d.is_active for d in db.query(DeviceToken).all()}
        assert tokens == {"ios-token": False, "android-token": True}

        # The remaining device still receives later notifications.
        gateway.sent.clear()
        _queue_item(db, user.id)
        worker.run_cycle(now=NOW)
        assert [p["token"] for p in gateway.sent] == ["android-token"]

    def test_all_devices_failing_marks_failed(
        self, db, session_factory, settings, make_gateway, user, devices
    ):
        gateway = make_gateway(
            {
                "ios-token": GatewayResult.failed(SERVER_UNAVAILABLE, "try later"),
                "android-token": GatewayResult.failed(SERVER_UNAVAILABLE, "try later"),
            }
        )
        worker = DeliveryWorker(session_factory, gateway, settings)
        item = _queue_item(db, user.id)

        stats = worker.run_cycle(now=NOW)

        assert stats["failed"] == 1
        item = _reload(db, item.id)
        assert item.status == NotificationStatus.FAILED
        assert item.retry_count == 1
        assert item.last_error == "All device tokens failed"
        assert len(item.failed_tokens) == 2
        # Transient errors keep the tokens.
        assert db.query(DeviceToken).filter_by(is_active=True).count() == 2

    def test_no_devices_cancels(self, db, worker, gateway, user):
        item = _queue_item(db, user.id)

        stats = worker.run_cycle(now=NOW)

        assert stats["cancelled"] == 1
        assert gateway.sent == []
        item = _reload(db, item.id)
        assert item.status == NotificationStatus.CANCELLED
        assert item.last_error == "No active device tokens"

    def test_gateway_exception_is_logged_as_internal_error(
        self, db, session_factory, settings, make_gateway, user, devices
    ):
        gateway = make_gateway({"ios-token": ConnectionError("socket closed")})
        worker = DeliveryWorker(session_factory, gateway, settings)
        item = _queue_item(db, user.id)

        worker.run_cycle(now=NOW)

        item = _reload(db, item.id)
        assert item.status == NotificationStatus.SENT
        log = db.query(DeliveryLogEntry).filter_by(device_token_id=devices[0].id).one()
        assert log.success is False
        assert log.error_code == INTERNAL_ERROR
        assert db.query(DeviceToken).filter_by(is_active=True).count() == 2

    def test_future_items_are_not_processed(self, db, worker, user, devices):
        item = _queue_item(db, user.id, scheduled_for=NOW + timedelta(minutes=5))

        stats = worker.run_cycle(now=NOW)

        assert stats["processed"] == 0
        assert _reload(db, item.id).status == NotificationStatus.PENDING

    def test_terminal_items_are_not_reprocessed(self, db, worker, gateway, user, devices):
        _queue_item(db, user.id, status=NotificationStatus.FAILED)
        _queue_item(db, user.id, status=NotificationStatus.SENT)

        stats = worker.run_cycle(now=NOW)

        assert stats["processed"] == 0
        assert gateway.sent == []

    def test_high_priority_first_and_batch_limit(
        self, db, session_factory, gateway, user, devices
    ):
        worker = DeliveryWorker(
            session_factory, gateway, Settings(default_timezone="UTC", push_batch_size=1)
        )
        normal = _queue_item(db, user.id, priority=NotificationPriority.NORMAL, title="normal")
        high = _queue_item(db, user.id, priority=NotificationPriority.HIGH, title="high")

        stats = worker.run_cycle(now=NOW)

        assert stats["processed"] == 1
        assert _reload(db, high.id).status == NotificationStatus.SENT
        assert _reload(db, normal.id).status == NotificationStatus.PENDING

    def test_item_error_does_not_stop_batch(self, db, worker, gateway, user, devices):
        broken = _queue_item(db, user.id, title="broken")
        healthy = _queue_item(db, user.id, title="healthy")

        def build(item, device, prefs):
            if item.title == "broken":
                raise RuntimeError("bad payload")
            return real_build_push_payload(item, device, prefs)

        with patch("src.services.delivery_worker.build_push_payload", side_effect=build):
            stats = worker.run_cycle(now=NOW)

        assert stats["processed"] == 2
        assert stats["errors"] == 1
        assert stats["sent"] == 1
        broken = _reload(db, broken.id)
        assert broken.status == NotificationStatus.FAILED
        assert broken.retry_count == 1
        assert "bad payload" in broken.last_error
        assert _reload(db, healthy.id).status == NotificationStatus.SENT

    def test_overlapping_cycle_is_skipped(self, db, worker, gateway, user, devices):
        item = _queue_item(db, user.id)

        worker._busy.acquire()
        try:
            assert worker._busy.locked()
            assert worker.run_cycle(now=NOW) == {"skipped": True}
        finally:
            worker._busy.release()

        assert gateway.sent == []
        assert _reload(db, item.id).status == NotificationStatus.PENDING
        assert not worker._busy.locked()


class TestDeliver:
    """Tests for single-item delivery."""

    def test_hidden_preview(self, db, worker, gateway, user, devices):
        PreferenceStore(db).save_preferences(
            user.id, GLOBAL_SCOPE, {"show_message_preview": False}
        )
        item = _queue_item(db, user.id)

        status = worker.deliver(db, item, now=NOW)

        assert status == NotificationStatus.SENT
        assert {p["body"] for p in gateway.sent} == {"New notification"}
        assert {p["title"] for p in gateway.sent} == {"Alice mentioned you"}

    def test_platform_blocks(self, db, worker, gateway, user, devices):
        item = _queue_item(db, user.id)

        worker.deliver(db, item, now=NOW)

        by_platform = {p["platform"]: p for p in gateway.sent}
        assert "apns" in by_platform["ios"]
        assert "android" not in by_platform["ios"]
        assert by_platform["android"]["android"]["notification"]["channel_id"] == "crew_mention"
