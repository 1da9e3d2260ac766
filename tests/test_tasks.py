"""Tests for the push Celery tasks."""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import src.tasks.push_delivery as push_delivery
from src.celery_app import app as celery_app
from src.models.device_token import DeviceToken
from src.models.enums import DevicePlatform
from src.tasks.push_delivery import (
    get_delivery_worker,
    process_notification_queue,
    run_retention_sweep,
)


def test_beat_schedule():
    schedule = celery_app.conf.beat_schedule

    assert schedule["process-notification-queue"]["task"] == "tasks.process_notification_queue"
    assert schedule["process-notification-queue"]["schedule"] == 5.0
    assert schedule["push-retention-sweep"]["task"] == "tasks.run_retention_sweep"


def test_process_notification_queue_runs_cycle():
    worker = MagicMock()
    worker.run_cycle.return_value = {"processed": 2, "sent": 2}

    with patch("src.tasks.push_delivery.get_delivery_worker", return_value=worker):
        result = process_notification_queue()

    assert result == {"processed": 2, "sent": 2}
    worker.run_cycle.assert_called_once_with()


def test_process_notification_queue_reports_errors():
    worker = MagicMock()
    worker.run_cycle.side_effect = RuntimeError("database unavailable")

    with patch("src.tasks.push_delivery.get_delivery_worker", return_value=worker):
        result = process_notification_queue()

    assert result == {"error": "database unavailable"}


def test_delivery_worker_is_reused():
    push_delivery._worker = None
    try:
        with patch("src.tasks.push_delivery.get_push_gateway") as mock_gateway:
            first = get_delivery_worker()
            second = get_delivery_worker()

        assert first is second
        mock_gateway.assert_called_once()
    finally:
        push_delivery._worker = None


def test_run_retention_sweep(db, user, session_factory):
    db.add(
        DeviceToken(
            user_id=user.id,
            device_token="stale",
            platform=DevicePlatform.IOS,
            last_used_at=datetime.now(UTC) - timedelta(days=200),
        )
    )
    db.commit()

    with patch("src.tasks.push_delivery.SessionLocal", session_factory):
        result = run_retention_sweep()

    assert result["tokens_deactivated"] == 1
    db.expire_all()
    assert db.query(DeviceToken).one().is_active is False
