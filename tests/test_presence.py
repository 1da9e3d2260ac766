"""Tests for the presence signal."""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

from src.models.user_activity import UserActivity
from src.services.presence import PresenceService

NOW = datetime(2024, 6, 12, 12, 0, tzinfo=UTC)


def test_unknown_user_is_absent(db, user, settings):
    assert PresenceService(db, settings).is_present(user.id, 10, now=NOW) is False


def test_online_connection_is_present(db, user, settings):
    presence = PresenceService(db, settings)
    presence.record_activity(user.id, 10, is_online=True, now=NOW - timedelta(hours=1))

    assert presence.is_present(user.id, 10, now=NOW) is True


def test_recent_activity_window(db, user, settings):
    presence = PresenceService(db, settings)
    presence.record_activity(user.id, 10, is_online=False, now=NOW - timedelta(seconds=90))

    assert presence.is_present(user.id, 10, now=NOW) is True
    assert presence.is_present(user.id, 10, now=NOW + timedelta(minutes=5)) is False


def test_global_activity_counts_for_any_workspace(db, user, settings):
    presence = PresenceService(db, settings)
    presence.record_activity(user.id, None, is_online=True, now=NOW)

    assert presence.is_present(user.id, 10, now=NOW) is True


def test_other_workspace_activity_does_not_count(db, user, settings):
    presence = PresenceService(db, settings)
    presence.record_activity(user.id, 11, is_online=True, now=NOW)

    assert presence.is_present(user.id, 10, now=NOW) is False


def test_record_activity_upserts(db, user, settings):
    presence = PresenceService(db, settings)
    presence.record_activity(user.id, 10, is_online=True, now=NOW)
    presence.record_activity(user.id, 10, is_online=False, now=NOW + timedelta(minutes=1))

    rows = db.query(UserActivity).filter_by(user_id=user.id).all()
    assert len(rows) == 1
    assert rows[0].is_online is False


def test_record_activity_when_row_is_created_concurrently(db, user, settings):
    presence = PresenceService(db, settings)
    real_find = presence._find_for_update
    calls = []

    def row_appears_after_lookup(user_id, workspace_id):
        calls.append(workspace_id)
        if len(calls) == 1:
            db.add(UserActivity(
                user_id=user_id,
                workspace_id=workspace_id,
                is_online=False,
                last_active=NOW - timedelta(hours=2),
            ))
            db.flush()
            return None
        return real_find(user_id, workspace_id)

    with patch.object(presence, "_find_for_update", side_effect=row_appears_after_lookup):
        activity = presence.record_activity(user.id, 10, is_online=True, now=NOW)

    assert len(calls) == 2
    rows = db.query(UserActivity).filter_by(user_id=user.id).all()
    assert len(rows) == 1
    assert rows[0].id == activity.id
    assert rows[0].is_online is True
