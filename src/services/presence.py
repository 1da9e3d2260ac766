"""Presence signal used to skip push for users who are already looking."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.user_activity import UserActivity
from src.services.time_windows import as_utc

logger = logging.getLogger(__name__)


class PresenceService:
    """Reads and records user activity reported by the realtime layer."""

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    def is_present(
        self,
        user_id: int,
        workspace_id: int | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Check if the user has a live connection or was active very recently."""
        now = as_utc(now) or datetime.now(UTC)

        query = self.db.query(UserActivity).filter(UserActivity.user_id == user_id)
        if workspace_id is None:
            query = query.filter(UserActivity.workspace_id.is_(None))
        else:
            query = query.filter(
                or_(UserActivity.workspace_id == workspace_id, UserActivity.workspace_id.is_(None))
            )
        activity = query.order_by(UserActivity.last_active.desc()).first()

        if activity is None:
            return False

        if activity.is_online:
            return True

        window = timedelta(seconds=self.settings.presence_window_seconds)
        return as_utc(activity.last_active) > now - window

    def _find_for_update(self, user_id: int, workspace_id: int | None) -> UserActivity | None:
        query = self.db.query(UserActivity).filter(UserActivity.user_id == user_id)
        if workspace_id is None:
            query = query.filter(UserActivity.workspace_id.is_(None))
        else:
            query = query.filter(UserActivity.workspace_id == workspace_id)
        return query.with_for_update().first()

    def record_activity(
        self,
        user_id: int,
        workspace_id: int | None = None,
        is_online: bool = True,
        now: datetime | None = None,
    ) -> UserActivity:
        """Record a heartbeat, connect, or disconnect for a user."""
        now = as_utc(now) or datetime.now(UTC)

        activity = self._find_for_update(user_id, workspace_id)

        if activity is None:
            activity = UserActivity(user_id=user_id, workspace_id=workspace_id)
            try:
                with self.db.begin_nested():
                    self.db.add(activity)
            except IntegrityError:
                # A concurrent heartbeat inserted the row; update that one.
                activity = self._find_for_update(user_id, workspace_id)

        activity.is_online = is_online
        activity.last_active = now
        self.db.commit()
        logger.debug(f"Recorded activity for user {user_id} (online={is_online})")
        return activity
