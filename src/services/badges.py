"""Unread badge counters."""

import logging

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models.badge_count import BadgeCount
from src.models.enums import BadgeCategory, NotificationType

logger = logging.getLogger(__name__)

# Which counter a queued notification bumps. Invites have no unread counter.
CATEGORY_FOR_TYPE: dict[NotificationType, BadgeCategory] = {
    NotificationType.MENTION: BadgeCategory.MENTIONS,
    NotificationType.DIRECT_MESSAGE: BadgeCategory.DIRECT_MESSAGES,
    NotificationType.THREAD_REPLY: BadgeCategory.MESSAGES,
    NotificationType.MESSAGE: BadgeCategory.MESSAGES,
    NotificationType.TASK_ASSIGNED: BadgeCategory.TASKS,
    NotificationType.TASK_DUE: BadgeCategory.TASKS,
    NotificationType.TASK_COMPLETED: BadgeCategory.TASKS,
}


class BadgeAggregator:
    """Maintains per-user, per-workspace unread counters."""

    def __init__(self, db: Session):
        self.db = db

    def _workspace_filter(self, user_id: int, workspace_id: int | None):
        query = self.db.query(BadgeCount).filter(BadgeCount.user_id == user_id)
        if workspace_id is None:
            return query.filter(BadgeCount.workspace_id.is_(None))
        return query.filter(BadgeCount.workspace_id == workspace_id)

    def _increment(self, user_id: int, workspace_id: int | None, column, delta: int) -> int:
        """Clamped in-place update of an existing row. Returns the number of rows matched."""
        clamped = case((column + delta < 0, 0), else_=column + delta)
        return self._workspace_filter(user_id, workspace_id).update(
            {column: clamped, BadgeCount.last_updated_at: func.now()},
            synchronize_session=False,
        )

    def adjust(
        self,
        user_id: int,
        workspace_id: int | None,
        delta: int,
        category: BadgeCategory = BadgeCategory.MESSAGES,
        commit: bool = True,
    ) -> int:
        """Add `delta` to one counter, clamped at zero. Returns the new value."""
        column = getattr(BadgeCount, category.value)

        if not self._increment(user_id, workspace_id, column, delta):
            row = BadgeCount(
                user_id=user_id,
                workspace_id=workspace_id,
                unread_messages=0,
                unread_mentions=0,
                unread_direct_messages=0,
                unread_tasks=0,
            )
            setattr(row, category.value, max(0, delta))
            try:
                with self.db.begin_nested():
                    self.db.add(row)
            except IntegrityError:
                # Another producer created the row first; apply the delta to theirs.
                logger.debug(f"Badge row for user {user_id} already exists, updating it")
                self._increment(user_id, workspace_id, column, delta)

        value = self._workspace_filter(user_id, workspace_id).with_entities(column).scalar()

        if commit:
            self.db.commit()
        return value or 0

    def total(self, user_id: int) -> int:
        """Sum every counter across every workspace for a user."""
        total = (
            self.db.query(
                func.coalesce(
                    func.sum(
                        BadgeCount.unread_messages
                        + BadgeCount.unread_mentions
                        + BadgeCount.unread_direct_messages
                        + BadgeCount.unread_tasks
                    ),
                    0,
                )
            )
            .filter(BadgeCount.user_id == user_id)
            .scalar()
        )
        return int(total or 0)

    def clear(self, user_id: int, workspace_id: int | None = None) -> None:
        """Reset counters when the user opens the app.

        With a workspace, only that workspace's message counters are cleared
        (tasks stay until completed); without one, everything is cleared.
        """
        values = {
            BadgeCount.unread_messages: 0,
            BadgeCount.unread_mentions: 0,
            BadgeCount.unread_direct_messages: 0,
            BadgeCount.last_updated_at: func.now(),
        }
        query = self.db.query(BadgeCount).filter(BadgeCount.user_id == user_id)
        if workspace_id is not None:
            query = query.filter(BadgeCount.workspace_id == workspace_id)
        else:
            values[BadgeCount.unread_tasks] = 0

        query.update(values, synchronize_session=False)
        self.db.commit()
        logger.info(f"Cleared badge counts for user {user_id} (workspace={workspace_id})")
