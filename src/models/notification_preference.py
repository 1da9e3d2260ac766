"""Push notification preference model (global, workspace, or thread scope)."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.enums import MuteLevel
from src.models.mixins import TimestampMixin


class NotificationPreference(Base, TimestampMixin):
    """Notification settings for one (user, workspace, thread) scope.

    Every setting is nullable so that "not set at this scope" stays distinct
    from an explicit ``False``. No column carries a default: defaults are
    applied when tiers are merged, never when a row is written.
    """

    __tablename__ = "push_notification_preferences"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "workspace_id",
            "thread_id",
            name="uq_preference_scope",
            postgresql_nulls_not_distinct=True,
        ),
        Index("ix_preferences_scope_lookup", "user_id", "workspace_id", "thread_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    workspace_id = Column(Integer, nullable=True)
    thread_id = Column(Integer, nullable=True)

    # Delivery
    push_enabled = Column(Boolean, nullable=True)
    sound_enabled = Column(Boolean, nullable=True)
    badge_enabled = Column(Boolean, nullable=True)
    vibration_enabled = Column(Boolean, nullable=True)

    # Per-type
    notify_all_messages = Column(Boolean, nullable=True)
    notify_mentions = Column(Boolean, nullable=True)
    notify_direct_messages = Column(Boolean, nullable=True)
    notify_thread_replies = Column(Boolean, nullable=True)
    notify_task_assigned = Column(Boolean, nullable=True)
    notify_task_due = Column(Boolean, nullable=True)
    notify_task_completed = Column(Boolean, nullable=True)
    notify_workspace_invites = Column(Boolean, nullable=True)

    # Muting
    mute_level = Column(
        Enum(
            MuteLevel,
            name="mutelevel",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=True,
    )
    muted_until = Column(DateTime(timezone=True), nullable=True, index=True)

    # Do not disturb
    dnd_enabled = Column(Boolean, nullable=True)
    dnd_start_time = Column(Time, nullable=True)  # e.g., 22:00
    dnd_end_time = Column(Time, nullable=True)  # e.g., 08:00
    dnd_timezone = Column(String(50), nullable=True)
    dnd_allow_mentions = Column(Boolean, nullable=True)
    dnd_until = Column(DateTime(timezone=True), nullable=True, index=True)  # snooze

    # Quiet hours
    quiet_hours_enabled = Column(Boolean, nullable=True)
    quiet_hours_start = Column(Time, nullable=True)
    quiet_hours_end = Column(Time, nullable=True)
    quiet_hours_timezone = Column(String(50), nullable=True)
    quiet_hours_weekends_only = Column(Boolean, nullable=True)

    # Content
    show_message_preview = Column(Boolean, nullable=True)
    show_sender_name = Column(Boolean, nullable=True)

    # Relationships
    user = relationship("User", backref="notification_preferences")
