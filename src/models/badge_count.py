"""Unread badge counters per user and workspace."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint, func

from src.database import Base


class BadgeCount(Base):
    """Additive unread counters feeding the badge number of a push payload."""

    __tablename__ = "user_badge_counts"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "workspace_id",
            name="uq_badge_user_workspace",
            postgresql_nulls_not_distinct=True,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    workspace_id = Column(Integer, nullable=True)
    unread_messages = Column(Integer, default=0, nullable=False)
    unread_mentions = Column(Integer, default=0, nullable=False)
    unread_direct_messages = Column(Integer, default=0, nullable=False)
    unread_tasks = Column(Integer, default=0, nullable=False)
    last_updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def total(self) -> int:
        """Sum of every counter on this row."""
        return (
            (self.unread_messages or 0)
            + (self.unread_mentions or 0)
            + (self.unread_direct_messages or 0)
            + (self.unread_tasks or 0)
        )
