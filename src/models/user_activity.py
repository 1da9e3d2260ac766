"""User activity model written by the realtime socket layer."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, UniqueConstraint

from src.database import Base


class UserActivity(Base):
    """Last known presence of a user, optionally per workspace."""

    __tablename__ = "user_activity"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "workspace_id",
            name="uq_activity_user_workspace",
            postgresql_nulls_not_distinct=True,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    workspace_id = Column(Integer, nullable=True)
    is_online = Column(Boolean, default=False, nullable=False)
    last_active = Column(DateTime(timezone=True), nullable=False, index=True)
