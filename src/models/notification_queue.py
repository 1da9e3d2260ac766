"""Push notification queue model."""

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.enums import NotificationPriority, NotificationStatus, NotificationType
from src.models.mixins import TimestampMixin


class NotificationQueueItem(Base, TimestampMixin):
    """A decided-to-send notification tracked until delivery or terminal failure."""

    __tablename__ = "push_notification_queue"
    __table_args__ = (Index("ix_push_queue_due", "status", "scheduled_for"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    workspace_id = Column(Integer, nullable=True)
    thread_id = Column(Integer, nullable=True)
    message_id = Column(Integer, nullable=True)
    notification_type = Column(
        Enum(
            NotificationType,
            name="notificationtype",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    badge_count = Column(Integer, default=0, nullable=False)
    category = Column(String(100), nullable=True)  # APNs category, e.g. MESSAGE_REPLY
    priority = Column(
        Enum(
            NotificationPriority,
            name="notificationpriority",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=NotificationPriority.HIGH,
        nullable=False,
    )
    status = Column(
        Enum(
            NotificationStatus,
            name="notificationstatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=NotificationStatus.PENDING,
        nullable=False,
    )
    retry_count = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    # [{"device_token_id": 3, "error_code": "server-unavailable"}, ...]
    failed_tokens = Column(JSON, nullable=True)
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", backref="queued_notifications")
