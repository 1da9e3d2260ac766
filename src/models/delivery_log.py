"""Per-device delivery attempt log."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func

from src.database import Base


class DeliveryLogEntry(Base):
    """Outcome of one send attempt to one device. Rows are never updated."""

    __tablename__ = "push_notification_log"

    id = Column(Integer, primary_key=True, index=True)
    # Queue rows are purged before log rows, so the reference is allowed to go null.
    queue_id = Column(
        Integer,
        ForeignKey("push_notification_queue.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    device_token_id = Column(
        Integer,
        ForeignKey("user_device_tokens.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    success = Column(Boolean, nullable=False)
    gateway_message_id = Column(String(255), nullable=True)
    error_code = Column(String(100), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
