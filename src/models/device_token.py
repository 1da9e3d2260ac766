"""Device token model for push-capable client installs."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.enums import DevicePlatform
from src.models.mixins import TimestampMixin


class DeviceToken(Base, TimestampMixin):
    """One installed client that can receive push notifications."""

    __tablename__ = "user_device_tokens"
    __table_args__ = (UniqueConstraint("user_id", "device_token", name="uq_user_device_token"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    device_token = Column(String(500), nullable=False, index=True)
    platform = Column(
        Enum(
            DevicePlatform,
            name="deviceplatform",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    device_info = Column(JSON, nullable=True)  # {"model": "iPhone15,2", "app_version": "2.4.0"}
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    last_used_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    user = relationship("User", backref="device_tokens")
