"""Device token registry for push delivery."""

import logging
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from src.models.device_token import DeviceToken
from src.models.enums import DevicePlatform

logger = logging.getLogger(__name__)


class DeviceTokenRegistry:
    """Owns the set of addressable devices per user."""

    def __init__(self, db: Session):
        self.db = db

    def _find(self, user_id: int, token: str, for_update: bool = False) -> DeviceToken | None:
        query = self.db.query(DeviceToken).filter(
            DeviceToken.user_id == user_id,
            DeviceToken.device_token == token,
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def _release_from_other_users(self, user_id: int, token: str) -> None:
        """A token belongs to one user at a time; deactivate it everywhere else."""
        released = (
            self.db.query(DeviceToken)
            .filter(
                DeviceToken.device_token == token,
                DeviceToken.user_id != user_id,
                DeviceToken.is_active.is_(True),
            )
            .update({DeviceToken.is_active: False}, synchronize_session=False)
        )
        if released:
            logger.info(f"Released device token from {released} other user(s)")

    def register(
        self,
        user_id: int,
        token: str,
        platform: DevicePlatform | str,
        device_info: dict | None = None,
    ) -> DeviceToken:
        """Register a device token, or reactivate and touch an existing one."""
        platform = DevicePlatform(platform)
        now = datetime.now(UTC)

        self._release_from_other_users(user_id, token)

        device = self._find(user_id, token, for_update=True)
        if device is None:
            device = DeviceToken(user_id=user_id, device_token=token)
            self.db.add(device)

        device.platform = platform
        device.device_info = device_info or {}
        device.is_active = True
        device.last_used_at = now

        self.db.commit()
        self.db.refresh(device)
        logger.info(f"Registered device token for user {user_id} ({platform.value})")
        return device

    def unregister(self, user_id: int, token: str) -> DeviceToken | None:
        """Deactivate a token. Rows are kept for the delivery log."""
        device = self._find(user_id, token, for_update=True)
        if device is None:
            return None

        device.is_active = False
        self.db.commit()
        logger.info(f"Unregistered device token for user {user_id}")
        return device

    def refresh(
        self,
        user_id: int,
        old_token: str,
        new_token: str,
        platform: DevicePlatform | str | None = None,
    ) -> DeviceToken:
        """Replace a rotated token in place.

        If the old token is unknown the new one is registered as a fresh
        device, which heals clients that missed an unregister.
        """
        device = self._find(user_id, old_token, for_update=True)
        if device is None:
            logger.info(f"Old token not found for user {user_id}, registering new token")
            return self.register(user_id, new_token, platform or DevicePlatform.IOS)

        existing = self._find(user_id, new_token, for_update=True)
        if existing is not None and existing.id != device.id:
            # Client already registered the new token; retire the old row.
            device.is_active = False
            self.db.flush()
            return self.register(
                user_id, new_token, platform or device.platform, device.device_info
            )

        self._release_from_other_users(user_id, new_token)
        device.device_token = new_token
        if platform is not None:
            device.platform = DevicePlatform(platform)
        device.is_active = True
        device.last_used_at = datetime.now(UTC)

        self.db.commit()
        self.db.refresh(device)
        logger.info(f"Refreshed device token for user {user_id}")
        return device

    def active_tokens_for(self, user_id: int) -> list[DeviceToken]:
        """Get every active device for a user. An empty list means nothing to deliver."""
        return (
            self.db.query(DeviceToken)
            .filter(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
            .order_by(DeviceToken.id)
            .all()
        )

    def deactivate(self, token_id: int) -> None:
        """Deactivate a token the gateway reported as permanently invalid."""
        updated = (
            self.db.query(DeviceToken)
            .filter(DeviceToken.id == token_id)
            .update({DeviceToken.is_active: False}, synchronize_session="fetch")
        )
        if updated:
            logger.info(f"Deactivated invalid device token {token_id}")
