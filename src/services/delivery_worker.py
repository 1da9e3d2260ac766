"""Background delivery of queued push notifications."""

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import case
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.delivery_log import DeliveryLogEntry
from src.models.device_token import DeviceToken
from src.models.enums import NotificationPriority, NotificationStatus
from src.models.notification_queue import NotificationQueueItem
from src.services.device_registry import DeviceTokenRegistry
from src.services.preferences import PreferenceStore
from src.services.push_gateway import INTERNAL_ERROR, GatewayResult, PushGateway
from src.services.push_payloads import build_push_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceOutcome:
    """Result of one send attempt for one device."""

    device_id: int
    device_token: str
    result: GatewayResult


class DeliveryWorker:
    """Polls the queue and fans each notification out to the user's devices.

    Only one cycle runs at a time per worker; a tick that arrives while a
    cycle is still running returns immediately. Rows are claimed with
    SKIP LOCKED so separate worker processes never share an item.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        gateway: PushGateway,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.settings = settings or get_settings()
        self._busy = threading.Lock()

    def run_cycle(self, now: datetime | None = None) -> dict[str, Any]:
        """Process one batch of due notifications."""
        if not self._busy.acquire(blocking=False):
            logger.debug("Delivery cycle already running, skipping tick")
            return {"skipped": True}

        try:
            return self._run_cycle(now or datetime.now(UTC))
        finally:
            self._busy.release()

    def _run_cycle(self, now: datetime) -> dict[str, Any]:
        stats = {"processed": 0, "sent": 0, "failed": 0, "cancelled": 0, "errors": 0}
        db = self.session_factory()
        try:
            priority_rank = case(
                (NotificationQueueItem.priority == NotificationPriority.HIGH, 0), else_=1
            )
            items = (
                db.query(NotificationQueueItem)
                .filter(
                    NotificationQueueItem.status == NotificationStatus.PENDING,
                    NotificationQueueItem.scheduled_for <= now,
                )
                .order_by(
                    priority_rank,
                    NotificationQueueItem.created_at.asc(),
                    NotificationQueueItem.id.asc(),
                )
                .limit(self.settings.push_batch_size)
                .with_for_update(skip_locked=True)
                .all()
            )

            # Claim the whole batch before the row locks are released.
            for item in items:
                item.status = NotificationStatus.PROCESSING
            db.commit()

            for item in items:
                item_id = item.id
                try:
                    status = self.deliver(db, item, now=now)
                    stats[status.value] += 1
                except Exception as e:
                    stats["errors"] += 1
                    logger.error(f"Failed to deliver notification {item_id}: {e}", exc_info=True)
                    db.rollback()
                    self._mark_failed(db, item_id, str(e), now)
                stats["processed"] += 1

            if items:
                logger.info(f"Delivery cycle complete: {stats}")
            return stats

        finally:
            db.close()

    def _mark_failed(self, db: Session, item_id: int, error: str, now: datetime) -> None:
        try:
            db.query(NotificationQueueItem).filter(NotificationQueueItem.id == item_id).update(
                {
                    NotificationQueueItem.status: NotificationStatus.FAILED,
                    NotificationQueueItem.retry_count: NotificationQueueItem.retry_count + 1,
                    NotificationQueueItem.last_error: error[:1000],
                    NotificationQueueItem.processed_at: now,
                },
                synchronize_session=False,
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.error(f"Could not mark notification {item_id} as failed", exc_info=True)

    def deliver(
        self, db: Session, item: NotificationQueueItem, now: datetime | None = None
    ) -> NotificationStatus:
        """Deliver one queued notification to every active device of its user."""
        now = now or datetime.now(UTC)

        if item.status != NotificationStatus.PROCESSING:
            item.status = NotificationStatus.PROCESSING
            db.commit()

        registry = DeviceTokenRegistry(db)
        devices = registry.active_tokens_for(item.user_id)

        if not devices:
            item.status = NotificationStatus.CANCELLED
            item.last_error = "No active device tokens"
            item.processed_at = now
            db.commit()
            logger.info(f"Cancelled notification {item.id}: no active devices")
            return NotificationStatus.CANCELLED

        prefs = PreferenceStore(db).effective_preferences(
            item.user_id, item.workspace_id, item.thread_id, now=now
        )
        payloads = [(device, build_push_payload(item, device, prefs)) for device in devices]

        outcomes = asyncio.run(self._fan_out(payloads))

        success_count = 0
        failed_tokens = []
        for outcome in outcomes:
            result = outcome.result
            db.add(
                DeliveryLogEntry(
                    queue_id=item.id,
                    user_id=item.user_id,
                    device_token_id=outcome.device_id,
                    success=result.success,
                    gateway_message_id=result.message_id,
                    error_code=result.error_code,
                    error_message=result.error_message,
                )
            )

            if result.success:
                success_count += 1
                continue

            failed_tokens.append(
                {"device_token_id": outcome.device_id, "error_code": result.error_code}
            )
            if result.is_permanent_failure:
                registry.deactivate(outcome.device_id)

        item.failed_tokens = failed_tokens
        item.processed_at = now

        if success_count > 0:
            item.status = NotificationStatus.SENT
            item.sent_at = now
            logger.info(
                f"Sent notification {item.id} to {success_count}/{len(devices)} device(s) "
                f"for user {item.user_id}"
            )
        else:
            item.status = NotificationStatus.FAILED
            item.retry_count = (item.retry_count or 0) + 1
            item.last_error = "All device tokens failed"
            logger.warning(f"Notification {item.id} failed on all {len(devices)} device(s)")

        db.commit()
        return NotificationStatus(item.status)

    async def _fan_out(
        self, payloads: list[tuple[DeviceToken, dict[str, Any]]]
    ) -> list[DeviceOutcome]:
        """Send to every device with at most `push_max_concurrent_sends` in flight."""
        semaphore = asyncio.Semaphore(self.settings.push_max_concurrent_sends)

        async def send_one(device_id: int, device_token: str, payload: dict) -> DeviceOutcome:
            async with semaphore:
                try:
                    result = await asyncio.to_thread(self.gateway.send, payload)
                except Exception as e:
                    logger.error(f"Push gateway error for device {device_id}: {e}", exc_info=True)
                    result = GatewayResult.failed(INTERNAL_ERROR, str(e))
                return DeviceOutcome(device_id, device_token, result)

        return await asyncio.gather(
            *(send_one(device.id, device.device_token, payload) for device, payload in payloads)
        )
