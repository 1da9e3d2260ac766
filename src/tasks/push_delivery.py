"""Celery tasks for push notification delivery and cleanup."""

import logging

from src.celery_app import app as celery_app
from src.database import SessionLocal
from src.services.delivery_worker import DeliveryWorker
from src.services.push_gateway import get_push_gateway
from src.services.retention import RetentionSweeper

logger = logging.getLogger(__name__)

_worker: DeliveryWorker | None = None


def get_delivery_worker() -> DeliveryWorker:
    """Get the delivery worker for this process."""
    global _worker
    if _worker is None:
        _worker = DeliveryWorker(SessionLocal, get_push_gateway())
    return _worker


@celery_app.task(name="tasks.process_notification_queue")
def process_notification_queue() -> dict:
    """Deliver one batch of pending push notifications.

    Returns:
        dict with cycle statistics, or {"skipped": True} when a cycle is
        already in progress in this process
    """
    try:
        return get_delivery_worker().run_cycle()
    except Exception as e:
        logger.error(f"Error processing notification queue: {e}", exc_info=True)
        return {"error": str(e)}


@celery_app.task(name="tasks.run_retention_sweep")
def run_retention_sweep() -> dict:
    """Prune stale tokens, expired mutes and old queue/log rows."""
    db = SessionLocal()
    try:
        return RetentionSweeper(db).sweep()
    except Exception as e:
        logger.error(f"Error running retention sweep: {e}", exc_info=True)
        db.rollback()
        return {"error": str(e)}
    finally:
        db.close()
