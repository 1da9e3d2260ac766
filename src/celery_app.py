"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from src.config import get_settings

settings = get_settings()

app = Celery(
    "crew_notifications",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["src.tasks.push_delivery"],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,  # 4 minutes soft limit
)

app.conf.beat_schedule = {
    "process-notification-queue": {
        "task": "tasks.process_notification_queue",
        "schedule": settings.push_poll_interval_seconds,
        # A tick older than one interval is stale; the next one will pick up the work.
        "options": {"expires": settings.push_poll_interval_seconds},
    },
    "push-retention-sweep": {
        "task": "tasks.run_retention_sweep",
        "schedule": crontab(hour=settings.retention_sweep_hour, minute=0),
    },
}
