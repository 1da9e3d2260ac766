"""Time-of-day window checks for do-not-disturb and quiet hours."""

import logging
from datetime import UTC, datetime, time
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

if TYPE_CHECKING:
    from src.services.preferences import EffectivePreferences

logger = logging.getLogger(__name__)

SATURDAY = 5
SUNDAY = 6


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Get a timezone by name, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using UTC")
        return ZoneInfo("UTC")


def minutes_since_midnight(value: time) -> int:
    """Convert a time of day to minutes since midnight."""
    return value.hour * 60 + value.minute


def is_within_window(now_minutes: int, start_minutes: int, end_minutes: int) -> bool:
    """Check whether a minute of the day falls inside [start, end).

    A window whose start is after its end wraps midnight (e.g., 22:00-08:00).
    """
    if start_minutes > end_minutes:
        return now_minutes >= start_minutes or now_minutes < end_minutes
    return start_minutes <= now_minutes < end_minutes


def in_time_window(
    now: datetime,
    start: time | None,
    end: time | None,
    timezone: str | None,
    weekends_only: bool = False,
) -> bool:
    """Check whether `now` is inside a daily window in the given timezone."""
    if start is None or end is None:
        return False

    local_now = as_utc(now).astimezone(resolve_timezone(timezone))

    if weekends_only and local_now.weekday() not in (SATURDAY, SUNDAY):
        return False

    return is_within_window(
        minutes_since_midnight(local_now.time()),
        minutes_since_midnight(start),
        minutes_since_midnight(end),
    )


def in_dnd_window(prefs: "EffectivePreferences", now: datetime) -> bool:
    """Check if do-not-disturb is active, either snoozed or by schedule."""
    dnd_until = as_utc(prefs.dnd_until)
    if dnd_until is not None and as_utc(now) < dnd_until:
        return True

    if not prefs.dnd_enabled:
        return False

    return in_time_window(now, prefs.dnd_start_time, prefs.dnd_end_time, prefs.dnd_timezone)


def in_quiet_hours(prefs: "EffectivePreferences", now: datetime) -> bool:
    """Check if quiet hours are active."""
    if not prefs.quiet_hours_enabled:
        return False

    return in_time_window(
        now,
        prefs.quiet_hours_start,
        prefs.quiet_hours_end,
        prefs.quiet_hours_timezone,
        weekends_only=bool(prefs.quiet_hours_weekends_only),
    )
