"""
Next execution time calculation
"""
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from ..exceptions import ScheduleValidationError
from ..models.schedule import Schedule
from .cron import to_cron_expression


def get_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA timezone name, defaulting to UTC"""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise ScheduleValidationError(f"Unknown timezone: {name!r}") from None


def next_cron_time(expression: str, after: datetime, tz_name: Optional[str] = "UTC") -> datetime:
    """Next instant strictly after ``after`` matching ``expression`` in ``tz_name``, in UTC"""
    if after.tzinfo is None:
        after = after.replace(tzinfo=timezone.utc)

    local_after = after.astimezone(get_zone(tz_name))
    next_local = croniter(expression, local_after).get_next(datetime)
    return next_local.astimezone(timezone.utc)


def calculate_next_execution(schedule: Schedule, now: Optional[datetime] = None) -> datetime:
    """
    Compute the next time ``schedule`` should fire.

    Evaluates the same cron expression the live trigger uses, in the schedule's
    timezone, so the persisted "next run" always matches the trigger.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    expression = to_cron_expression(schedule)
    return next_cron_time(expression, now, schedule.timezone)
