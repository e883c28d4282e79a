"""
Schedule definition to cron expression translation
"""
from typing import Tuple

from croniter import croniter

from ..exceptions import ScheduleValidationError
from ..models.schedule import IntervalUnit, Schedule, ScheduleType


def parse_time_of_day(value: str) -> Tuple[int, int]:
    """Parse "HH:MM" into (hour, minute)"""
    if not value or ":" not in str(value):
        raise ScheduleValidationError(f"Invalid time of day: {value!r} (expected HH:MM)")

    hour_text, minute_text = str(value).split(":", 1)
    try:
        hour, minute = int(hour_text), int(minute_text)
    except ValueError:
        raise ScheduleValidationError(f"Invalid time of day: {value!r} (expected HH:MM)") from None

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ScheduleValidationError(f"Time of day out of range: {value!r}")

    return hour, minute


def _positive(value, label: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ScheduleValidationError(f"{label} must be an integer, got {value!r}") from None
    if number < 1:
        raise ScheduleValidationError(f"{label} must be positive, got {number}")
    return number


def to_cron_expression(schedule: Schedule) -> str:
    """
    Translate a schedule definition into a five-field cron expression.

    interval(days=N) maps to day-of-month ``*/N``, which restarts on the 1st of
    every month rather than counting elapsed days.
    """
    schedule_type = schedule.schedule_type

    if schedule_type == ScheduleType.CRON:
        expression = (schedule.cron_expression or "").strip()
        if not expression or not croniter.is_valid(expression):
            raise ScheduleValidationError(f"Invalid cron expression: {schedule.cron_expression!r}")
        # stored expression is returned unmodified
        return schedule.cron_expression

    if schedule_type == ScheduleType.INTERVAL:
        unit = schedule.interval_unit
        value = _positive(schedule.interval_value, "interval_value")

        if unit == IntervalUnit.MINUTES:
            return f"*/{value} * * * *"
        if unit == IntervalUnit.HOURS:
            return f"0 */{value} * * *"
        if unit == IntervalUnit.DAYS:
            return f"0 0 */{value} * *"

        raise ScheduleValidationError(f"Unknown interval unit: {unit}")

    if schedule_type == ScheduleType.DAILY:
        hour, minute = parse_time_of_day(schedule.time)
        return f"{minute} {hour} * * *"

    if schedule_type == ScheduleType.WEEKLY:
        hour, minute = parse_time_of_day(schedule.time)
        if not schedule.days_of_week:
            raise ScheduleValidationError("Weekly schedules need at least one day of week")
        days = []
        for day in schedule.days_of_week:
            if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
                raise ScheduleValidationError(f"Invalid day of week: {day!r} (expected 0-6)")
            days.append(str(day))
        return f"{minute} {hour} * * {','.join(days)}"

    if schedule_type == ScheduleType.MONTHLY:
        hour, minute = parse_time_of_day(schedule.time)
        day = _positive(schedule.day_of_month, "day_of_month")
        if day > 31:
            raise ScheduleValidationError(f"day_of_month out of range: {day}")
        return f"{minute} {hour} {day} * *"

    raise ScheduleValidationError(f"Unknown schedule type: {schedule_type}")
