"""
Dynamic input template resolution

Input templates may embed time-relative tokens that are resolved every time a
schedule fires::

    {"date": "{{today}}"}                 -> "2024-01-15"
    {"from": "{{today - 10 days}}"}       -> "2024-01-05"
    {"since": "{{lastExecution}}"}        -> "2024-01-14T09:30:00+00:00"
    {"month": "{{startOfMonth | %Y/%m}}"} -> "2024/01"

Grammar: ``{{ reference [ (+|-) N unit ] [ | strftime-format ] }}``.
Tokens with an unknown reference or unit are left untouched.
"""
import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

from dateutil.relativedelta import relativedelta

from .calculator import get_zone


logger = logging.getLogger(__name__)


TOKEN_PATTERN = re.compile(
    r"\{\{\s*"
    r"(?P<ref>[A-Za-z_]+)"
    r"(?:\s*(?P<sign>[+-])\s*(?P<amount>\d+)\s*(?P<unit>[A-Za-z]+))?"
    r"\s*(?:\|\s*(?P<format>[^}]*?))?"
    r"\s*\}\}"
)

# output granularity of a reference
_DATE = "date"
_INSTANT = "instant"

_UNITS = {
    "minute": "minutes",
    "minutes": "minutes",
    "min": "minutes",
    "mins": "minutes",
    "hour": "hours",
    "hours": "hours",
    "day": "days",
    "days": "days",
    "week": "weeks",
    "weeks": "weeks",
    "month": "months",
    "months": "months",
    "year": "years",
    "years": "years",
}


def _midnight(day: date, tz) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def _reference(name: str, now: datetime, last_execution: Optional[datetime]):
    """Return (granularity, instant) for a reference name, or None if unknown"""
    tz = now.tzinfo
    today = now.date()
    key = name.lower().replace("_", "")

    if key == "today":
        return _DATE, _midnight(today, tz)
    if key == "yesterday":
        return _DATE, _midnight(today - timedelta(days=1), tz)
    if key == "tomorrow":
        return _DATE, _midnight(today + timedelta(days=1), tz)
    if key == "now":
        return _INSTANT, now
    if key == "lastexecution":
        if last_execution is None:
            return _INSTANT, now
        return _INSTANT, last_execution
    if key == "startofweek":
        return _DATE, _midnight(today - timedelta(days=today.weekday()), tz)
    if key == "startofmonth":
        return _DATE, _midnight(today.replace(day=1), tz)
    if key == "endofmonth":
        first_of_next = today.replace(day=1) + relativedelta(months=1)
        return _DATE, _midnight(first_of_next - timedelta(days=1), tz)
    if key == "startofyear":
        return _DATE, _midnight(today.replace(month=1, day=1), tz)
    return None


def _format(instant: datetime, granularity: str, fmt: Optional[str]) -> str:
    if fmt:
        return instant.strftime(fmt)
    if granularity == _DATE:
        return instant.date().isoformat()
    return instant.isoformat(timespec="seconds")


def resolve_template(
    value: str,
    now: datetime,
    last_execution: Optional[datetime] = None
) -> str:
    """Substitute every recognized token in a single string"""
    def substitute(match: "re.Match") -> str:
        resolved = _reference(match.group("ref"), now, last_execution)
        if resolved is None:
            return match.group(0)
        granularity, instant = resolved

        if match.group("amount") is not None:
            unit = _UNITS.get(match.group("unit").lower())
            if unit is None:
                return match.group(0)
            amount = int(match.group("amount"))
            if match.group("sign") == "-":
                amount = -amount
            instant = instant + relativedelta(**{unit: amount})

        return _format(instant, granularity, (match.group("format") or "").strip() or None)

    return TOKEN_PATTERN.sub(substitute, value)


def resolve_dynamic_inputs(
    input_data: Optional[Mapping[str, Any]],
    context: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Resolve dynamic tokens in an input template mapping.

    Args:
        input_data: field name -> value; only string values are inspected
        context: ``timezone`` (IANA name, default UTC) and ``last_execution``
            (datetime of the previous run, or None)
        now: reference instant, defaults to the current time

    Returns:
        A new mapping; ``input_data`` is never mutated.
    """
    context = context or {}
    tz = get_zone(context.get("timezone") or "UTC")

    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now_local = now.astimezone(tz)

    last_execution = context.get("last_execution", context.get("lastExecution"))
    if last_execution is not None:
        if last_execution.tzinfo is None:
            last_execution = last_execution.replace(tzinfo=timezone.utc)
        last_execution = last_execution.astimezone(tz)

    resolved: Dict[str, Any] = {}
    for key, value in (input_data or {}).items():
        if isinstance(value, str) and "{{" in value:
            resolved[key] = resolve_template(value, now_local, last_execution)
            if resolved[key] != value:
                logger.debug(f"Resolved dynamic input {key!r}: {value!r} -> {resolved[key]!r}")
        else:
            resolved[key] = value

    return resolved
