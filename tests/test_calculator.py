"""
Next execution calculation tests
"""
from datetime import datetime, timezone

import pytest

from flowforge.exceptions import ScheduleValidationError
from flowforge.models.schedule import Schedule, ScheduleType
from flowforge.scheduling.calculator import calculate_next_execution, next_cron_time


NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)  # Monday


def test_interval_minutes_next_slot():
    schedule = Schedule(flow_id="f", schedule_type="interval", interval_value=15, interval_unit="minutes")
    now = datetime(2024, 1, 15, 12, 7, tzinfo=timezone.utc)
    assert calculate_next_execution(schedule, now) == datetime(2024, 1, 15, 12, 15, tzinfo=timezone.utc)


def test_result_is_strictly_after_now():
    schedule = Schedule(flow_id="f", schedule_type="interval", interval_value=15, interval_unit="minutes")
    now = datetime(2024, 1, 15, 12, 15, tzinfo=timezone.utc)
    assert calculate_next_execution(schedule, now) == datetime(2024, 1, 15, 12, 30, tzinfo=timezone.utc)


def test_weekly_skips_to_next_listed_day():
    schedule = Schedule(flow_id="f", schedule_type=ScheduleType.WEEKLY, time="09:30", days_of_week=[1, 3, 5])
    # Monday 12:00 is past Monday's 09:30, so Wednesday is next
    assert calculate_next_execution(schedule, NOW) == datetime(2024, 1, 17, 9, 30, tzinfo=timezone.utc)


def test_monthly_rolls_into_next_month():
    schedule = Schedule(flow_id="f", schedule_type=ScheduleType.MONTHLY, time="00:05", day_of_month=1)
    assert calculate_next_execution(schedule, NOW) == datetime(2024, 2, 1, 0, 5, tzinfo=timezone.utc)


def test_daily_is_evaluated_in_schedule_timezone():
    schedule = Schedule(
        flow_id="f", schedule_type=ScheduleType.DAILY, time="09:30", timezone="America/New_York"
    )
    # 12:00 UTC is 07:00 in New York (EST, UTC-5)
    result = calculate_next_execution(schedule, NOW)
    assert result == datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)
    assert result.tzinfo == timezone.utc


def test_deterministic_for_same_input():
    schedule = Schedule(flow_id="f", schedule_type=ScheduleType.DAILY, time="18:00", timezone="Asia/Tokyo")
    assert calculate_next_execution(schedule, NOW) == calculate_next_execution(schedule, NOW)


def test_naive_reference_is_treated_as_utc():
    assert next_cron_time("0 * * * *", datetime(2024, 1, 15, 12, 30)) == datetime(
        2024, 1, 15, 13, 0, tzinfo=timezone.utc
    )


def test_unknown_timezone():
    schedule = Schedule(flow_id="f", schedule_type=ScheduleType.DAILY, time="09:00", timezone="Mars/Olympus")
    with pytest.raises(ScheduleValidationError, match="Unknown timezone"):
        calculate_next_execution(schedule, NOW)
