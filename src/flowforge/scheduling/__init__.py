"""Schedule translation, timing and the scheduler service"""

from .cron import to_cron_expression, parse_time_of_day
from .calculator import calculate_next_execution, next_cron_time
from .dynamic_inputs import resolve_dynamic_inputs
from .trigger import (
    TriggerHandle, TriggerFactory, AsyncioCronTrigger, AsyncioTriggerFactory
)
from .service import SchedulerService

__all__ = [
    "to_cron_expression",
    "parse_time_of_day",
    "calculate_next_execution",
    "next_cron_time",
    "resolve_dynamic_inputs",
    "TriggerHandle",
    "TriggerFactory",
    "AsyncioCronTrigger",
    "AsyncioTriggerFactory",
    "SchedulerService"
]
