"""
Schedule models
"""
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4


class ScheduleType(str, Enum):
    """Recurrence kind"""
    CRON = "cron"
    INTERVAL = "interval"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class IntervalUnit(str, Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


class LastExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    NONE = "none"


class FiringOutcome(str, Enum):
    """What a single trigger firing ended up doing"""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED_MISSING = "skipped_missing"
    SKIPPED_DISABLED = "skipped_disabled"
    SKIPPED_RUNNING = "skipped_running"
    EXPIRED = "expired"
    ERROR = "error"


# Fields the scheduler owns; everything else belongs to the API callers.
RUNTIME_FIELDS = (
    "enabled",
    "paused_reason",
    "next_execution_at",
    "last_executed_at",
    "last_execution_status",
    "execution_count",
    "consecutive_failures",
    "is_currently_running",
    "current_execution_id",
    "running_since",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Schedule:
    """Persisted recurrence definition attached to a flow"""
    flow_id: str
    schedule_type: ScheduleType
    id: str = field(default_factory=lambda: str(uuid4()))
    user_id: Optional[str] = None
    name: Optional[str] = None

    # type-specific definition
    cron_expression: Optional[str] = None
    interval_value: Optional[int] = None
    interval_unit: Optional[IntervalUnit] = None
    time: Optional[str] = None  # "HH:MM"
    days_of_week: List[int] = field(default_factory=list)  # 0 = Sunday
    day_of_month: Optional[int] = None
    timezone: str = "UTC"

    enabled: bool = True
    input_data: Dict[str, Any] = field(default_factory=dict)
    max_executions: Optional[int] = None
    expires_at: Optional[datetime] = None

    # runtime state
    next_execution_at: Optional[datetime] = None
    last_executed_at: Optional[datetime] = None
    last_execution_status: LastExecutionStatus = LastExecutionStatus.NONE
    execution_count: int = 0
    consecutive_failures: int = 0
    is_currently_running: bool = False
    current_execution_id: Optional[str] = None
    running_since: Optional[datetime] = None
    paused_reason: Optional[str] = None

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        # Raw strings from storage or YAML are coerced; unknown values are left
        # as-is and reported by the cron translator as validation errors.
        try:
            self.schedule_type = ScheduleType(self.schedule_type)
        except ValueError:
            pass
        if self.interval_unit is not None:
            try:
                self.interval_unit = IntervalUnit(self.interval_unit)
            except ValueError:
                pass
        if not isinstance(self.last_execution_status, LastExecutionStatus):
            self.last_execution_status = LastExecutionStatus(self.last_execution_status or "none")

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def runtime_state(self) -> Dict[str, Any]:
        """Snapshot of the scheduler-owned fields"""
        return {name: getattr(self, name) for name in RUNTIME_FIELDS}

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            result[f.name] = value
        return result
