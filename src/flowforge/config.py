"""
Runtime configuration

Values come from the environment (``.env`` is loaded first when present).
"""
import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models.schedule import IntervalUnit, Schedule, ScheduleType


class SchedulerSettings(BaseModel):
    """Scheduler settings"""
    database_url: str = Field(
        "sqlite+aiosqlite:///./flowforge.db",
        description="SQLAlchemy async database URL"
    )
    log_level: str = Field("INFO", description="Root log level")
    max_consecutive_failures: int = Field(
        3, ge=1, description="Failures in a row before a schedule is paused"
    )
    running_lease_seconds: Optional[float] = Field(
        None, gt=0, description="Age after which a stale running flag is reclaimed; unset keeps it forever"
    )
    method_modules: List[str] = Field(
        default_factory=list, description="Modules exposing register_methods(registry)"
    )
    default_timezone: str = Field("UTC", description="Timezone for schedules that do not name one")

    @field_validator("log_level")
    @classmethod
    def upper_level(cls, value: str) -> str:
        return value.upper()


_ENV_VARS = {
    "database_url": "DATABASE_URL",
    "log_level": "LOG_LEVEL",
    "max_consecutive_failures": "FLOWFORGE_MAX_CONSECUTIVE_FAILURES",
    "running_lease_seconds": "FLOWFORGE_RUNNING_LEASE_SECONDS",
    "method_modules": "FLOWFORGE_METHOD_MODULES",
    "default_timezone": "FLOWFORGE_DEFAULT_TIMEZONE",
}


def load_settings(env_file: Optional[str] = None, **overrides: Any) -> SchedulerSettings:
    """Build settings from the environment; keyword overrides win"""
    load_dotenv(env_file)

    values: Dict[str, Any] = {}
    for name, env_var in _ENV_VARS.items():
        raw = os.getenv(env_var)
        if raw is None or raw == "":
            continue
        if name == "method_modules":
            values[name] = [m.strip() for m in raw.split(",") if m.strip()]
        else:
            values[name] = raw

    values.update({k: v for k, v in overrides.items() if v is not None})
    return SchedulerSettings(**values)


class ScheduleDefinition(BaseModel):
    """Schedule as written in a YAML/JSON definition file"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    flow_id: str = Field("", description="Flow the schedule runs")
    schedule_type: ScheduleType = Field(..., alias="type", description="Recurrence kind")
    id: Optional[str] = Field(None, description="Schedule ID")
    name: Optional[str] = Field(None, description="Display name")
    user_id: Optional[str] = Field(None, description="Owning user")
    cron_expression: Optional[str] = Field(None, alias="cron", description="5-field cron expression")
    interval_value: Optional[int] = Field(None, ge=1, description="Interval length")
    interval_unit: Optional[IntervalUnit] = Field(None, description="minutes, hours or days")
    time: Optional[str] = Field(None, description="Time of day, HH:MM")
    days_of_week: List[int] = Field(default_factory=list, description="0 = Sunday")
    day_of_month: Optional[int] = Field(None, ge=1, le=31, description="Day of month")
    timezone: Optional[str] = Field(None, description="IANA timezone name")
    enabled: bool = Field(True, description="Whether the schedule fires")
    input_data: Dict[str, Any] = Field(default_factory=dict, description="Input template")
    max_executions: Optional[int] = Field(None, ge=1, description="Stop after this many runs")

    def to_schedule(self, default_timezone: str = "UTC") -> Schedule:
        data = self.model_dump(exclude_none=True)
        data["timezone"] = self.timezone or default_timezone
        return Schedule(**data)
