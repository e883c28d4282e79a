"""Flow, schedule and execution models"""

from .flow import Flow, Node, Edge
from .schedule import (
    Schedule, ScheduleType, IntervalUnit, LastExecutionStatus,
    FiringOutcome, RUNTIME_FIELDS
)
from .execution import (
    Execution, NodeExecution, ExecutionContext,
    ExecutionStatus, NodeExecutionStatus, TriggerSource
)

__all__ = [
    "Flow",
    "Node",
    "Edge",
    "Schedule",
    "ScheduleType",
    "IntervalUnit",
    "LastExecutionStatus",
    "FiringOutcome",
    "RUNTIME_FIELDS",
    "Execution",
    "NodeExecution",
    "ExecutionContext",
    "ExecutionStatus",
    "NodeExecutionStatus",
    "TriggerSource"
]
