"""Storage and repository interfaces"""

from .repository import (
    ScheduleRepository,
    FlowRepository,
    ExecutionRepository,
    InMemoryScheduleRepository,
    InMemoryFlowRepository,
    InMemoryExecutionRepository
)

__all__ = [
    "ScheduleRepository",
    "FlowRepository",
    "ExecutionRepository",
    "InMemoryScheduleRepository",
    "InMemoryFlowRepository",
    "InMemoryExecutionRepository"
]
