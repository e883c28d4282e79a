"""
FlowForge - flow scheduling and orchestration engine
"""

__version__ = "0.1.0"

from .execution.executor import FlowExecutor
from .execution.registry import MethodRegistry, NodeCall
from .scheduling.service import SchedulerService
from .models.flow import Flow, Node, Edge
from .models.schedule import Schedule, FiringOutcome
from .models.execution import Execution

__all__ = [
    "FlowExecutor",
    "MethodRegistry",
    "NodeCall",
    "SchedulerService",
    "Flow",
    "Node",
    "Edge",
    "Schedule",
    "FiringOutcome",
    "Execution"
]
