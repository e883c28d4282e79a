"""Flow execution components"""

from .executor import FlowExecutor
from .registry import MethodRegistry, NodeCall

__all__ = [
    "FlowExecutor",
    "MethodRegistry",
    "NodeCall"
]
