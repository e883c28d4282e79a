"""
FlowForge exception definitions
"""
from typing import Any, Dict, Optional


class FlowForgeError(Exception):
    """Base exception for the scheduling and orchestration engine"""
    pass


class ScheduleValidationError(FlowForgeError):
    """Schedule definition cannot be turned into a trigger"""
    pass


class NotFoundError(FlowForgeError):
    """Referenced entity does not exist"""
    pass


class ScheduleNotFoundError(NotFoundError):
    """Schedule not found"""
    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Schedule not found: {schedule_id}")


class FlowNotFoundError(NotFoundError):
    """Flow not found"""
    def __init__(self, flow_id: str):
        self.flow_id = flow_id
        super().__init__(f"Flow not found: {flow_id}")


class ScheduleNotRegisteredError(NotFoundError):
    """No live trigger exists for the schedule"""
    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Schedule {schedule_id} has no live trigger")


class GraphError(FlowForgeError):
    """Flow graph is not a valid DAG"""
    def __init__(self, flow_id: str, message: str, execution: Any = None):
        self.flow_id = flow_id
        self.execution = execution
        super().__init__(f"Flow '{flow_id}' graph error: {message}")


class FlowExecutionError(FlowForgeError):
    """A flow run failed; carries the finalized execution record"""
    def __init__(self, message: str, execution: Any = None, cause: Optional[Exception] = None):
        self.execution = execution
        self.cause = cause
        super().__init__(message)


class NodeExecutionError(FlowExecutionError):
    """Node method raised while running"""
    def __init__(self, node_id: str, message: str, cause: Exception = None):
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' execution failed: {message}", cause=cause)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "type": type(self.cause).__name__ if self.cause else type(self).__name__,
            "message": str(self),
        }


class MethodResolutionError(NodeExecutionError):
    """No method registered for a node's (type, function) pair"""
    def __init__(self, node_type: str, function_id: str, node_id: str = None, cause: Exception = None):
        self.node_type = node_type
        self.function_id = function_id
        if cause is None:
            message = f"No method registered for ({node_type!r}, {function_id!r})"
        else:
            message = f"Loading method ({node_type!r}, {function_id!r}) failed: {cause}"
        super().__init__(node_id or "<unbound>", message, cause)
