"""
Flow execution models
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Flow execution status"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class NodeExecutionStatus(str, Enum):
    """Node execution status"""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class TriggerSource(str, Enum):
    """Who started the run"""
    MANUAL = "manual"
    SCHEDULE = "schedule"


@dataclass
class ExecutionContext:
    """Context handed to every node method of one run"""
    flow_id: str
    execution_id: str
    user_id: Optional[str] = None
    triggered_by: TriggerSource = TriggerSource.MANUAL
    schedule_id: Optional[str] = None
    inputs: Dict[str, Any] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_node_output(self, node_id: str) -> Optional[Any]:
        return self.outputs.get(node_id)

    def set_node_output(self, node_id: str, output: Any):
        self.outputs[node_id] = output


@dataclass
class NodeExecution:
    """One node's run inside an execution"""
    node_id: str
    status: NodeExecutionStatus = NodeExecutionStatus.RUNNING
    output: Any = None
    error_info: Optional[Dict[str, Any]] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[float] = None

    def start(self):
        self.status = NodeExecutionStatus.RUNNING
        self.start_time = _utcnow()

    def complete(self, output: Any):
        self.status = NodeExecutionStatus.SUCCESS
        self.output = output
        self._finish()

    def fail(self, error: Exception):
        self.status = NodeExecutionStatus.FAILED
        self.error_info = {
            "type": type(error).__name__,
            "message": str(error),
        }
        self._finish()

    def _finish(self):
        self.end_time = _utcnow()
        if self.start_time:
            self.duration = (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "status": self.status.value,
            "error_info": self.error_info,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
        }


@dataclass
class Execution:
    """Persisted outcome of one run of a flow"""
    id: str = field(default_factory=lambda: str(uuid4()))
    flow_id: str = ""
    user_id: Optional[str] = None
    triggered_by: TriggerSource = TriggerSource.MANUAL
    schedule_id: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    inputs: Dict[str, Any] = field(default_factory=dict)
    results: Dict[str, Any] = field(default_factory=dict)
    node_executions: Dict[str, NodeExecution] = field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None
    nodes_executed: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[float] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def start(self):
        self.status = ExecutionStatus.RUNNING
        self.start_time = _utcnow()
        self.updated_at = self.start_time

    def complete(self):
        self.status = ExecutionStatus.SUCCESS
        self._finish()

    def fail(self, error: Dict[str, Any]):
        self.status = ExecutionStatus.FAILED
        self.error = error
        self._finish()

    def _finish(self):
        self.end_time = _utcnow()
        if self.start_time:
            self.duration = (self.end_time - self.start_time).total_seconds()
        self.updated_at = self.end_time

    def record_result(self, node_id: str, output: Any):
        self.results[node_id] = output
        self.nodes_executed = len(self.results)

    def create_node_execution(self, node_id: str) -> NodeExecution:
        node_execution = NodeExecution(node_id=node_id)
        self.node_executions[node_id] = node_execution
        return node_execution

    def is_terminal_state(self) -> bool:
        return self.status in (ExecutionStatus.SUCCESS, ExecutionStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "flow_id": self.flow_id,
            "user_id": self.user_id,
            "triggered_by": self.triggered_by.value,
            "schedule_id": self.schedule_id,
            "status": self.status.value,
            "inputs": self.inputs,
            "results": self.results,
            "node_executions": {k: v.to_dict() for k, v in self.node_executions.items()},
            "error": self.error,
            "nodes_executed": self.nodes_executed,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
        }
