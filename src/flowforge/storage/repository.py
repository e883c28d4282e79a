"""
Storage repository interfaces
"""
import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..models.execution import Execution
from ..models.flow import Flow
from ..models.schedule import RUNTIME_FIELDS, Schedule


class ScheduleRepository(ABC):
    """Schedule store"""

    @abstractmethod
    async def save(self, schedule: Schedule) -> str:
        """Create or fully replace a schedule"""
        pass

    @abstractmethod
    async def get(self, schedule_id: str) -> Optional[Schedule]:
        pass

    @abstractmethod
    async def list_active(self, now: datetime) -> List[Schedule]:
        """Enabled schedules that have not expired at ``now``"""
        pass

    @abstractmethod
    async def update_runtime_state(self, schedule: Schedule) -> bool:
        """Write only the scheduler-owned fields of ``schedule``"""
        pass

    @abstractmethod
    async def delete(self, schedule_id: str) -> bool:
        pass


class FlowRepository(ABC):
    """Flow store"""

    @abstractmethod
    async def save(self, flow: Flow) -> str:
        pass

    @abstractmethod
    async def get(self, flow_id: str) -> Optional[Flow]:
        pass

    @abstractmethod
    async def delete(self, flow_id: str) -> bool:
        pass


class ExecutionRepository(ABC):
    """Execution record store"""

    @abstractmethod
    async def save(self, execution: Execution) -> str:
        pass

    @abstractmethod
    async def get(self, execution_id: str) -> Optional[Execution]:
        pass

    @abstractmethod
    async def update(self, execution: Execution) -> bool:
        pass

    @abstractmethod
    async def list_by_schedule(
        self,
        schedule_id: str,
        offset: int = 0,
        limit: int = 100
    ) -> List[Execution]:
        pass


# In-memory implementations (tests, one-shot CLI runs).
# Objects are copied in and out so callers never share state with the store.

class InMemoryScheduleRepository(ScheduleRepository):
    """In-memory schedule store"""

    def __init__(self):
        self.schedules: Dict[str, Schedule] = {}

    async def save(self, schedule: Schedule) -> str:
        schedule.updated_at = datetime.now(timezone.utc)
        self.schedules[schedule.id] = copy.deepcopy(schedule)
        return schedule.id

    async def get(self, schedule_id: str) -> Optional[Schedule]:
        schedule = self.schedules.get(schedule_id)
        return copy.deepcopy(schedule) if schedule else None

    async def list_active(self, now: datetime) -> List[Schedule]:
        return [
            copy.deepcopy(schedule)
            for schedule in self.schedules.values()
            if schedule.enabled and not schedule.is_expired(now)
        ]

    async def update_runtime_state(self, schedule: Schedule) -> bool:
        stored = self.schedules.get(schedule.id)
        if stored is None:
            return False
        for name in RUNTIME_FIELDS:
            setattr(stored, name, copy.deepcopy(getattr(schedule, name)))
        stored.updated_at = datetime.now(timezone.utc)
        return True

    async def delete(self, schedule_id: str) -> bool:
        return self.schedules.pop(schedule_id, None) is not None


class InMemoryFlowRepository(FlowRepository):
    """In-memory flow store"""

    def __init__(self):
        self.flows: Dict[str, Flow] = {}

    async def save(self, flow: Flow) -> str:
        self.flows[flow.id] = copy.deepcopy(flow)
        return flow.id

    async def get(self, flow_id: str) -> Optional[Flow]:
        flow = self.flows.get(flow_id)
        return copy.deepcopy(flow) if flow else None

    async def delete(self, flow_id: str) -> bool:
        return self.flows.pop(flow_id, None) is not None


class InMemoryExecutionRepository(ExecutionRepository):
    """In-memory execution store"""

    def __init__(self):
        self.executions: Dict[str, Execution] = {}

    async def save(self, execution: Execution) -> str:
        self.executions[execution.id] = copy.deepcopy(execution)
        return execution.id

    async def get(self, execution_id: str) -> Optional[Execution]:
        execution = self.executions.get(execution_id)
        return copy.deepcopy(execution) if execution else None

    async def update(self, execution: Execution) -> bool:
        if execution.id not in self.executions:
            return False
        execution.updated_at = datetime.now(timezone.utc)
        self.executions[execution.id] = copy.deepcopy(execution)
        return True

    async def list_by_schedule(
        self,
        schedule_id: str,
        offset: int = 0,
        limit: int = 100
    ) -> List[Execution]:
        results = [
            copy.deepcopy(execution)
            for execution in self.executions.values()
            if execution.schedule_id == schedule_id
        ]
        results.sort(key=lambda e: e.created_at)
        return results[offset:offset + limit]
