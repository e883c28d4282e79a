"""
Pytest configuration and shared fixtures
"""
from datetime import datetime, timezone
from typing import List

import pytest
import pytest_asyncio

from flowforge.config import SchedulerSettings
from flowforge.execution.executor import FlowExecutor
from flowforge.execution.registry import MethodRegistry
from flowforge.models.flow import Flow
from flowforge.monitoring import MetricsRecorder
from flowforge.scheduling.service import SchedulerService
from flowforge.scheduling.trigger import TriggerFactory, TriggerHandle
from flowforge.storage.repository import (
    InMemoryExecutionRepository,
    InMemoryFlowRepository,
    InMemoryScheduleRepository,
)
from flowforge.storage.sqlalchemy_repository import DatabaseManager


class FakeClock:
    """Settable clock"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeTrigger(TriggerHandle):
    """Trigger that only fires when told to"""

    def __init__(self, expression, tz_name, callback):
        self.expression = expression
        self.tz_name = tz_name
        self.callback = callback
        self.stopped = False

    def stop(self):
        self.stopped = True

    async def fire(self):
        return await self.callback()


class FakeTriggerFactory(TriggerFactory):
    """Records every trigger it creates"""

    def __init__(self):
        self.created: List[FakeTrigger] = []

    def create(self, expression, tz_name, callback):
        trigger = FakeTrigger(expression, tz_name, callback)
        self.created.append(trigger)
        return trigger


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def trigger_factory():
    return FakeTriggerFactory()


@pytest.fixture
def registry():
    registry = MethodRegistry()

    @registry.method("test", "echo")
    def echo(call):
        return {"inputs": dict(call.inputs), "data": dict(call.data)}

    @registry.method("test", "fail")
    def fail(call):
        raise RuntimeError("boom")

    return registry


@pytest.fixture
def schedule_repo():
    return InMemoryScheduleRepository()


@pytest.fixture
def flow_repo():
    return InMemoryFlowRepository()


@pytest.fixture
def execution_repo():
    return InMemoryExecutionRepository()


@pytest.fixture
def executor(execution_repo, registry):
    return FlowExecutor(execution_repo, registry)


@pytest.fixture
def settings():
    return SchedulerSettings()


@pytest.fixture
def scheduler(schedule_repo, flow_repo, executor, trigger_factory, settings, clock):
    return SchedulerService(
        schedule_repo,
        flow_repo,
        executor,
        trigger_factory=trigger_factory,
        settings=settings,
        clock=clock,
        metrics=MetricsRecorder(),
    )


def make_flow(flow_id: str = "flow-1", method: str = "echo", user_id: str = "user-1") -> Flow:
    """Single-node flow calling test/<method>"""
    return Flow.from_dict({
        "id": flow_id,
        "name": "Test flow",
        "user_id": user_id,
        "nodes": [{"id": "only", "type": "test", "function_id": method}],
        "edges": [],
    })


@pytest_asyncio.fixture
async def saved_flow(flow_repo):
    flow = make_flow()
    await flow_repo.save(flow)
    return flow


@pytest_asyncio.fixture
async def db_manager(tmp_path):
    """SQLite database in a temporary file"""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'flowforge.db'}")
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def flow_factory():
    return make_flow
