"""
SQLAlchemy repository tests (SQLite via aiosqlite)
"""
from datetime import datetime, timedelta, timezone

import pytest

from flowforge.execution.executor import FlowExecutor
from flowforge.models.execution import Execution, ExecutionStatus, TriggerSource
from flowforge.models.flow import Flow
from flowforge.models.schedule import FiringOutcome, LastExecutionStatus, Schedule, ScheduleType
from flowforge.scheduling.service import SchedulerService
from flowforge.storage.sqlalchemy_repository import (
    SQLAlchemyExecutionRepository,
    SQLAlchemyFlowRepository,
    SQLAlchemyScheduleRepository,
)


NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def _flow() -> Flow:
    return Flow.from_dict({
        "id": "flow-1",
        "name": "Daily report",
        "user_id": "owner",
        "nodes": [
            {"id": "a", "type": "test", "function_id": "echo", "data": {"url": "https://example.com"}},
            {"id": "b", "type": "test", "function_id": "echo"},
        ],
        "edges": [{"source": "a", "target": "b"}],
        "metadata": {"team": "data"},
    })


@pytest.mark.asyncio
async def test_flow_round_trip(db_manager):
    repo = SQLAlchemyFlowRepository(db_manager)
    flow = _flow()

    await repo.save(flow)
    loaded = await repo.get("flow-1")

    assert loaded == flow
    assert await repo.get("missing") is None
    assert await repo.delete("flow-1") is True
    assert await repo.get("flow-1") is None


@pytest.mark.asyncio
async def test_schedule_save_and_get(db_manager):
    await SQLAlchemyFlowRepository(db_manager).save(_flow())
    repo = SQLAlchemyScheduleRepository(db_manager)
    schedule = Schedule(
        flow_id="flow-1",
        schedule_type=ScheduleType.WEEKLY,
        time="09:30",
        days_of_week=[1, 3, 5],
        timezone="America/New_York",
        input_data={"from": "{{today - 10 days}}"},
        expires_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        next_execution_at=datetime(2024, 1, 17, 14, 30, tzinfo=timezone.utc),
    )

    await repo.save(schedule)
    loaded = await repo.get(schedule.id)

    assert loaded.schedule_type == ScheduleType.WEEKLY
    assert loaded.days_of_week == [1, 3, 5]
    assert loaded.timezone == "America/New_York"
    assert loaded.input_data == {"from": "{{today - 10 days}}"}
    assert loaded.expires_at == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert loaded.next_execution_at == schedule.next_execution_at
    assert loaded.next_execution_at.tzinfo is not None
    assert loaded.last_execution_status == LastExecutionStatus.NONE


@pytest.mark.asyncio
async def test_list_active_filters_disabled_and_expired(db_manager):
    repo = SQLAlchemyScheduleRepository(db_manager)
    active = Schedule(flow_id="flow-1", schedule_type="daily", time="08:00")
    disabled = Schedule(flow_id="flow-1", schedule_type="daily", time="08:00", enabled=False)
    expired = Schedule(
        flow_id="flow-1", schedule_type="daily", time="08:00", expires_at=NOW - timedelta(hours=1)
    )
    for schedule in (active, disabled, expired):
        await repo.save(schedule)

    assert [s.id for s in await repo.list_active(NOW)] == [active.id]


@pytest.mark.asyncio
async def test_update_runtime_state_only_touches_runtime_fields(db_manager):
    repo = SQLAlchemyScheduleRepository(db_manager)
    schedule = Schedule(flow_id="flow-1", schedule_type="daily", time="08:00", name="original")
    await repo.save(schedule)

    schedule.name = "edited locally"
    schedule.is_currently_running = True
    schedule.current_execution_id = "exec-1"
    schedule.running_since = NOW
    schedule.consecutive_failures = 2
    schedule.last_execution_status = LastExecutionStatus.FAILED

    assert await repo.update_runtime_state(schedule) is True

    loaded = await repo.get(schedule.id)
    assert loaded.name == "original"
    assert loaded.is_currently_running is True
    assert loaded.current_execution_id == "exec-1"
    assert loaded.running_since == NOW
    assert loaded.consecutive_failures == 2
    assert loaded.last_execution_status == LastExecutionStatus.FAILED

    assert await repo.update_runtime_state(Schedule(flow_id="x", schedule_type="daily")) is False


@pytest.mark.asyncio
async def test_execution_save_update_and_list(db_manager):
    repo = SQLAlchemyExecutionRepository(db_manager)
    execution = Execution(
        flow_id="flow-1",
        triggered_by=TriggerSource.SCHEDULE,
        schedule_id="sched-1",
        inputs={"date": "2024-01-15"},
    )
    execution.start()
    await repo.save(execution)

    node_execution = execution.create_node_execution("a")
    node_execution.start()
    node_execution.complete({"rows": 3})
    execution.record_result("a", {"rows": 3})
    execution.complete()
    assert await repo.update(execution) is True

    loaded = await repo.get(execution.id)
    assert loaded.status == ExecutionStatus.SUCCESS
    assert loaded.triggered_by == TriggerSource.SCHEDULE
    assert loaded.results == {"a": {"rows": 3}}
    assert loaded.nodes_executed == 1
    assert loaded.node_executions["a"].output == {"rows": 3}
    assert loaded.node_executions["a"].duration is not None

    other = Execution(flow_id="flow-1", schedule_id="sched-2")
    await repo.save(other)

    assert [e.id for e in await repo.list_by_schedule("sched-1")] == [execution.id]
    assert await repo.update(Execution(flow_id="flow-1")) is False


@pytest.mark.asyncio
async def test_scheduler_end_to_end(db_manager, registry, trigger_factory, clock):
    schedules = SQLAlchemyScheduleRepository(db_manager)
    flows = SQLAlchemyFlowRepository(db_manager)
    executions = SQLAlchemyExecutionRepository(db_manager)
    scheduler = SchedulerService(
        schedules, flows, FlowExecutor(executions, registry),
        trigger_factory=trigger_factory,
        clock=clock,
    )

    await flows.save(_flow())
    schedule = Schedule(
        flow_id="flow-1",
        schedule_type=ScheduleType.INTERVAL,
        interval_value=30,
        interval_unit="minutes",
        input_data={"date": "{{today}}"},
        max_executions=1,
    )
    await schedules.save(schedule)

    await scheduler.initialize()
    assert scheduler.is_registered(schedule.id)

    assert await scheduler.fire(schedule.id) == FiringOutcome.SUCCEEDED

    stored = await schedules.get(schedule.id)
    assert stored.execution_count == 1
    assert stored.enabled is False
    assert stored.paused_reason == "Max executions reached"
    assert stored.next_execution_at == datetime(2024, 1, 15, 12, 30, tzinfo=timezone.utc)
    assert stored.is_currently_running is False

    [execution] = await executions.list_by_schedule(schedule.id)
    assert execution.status == ExecutionStatus.SUCCESS
    assert execution.results["b"]["inputs"]["date"] == "2024-01-15"
    assert execution.results["b"]["inputs"]["a"]["data"] == {"url": "https://example.com"}
