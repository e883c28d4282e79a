"""
FlowForge usage example

Builds an in-memory scheduler, registers a weekly schedule and fires it once
by hand.
"""
import asyncio
import logging

from flowforge import FlowExecutor, MethodRegistry, NodeCall, SchedulerService
from flowforge.models import Flow, Schedule, ScheduleType
from flowforge.storage import (
    InMemoryExecutionRepository, InMemoryFlowRepository, InMemoryScheduleRepository
)


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

registry = MethodRegistry()


@registry.method("source", "dates")
def report_window(call: NodeCall):
    return {"from": call.inputs["from"], "to": call.inputs["to"]}


@registry.method("transform", "summarize")
async def summarize(call: NodeCall):
    window = call.inputs["fetch"]
    return f"report {window['from']} .. {window['to']} for {call.context.user_id}"


FLOW = {
    "flow": {
        "id": "weekly-report",
        "name": "Weekly report",
        "user_id": "alice",
        "nodes": [
            {"id": "fetch", "type": "source", "function_id": "dates"},
            {"id": "summary", "type": "transform", "function_id": "summarize"},
        ],
        "edges": [{"source": "fetch", "target": "summary"}],
    }
}


async def main():
    schedules = InMemoryScheduleRepository()
    flows = InMemoryFlowRepository()
    executions = InMemoryExecutionRepository()

    flow = Flow.from_dict(FLOW)
    await flows.save(flow)

    schedule = Schedule(
        flow_id=flow.id,
        schedule_type=ScheduleType.WEEKLY,
        time="09:30",
        days_of_week=[1, 3, 5],
        timezone="Europe/Berlin",
        input_data={"from": "{{today - 7 days}}", "to": "{{today}}"},
    )
    await schedules.save(schedule)

    scheduler = SchedulerService(schedules, flows, FlowExecutor(executions, registry))
    await scheduler.initialize()
    print(scheduler.get_stats())

    outcome = await scheduler.fire(schedule.id)
    print(f"outcome: {outcome.value}")

    for execution in await executions.list_by_schedule(schedule.id):
        print(execution.status.value, execution.results)

    stored = await schedules.get(schedule.id)
    print(f"next run: {stored.next_execution_at.isoformat()}")

    await scheduler.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
