"""
Scheduler daemon wiring
"""
import asyncio
import logging
import signal
from dataclasses import dataclass

from .config import SchedulerSettings
from .execution.executor import FlowExecutor
from .execution.registry import MethodRegistry
from .monitoring import EventLogger, MetricsRecorder
from .scheduling.service import SchedulerService
from .storage.sqlalchemy_repository import (
    DatabaseManager,
    SQLAlchemyExecutionRepository,
    SQLAlchemyFlowRepository,
    SQLAlchemyScheduleRepository,
)


logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@dataclass
class SchedulerRuntime:
    """Everything the daemon owns"""
    db: DatabaseManager
    registry: MethodRegistry
    executor: FlowExecutor
    scheduler: SchedulerService

    async def close(self):
        await self.scheduler.shutdown()
        await self.db.close()


async def build_runtime(settings: SchedulerSettings, registry: MethodRegistry = None) -> SchedulerRuntime:
    """Open the database and assemble the scheduler around it"""
    db = DatabaseManager(settings.database_url)
    await db.initialize()

    registry = registry or MethodRegistry()
    registry.load_plugins(settings.method_modules)

    events = EventLogger()
    executor = FlowExecutor(SQLAlchemyExecutionRepository(db), registry, events)
    scheduler = SchedulerService(
        SQLAlchemyScheduleRepository(db),
        SQLAlchemyFlowRepository(db),
        executor,
        settings=settings,
        metrics=MetricsRecorder(),
        event_logger=events,
    )
    return SchedulerRuntime(db=db, registry=registry, executor=executor, scheduler=scheduler)


async def run_scheduler(settings: SchedulerSettings):
    """Run the scheduler until SIGINT/SIGTERM"""
    runtime = await build_runtime(settings)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still interrupts
            pass

    try:
        await runtime.scheduler.initialize()
        logger.info(f"Scheduler running with {len(runtime.registry.list_methods())} node method(s)")
        await stop.wait()
    finally:
        await runtime.close()
