"""
Scheduler service

Owns one live trigger per enabled schedule and turns every firing into a
guarded flow execution whose outcome is written back to the schedule.
"""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Set, Tuple
from uuid import uuid4

from ..config import SchedulerSettings
from ..exceptions import (
    FlowExecutionError, GraphError, ScheduleNotFoundError,
    ScheduleNotRegisteredError, ScheduleValidationError
)
from ..execution.executor import FlowExecutor
from ..models.execution import TriggerSource
from ..models.flow import Flow
from ..models.schedule import FiringOutcome, LastExecutionStatus, Schedule
from ..monitoring import EventLogger, MetricsRecorder
from ..storage.repository import FlowRepository, ScheduleRepository
from .calculator import next_cron_time
from .cron import to_cron_expression
from .dynamic_inputs import resolve_dynamic_inputs
from .trigger import AsyncioTriggerFactory, Clock, TriggerFactory, TriggerHandle, utc_clock


logger = logging.getLogger(__name__)

MAX_EXECUTIONS_REACHED = "Max executions reached"
SCHEDULE_EXPIRED = "Schedule expired"


class SchedulerService:
    """Registers schedules as live triggers and runs their flows"""

    def __init__(
        self,
        schedule_repository: ScheduleRepository,
        flow_repository: FlowRepository,
        flow_executor: FlowExecutor,
        trigger_factory: TriggerFactory = None,
        settings: SchedulerSettings = None,
        clock: Clock = utc_clock,
        metrics: MetricsRecorder = None,
        event_logger: EventLogger = None
    ):
        self.schedule_repo = schedule_repository
        self.flow_repo = flow_repository
        self.executor = flow_executor
        self.settings = settings or SchedulerSettings()
        self.clock = clock
        self.trigger_factory = trigger_factory or AsyncioTriggerFactory(clock)
        self.metrics = metrics or MetricsRecorder()
        self.events = event_logger or EventLogger()

        self.triggers: Dict[str, TriggerHandle] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = defaultdict(int)
        self._firings: Set[asyncio.Task] = set()
        self.initialized = False

    async def initialize(self):
        """Register every active schedule; calling it again is a no-op"""
        if self.initialized:
            return

        schedules = await self.schedule_repo.list_active(self.clock())
        registered = 0
        for schedule in schedules:
            try:
                flow = await self.flow_repo.get(schedule.flow_id)
                if flow is None:
                    logger.warning(f"Skipping schedule {schedule.id}: flow {schedule.flow_id} not found")
                    continue
                await self.register_schedule(schedule)
                registered += 1
            except Exception as e:
                logger.error(f"Failed to register schedule {schedule.id}: {e}", exc_info=True)

        self.initialized = True
        logger.info(f"Scheduler initialized with {registered}/{len(schedules)} active schedule(s)")

    async def shutdown(self):
        """Stop every live trigger, then wait for in-flight firings to finish"""
        handles = list(self.triggers.values())
        for schedule_id in list(self.triggers):
            self.unregister_schedule(schedule_id)
        for handle in handles:
            await handle.wait_idle()

        current = asyncio.current_task()
        pending = [task for task in self._firings if task is not current]
        if pending:
            logger.info(f"Waiting for {len(pending)} in-flight firing(s) to finish")
            await asyncio.gather(*pending, return_exceptions=True)
        self.initialized = False
        logger.info("Scheduler stopped")

    async def register_schedule(self, schedule: Schedule) -> TriggerHandle:
        """
        Create (or replace) the live trigger for a schedule.

        Raises:
            ScheduleValidationError: the schedule cannot be expressed as cron
        """
        self.unregister_schedule(schedule.id)

        expression = to_cron_expression(schedule)
        tz_name = schedule.timezone or self.settings.default_timezone

        if schedule.next_execution_at is None:
            schedule.next_execution_at = next_cron_time(expression, self.clock(), tz_name)
            await self.schedule_repo.update_runtime_state(schedule)

        schedule_id = schedule.id

        async def on_fire():
            return await self.execute_scheduled_flow(schedule_id)

        handle = self.trigger_factory.create(expression, tz_name, on_fire)
        self.triggers[schedule_id] = handle
        logger.info(f"Registered schedule {schedule_id} as '{expression}' ({tz_name})")
        return handle

    def unregister_schedule(self, schedule_id: str):
        """Stop and forget the trigger for a schedule, if any"""
        handle = self.triggers.pop(schedule_id, None)
        if handle is not None:
            handle.stop()
            logger.info(f"Unregistered schedule {schedule_id}")

    def is_registered(self, schedule_id: str) -> bool:
        return schedule_id in self.triggers

    async def fire(self, schedule_id: str):
        """
        Fire a schedule now through its live trigger.

        Raises:
            ScheduleNotRegisteredError: no trigger is registered for the id
        """
        handle = self.triggers.get(schedule_id)
        if handle is None:
            raise ScheduleNotRegisteredError(schedule_id)
        return await handle.fire()

    async def reload_schedule(self, schedule_id: str):
        """
        Re-read a schedule after an external change and apply it.

        Raises:
            ScheduleNotFoundError: the schedule no longer exists
        """
        schedule = await self.schedule_repo.get(schedule_id)
        if schedule is None:
            self.unregister_schedule(schedule_id)
            raise ScheduleNotFoundError(schedule_id)

        if schedule.enabled and not schedule.is_expired(self.clock()):
            await self.register_schedule(schedule)
        else:
            self.unregister_schedule(schedule_id)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_schedules": len(self.triggers),
            "active_schedules": list(self.triggers),
            "firings": self.metrics.snapshot("schedule_firings"),
        }

    async def execute_scheduled_flow(self, schedule_id: str) -> FiringOutcome:
        """
        Handle one firing of a schedule.

        Never raises: every problem is logged and reported through the
        returned outcome and the persisted schedule state.
        """
        task = asyncio.current_task()
        self._firings.add(task)
        try:
            outcome = await self._execute_scheduled_flow(schedule_id)
        except Exception as e:
            logger.error(f"Unexpected error while firing schedule {schedule_id}: {e}", exc_info=True)
            outcome = FiringOutcome.ERROR
        finally:
            self._firings.discard(task)

        self.metrics.inc("schedule_firings", {"outcome": outcome.value})
        self.events.log("schedule_fired", schedule_id=schedule_id, outcome=outcome.value)
        return outcome

    async def _execute_scheduled_flow(self, schedule_id: str) -> FiringOutcome:
        async with self._schedule_lock(schedule_id):
            outcome, schedule, flow = await self._claim(schedule_id)
        if outcome is not None:
            return outcome

        logger.info(f"Executing scheduled flow {flow.id} for schedule {schedule_id}")
        try:
            inputs = resolve_dynamic_inputs(
                schedule.input_data,
                {
                    "last_execution": schedule.last_executed_at,
                    "timezone": schedule.timezone or self.settings.default_timezone,
                },
                now=self.clock()
            )
            await self.executor.execute_flow(
                flow,
                inputs,
                user_id=schedule.user_id or flow.user_id,
                triggered_by=TriggerSource.SCHEDULE,
                schedule_id=schedule_id,
                execution_id=schedule.current_execution_id
            )
        except GraphError as e:
            # graph errors do not count towards the auto-pause threshold
            logger.error(f"Schedule {schedule_id} cannot run flow {flow.id}: {e}")
            await self._record_failure(schedule, e, count_failure=False)
            return FiringOutcome.FAILED
        except FlowExecutionError as e:
            logger.error(f"Schedule {schedule_id} failed: {e}")
            await self._record_failure(schedule, e)
            return FiringOutcome.FAILED
        except Exception as e:
            logger.error(f"Schedule {schedule_id} failed: {e}", exc_info=True)
            await self._record_failure(schedule, e)
            return FiringOutcome.FAILED

        await self._record_success(schedule)
        return FiringOutcome.SUCCEEDED

    @asynccontextmanager
    async def _schedule_lock(self, schedule_id: str):
        """Per-schedule claim lock, dropped once nobody holds or waits on it"""
        lock = self._locks.setdefault(schedule_id, asyncio.Lock())
        self._lock_users[schedule_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[schedule_id] -= 1
            if not self._lock_users[schedule_id]:
                del self._lock_users[schedule_id]
                del self._locks[schedule_id]

    async def _claim(
        self,
        schedule_id: str
    ) -> Tuple[Optional[FiringOutcome], Optional[Schedule], Optional[Flow]]:
        """Re-read state and mark the schedule running, or say why not"""
        now = self.clock()

        schedule = await self.schedule_repo.get(schedule_id)
        if schedule is None:
            logger.warning(f"Schedule {schedule_id} not found")
            return FiringOutcome.SKIPPED_MISSING, None, None

        if not schedule.enabled:
            logger.info(f"Schedule {schedule_id} is disabled")
            return FiringOutcome.SKIPPED_DISABLED, None, None

        flow = await self.flow_repo.get(schedule.flow_id)
        if flow is None:
            logger.warning(f"Flow {schedule.flow_id} for schedule {schedule_id} not found")
            return FiringOutcome.SKIPPED_MISSING, None, None

        if schedule.is_expired(now):
            schedule.enabled = False
            schedule.paused_reason = SCHEDULE_EXPIRED
            self.unregister_schedule(schedule_id)
            await self.schedule_repo.update_runtime_state(schedule)
            logger.info(f"Schedule {schedule_id} expired at {schedule.expires_at.isoformat()}")
            return FiringOutcome.EXPIRED, None, None

        if schedule.is_currently_running:
            if not self._lease_expired(schedule, now):
                logger.info(f"Skipping schedule {schedule_id}: already running")
                return FiringOutcome.SKIPPED_RUNNING, None, None
            logger.warning(
                f"Reclaiming stale running flag of schedule {schedule_id} "
                f"(execution {schedule.current_execution_id}, since {schedule.running_since})"
            )

        schedule.is_currently_running = True
        schedule.current_execution_id = str(uuid4())
        schedule.running_since = now
        await self.schedule_repo.update_runtime_state(schedule)
        return None, schedule, flow

    def _lease_expired(self, schedule: Schedule, now: datetime) -> bool:
        lease = self.settings.running_lease_seconds
        if lease is None:
            return False
        if schedule.running_since is None:
            return True
        return now - schedule.running_since >= timedelta(seconds=lease)

    async def _record_success(self, schedule: Schedule):
        now = self.clock()
        schedule.last_executed_at = now
        schedule.execution_count += 1
        schedule.last_execution_status = LastExecutionStatus.SUCCESS
        schedule.consecutive_failures = 0
        schedule.next_execution_at = self._next_execution(schedule, now)
        self._clear_running(schedule)

        if schedule.max_executions and schedule.execution_count >= schedule.max_executions:
            schedule.enabled = False
            schedule.paused_reason = MAX_EXECUTIONS_REACHED
            self.unregister_schedule(schedule.id)
            logger.info(f"Schedule {schedule.id} paused: max executions reached")

        await self.schedule_repo.update_runtime_state(schedule)
        logger.info(f"Schedule {schedule.id} executed successfully ({schedule.execution_count} run(s))")

    async def _record_failure(self, schedule: Schedule, error: Exception, count_failure: bool = True):
        now = self.clock()
        schedule.last_executed_at = now
        schedule.last_execution_status = LastExecutionStatus.FAILED
        if count_failure:
            schedule.consecutive_failures += 1
        self._clear_running(schedule)

        limit = self.settings.max_consecutive_failures
        if schedule.consecutive_failures >= limit:
            schedule.enabled = False
            schedule.paused_reason = (
                f"Paused after {schedule.consecutive_failures} consecutive failures: {error}"
            )
            self.unregister_schedule(schedule.id)
            logger.warning(f"Schedule {schedule.id} paused after {schedule.consecutive_failures} failures")
        else:
            schedule.next_execution_at = self._next_execution(schedule, now)

        await self.schedule_repo.update_runtime_state(schedule)

    def _next_execution(self, schedule: Schedule, now: datetime) -> Optional[datetime]:
        try:
            return next_cron_time(
                to_cron_expression(schedule),
                now,
                schedule.timezone or self.settings.default_timezone
            )
        except ScheduleValidationError as e:
            logger.error(f"Cannot compute next execution for schedule {schedule.id}: {e}")
            return None

    @staticmethod
    def _clear_running(schedule: Schedule):
        schedule.is_currently_running = False
        schedule.current_execution_id = None
        schedule.running_since = None
