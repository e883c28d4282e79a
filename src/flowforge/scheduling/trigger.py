"""
Live recurring triggers

A trigger owns one asyncio task that sleeps until the next cron match and
then spawns the callback as its own task, so a slow or failing run never
delays the cadence and never takes the trigger loop down with it.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Set

from croniter import croniter

from ..exceptions import ScheduleValidationError
from .calculator import get_zone, next_cron_time


logger = logging.getLogger(__name__)

TriggerCallback = Callable[[], Awaitable[Any]]
Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class TriggerHandle(ABC):
    """Handle to a live trigger"""

    @abstractmethod
    def stop(self):
        """Prevent future firings; in-flight callbacks run to completion"""
        pass

    @abstractmethod
    async def fire(self):
        """Run the callback now, outside the cadence, and return its result"""
        pass

    async def wait_idle(self):
        """Wait until no callback started by this trigger is still running"""
        return None


class TriggerFactory(ABC):
    """Creates started triggers from a cron expression"""

    @abstractmethod
    def create(self, expression: str, tz_name: str, callback: TriggerCallback) -> TriggerHandle:
        pass


class AsyncioCronTrigger(TriggerHandle):
    """Cron trigger running on the current asyncio event loop"""

    # upper bound on one sleep so wall-clock jumps are noticed
    max_sleep_seconds = 60.0

    def __init__(
        self,
        expression: str,
        tz_name: str,
        callback: TriggerCallback,
        clock: Clock = utc_clock
    ):
        if not croniter.is_valid(expression):
            raise ScheduleValidationError(f"Invalid cron expression: {expression!r}")
        get_zone(tz_name)

        self.expression = expression
        self.tz_name = tz_name or "UTC"
        self._callback = callback
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self.fire_count = 0
        self.last_fired_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def wait_idle(self):
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def next_fire_time(self, after: Optional[datetime] = None) -> datetime:
        return next_cron_time(self.expression, after or self._clock(), self.tz_name)

    async def fire(self):
        return await self._spawn()

    async def _run(self):
        target = self.next_fire_time()
        while True:
            delay = (target - self._clock()).total_seconds()
            if delay > 0:
                await asyncio.sleep(min(delay, self.max_sleep_seconds))
                continue

            self._spawn()
            # missed occurrences (e.g. after a suspended process) are coalesced
            target = self.next_fire_time()

    def _spawn(self) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._invoke())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _invoke(self):
        self.fire_count += 1
        self.last_fired_at = self._clock()
        try:
            return await self._callback()
        except Exception as e:
            logger.error(f"Trigger callback failed for '{self.expression}': {e}", exc_info=True)
            return None


class AsyncioTriggerFactory(TriggerFactory):
    """Default trigger factory"""

    def __init__(self, clock: Clock = utc_clock):
        self.clock = clock

    def create(self, expression: str, tz_name: str, callback: TriggerCallback) -> AsyncioCronTrigger:
        trigger = AsyncioCronTrigger(expression, tz_name, callback, clock=self.clock)
        trigger.start()
        return trigger
