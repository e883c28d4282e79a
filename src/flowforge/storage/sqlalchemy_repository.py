"""
SQLAlchemy repository implementations
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..models.execution import (
    Execution, ExecutionStatus, NodeExecution, NodeExecutionStatus, TriggerSource
)
from ..models.flow import Edge, Flow, Node
from ..models.schedule import RUNTIME_FIELDS, Schedule
from .repository import ExecutionRepository, FlowRepository, ScheduleRepository
from .sqlalchemy_models import (
    Base,
    FlowDefinition as FlowDefinitionDB,
    FlowSchedule as FlowScheduleDB,
    FlowExecutionRecord as FlowExecutionDB,
)


logger = logging.getLogger(__name__)


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize for storage; naive values are taken to be UTC already"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return _from_db(datetime.fromisoformat(value)) if value else None


def _db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return _to_utc(value)
    if isinstance(value, Enum):
        return value.value
    return value


class DatabaseManager:
    """Database manager"""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self.async_session_maker = None

    async def initialize(self):
        """Open the engine and create missing tables"""
        engine_args: Dict[str, Any] = {"echo": self.echo, "pool_pre_ping": True}
        if not self.database_url.startswith("sqlite"):
            engine_args.update(pool_size=20, max_overflow=10)

        self.engine = create_async_engine(self.database_url, **engine_args)
        self.async_session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database initialized ({self.engine.url.render_as_string(hide_password=True)})")

    async def close(self):
        """Dispose of the engine"""
        if self.engine:
            await self.engine.dispose()
            self.engine = None

    @asynccontextmanager
    async def get_session(self):
        """Session scoped to one unit of work; commits on success"""
        async with self.async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


class SQLAlchemyFlowRepository(FlowRepository):
    """SQLAlchemy flow repository"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    async def save(self, flow: Flow) -> str:
        async with self.db.get_session() as session:
            flow_db = await session.get(FlowDefinitionDB, flow.id)
            if flow_db is None:
                flow_db = FlowDefinitionDB(id=flow.id)
                session.add(flow_db)

            flow_db.name = flow.name
            flow_db.user_id = flow.user_id
            flow_db.description = flow.description
            flow_db.nodes = [node.to_dict() for node in flow.nodes]
            flow_db.edges = [{"source": e.source, "target": e.target} for e in flow.edges]
            flow_db.flow_metadata = flow.metadata
            return flow.id

    async def get(self, flow_id: str) -> Optional[Flow]:
        async with self.db.get_session() as session:
            flow_db = await session.get(FlowDefinitionDB, flow_id)
            if flow_db is None:
                return None
            return Flow(
                id=flow_db.id,
                name=flow_db.name,
                user_id=flow_db.user_id,
                description=flow_db.description,
                nodes=[Node.from_dict(n) for n in flow_db.nodes or []],
                edges=[Edge.from_dict(e) for e in flow_db.edges or []],
                metadata=flow_db.flow_metadata or {},
            )

    async def delete(self, flow_id: str) -> bool:
        async with self.db.get_session() as session:
            result = await session.execute(
                delete(FlowDefinitionDB).where(FlowDefinitionDB.id == flow_id)
            )
            return result.rowcount > 0


class SQLAlchemyScheduleRepository(ScheduleRepository):
    """SQLAlchemy schedule repository"""

    _definition_fields = (
        "flow_id", "user_id", "name", "schedule_type", "cron_expression",
        "interval_value", "interval_unit", "time", "days_of_week", "day_of_month",
        "timezone", "input_data", "max_executions", "expires_at",
    )

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    async def save(self, schedule: Schedule) -> str:
        async with self.db.get_session() as session:
            schedule_db = await session.get(FlowScheduleDB, schedule.id)
            if schedule_db is None:
                schedule_db = FlowScheduleDB(id=schedule.id, created_at=_to_utc(schedule.created_at))
                session.add(schedule_db)

            for name in self._definition_fields + RUNTIME_FIELDS:
                setattr(schedule_db, name, _db_value(getattr(schedule, name)))
            return schedule.id

    async def get(self, schedule_id: str) -> Optional[Schedule]:
        async with self.db.get_session() as session:
            schedule_db = await session.get(FlowScheduleDB, schedule_id)
            return self._db_to_schedule(schedule_db) if schedule_db else None

    async def list_active(self, now: datetime) -> List[Schedule]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(FlowScheduleDB)
                .where(FlowScheduleDB.enabled.is_(True))
                .order_by(FlowScheduleDB.created_at)
            )
            schedules = [self._db_to_schedule(row) for row in result.scalars()]

        now = _to_utc(now)
        return [s for s in schedules if not s.is_expired(now)]

    async def update_runtime_state(self, schedule: Schedule) -> bool:
        values = {name: _db_value(getattr(schedule, name)) for name in RUNTIME_FIELDS}
        async with self.db.get_session() as session:
            result = await session.execute(
                update(FlowScheduleDB)
                .where(FlowScheduleDB.id == schedule.id)
                .values(**values)
            )
            return result.rowcount > 0

    async def delete(self, schedule_id: str) -> bool:
        async with self.db.get_session() as session:
            result = await session.execute(
                delete(FlowScheduleDB).where(FlowScheduleDB.id == schedule_id)
            )
            return result.rowcount > 0

    def _db_to_schedule(self, schedule_db: FlowScheduleDB) -> Schedule:
        return Schedule(
            id=schedule_db.id,
            flow_id=schedule_db.flow_id,
            user_id=schedule_db.user_id,
            name=schedule_db.name,
            schedule_type=schedule_db.schedule_type,
            cron_expression=schedule_db.cron_expression,
            interval_value=schedule_db.interval_value,
            interval_unit=schedule_db.interval_unit,
            time=schedule_db.time,
            days_of_week=list(schedule_db.days_of_week or []),
            day_of_month=schedule_db.day_of_month,
            timezone=schedule_db.timezone or "UTC",
            enabled=schedule_db.enabled,
            input_data=dict(schedule_db.input_data or {}),
            max_executions=schedule_db.max_executions,
            expires_at=_from_db(schedule_db.expires_at),
            next_execution_at=_from_db(schedule_db.next_execution_at),
            last_executed_at=_from_db(schedule_db.last_executed_at),
            last_execution_status=schedule_db.last_execution_status,
            execution_count=schedule_db.execution_count or 0,
            consecutive_failures=schedule_db.consecutive_failures or 0,
            is_currently_running=bool(schedule_db.is_currently_running),
            current_execution_id=schedule_db.current_execution_id,
            running_since=_from_db(schedule_db.running_since),
            paused_reason=schedule_db.paused_reason,
            created_at=_from_db(schedule_db.created_at) or datetime.now(timezone.utc),
            updated_at=_from_db(schedule_db.updated_at) or datetime.now(timezone.utc),
        )


class SQLAlchemyExecutionRepository(ExecutionRepository):
    """SQLAlchemy execution repository"""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager

    async def save(self, execution: Execution) -> str:
        async with self.db.get_session() as session:
            execution_db = FlowExecutionDB(id=execution.id)
            self._apply(execution_db, execution)
            session.add(execution_db)
            return execution.id

    async def get(self, execution_id: str) -> Optional[Execution]:
        async with self.db.get_session() as session:
            execution_db = await session.get(FlowExecutionDB, execution_id)
            return self._db_to_execution(execution_db) if execution_db else None

    async def update(self, execution: Execution) -> bool:
        async with self.db.get_session() as session:
            execution_db = await session.get(FlowExecutionDB, execution.id)
            if execution_db is None:
                return False
            execution.updated_at = datetime.now(timezone.utc)
            self._apply(execution_db, execution)
            return True

    async def list_by_schedule(
        self,
        schedule_id: str,
        offset: int = 0,
        limit: int = 100
    ) -> List[Execution]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(FlowExecutionDB)
                .where(FlowExecutionDB.schedule_id == schedule_id)
                .order_by(FlowExecutionDB.created_at)
                .offset(offset)
                .limit(limit)
            )
            return [self._db_to_execution(row) for row in result.scalars()]

    def _apply(self, execution_db: FlowExecutionDB, execution: Execution):
        execution_db.flow_id = execution.flow_id
        execution_db.user_id = execution.user_id
        execution_db.triggered_by = execution.triggered_by.value
        execution_db.schedule_id = execution.schedule_id
        execution_db.status = execution.status.value
        execution_db.inputs = execution.inputs
        execution_db.results = execution.results
        execution_db.node_executions = {
            node_id: node_execution.to_dict()
            for node_id, node_execution in execution.node_executions.items()
        }
        execution_db.error = execution.error
        execution_db.nodes_executed = execution.nodes_executed
        execution_db.start_time = _to_utc(execution.start_time)
        execution_db.end_time = _to_utc(execution.end_time)
        execution_db.duration = execution.duration
        execution_db.created_at = _to_utc(execution.created_at)
        execution_db.updated_at = _to_utc(execution.updated_at)

    def _db_to_execution(self, execution_db: FlowExecutionDB) -> Execution:
        results = dict(execution_db.results or {})
        node_executions = {}
        for node_id, data in (execution_db.node_executions or {}).items():
            node_executions[node_id] = NodeExecution(
                node_id=node_id,
                status=NodeExecutionStatus(data.get("status", "running")),
                output=results.get(node_id),
                error_info=data.get("error_info"),
                start_time=_parse_iso(data.get("start_time")),
                end_time=_parse_iso(data.get("end_time")),
                duration=data.get("duration"),
            )

        return Execution(
            id=execution_db.id,
            flow_id=execution_db.flow_id,
            user_id=execution_db.user_id,
            triggered_by=TriggerSource(execution_db.triggered_by),
            schedule_id=execution_db.schedule_id,
            status=ExecutionStatus(execution_db.status),
            inputs=dict(execution_db.inputs or {}),
            results=results,
            node_executions=node_executions,
            error=execution_db.error,
            nodes_executed=execution_db.nodes_executed or 0,
            start_time=_from_db(execution_db.start_time),
            end_time=_from_db(execution_db.end_time),
            duration=execution_db.duration,
            created_at=_from_db(execution_db.created_at),
            updated_at=_from_db(execution_db.updated_at),
        )
