"""
SQLAlchemy database models
"""
from sqlalchemy import (
    Column, String, Text, Boolean, Integer, Float, DateTime, ForeignKey, Index, JSON
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func


Base = declarative_base()


class FlowDefinition(Base):
    """Flow definition"""
    __tablename__ = 'flows'

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    user_id = Column(String(255))
    description = Column(Text)
    nodes = Column(JSON, nullable=False, default=list)
    edges = Column(JSON, nullable=False, default=list)
    flow_metadata = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class FlowSchedule(Base):
    """Schedule definition plus scheduler-owned runtime state"""
    __tablename__ = 'flow_schedules'

    id = Column(String(64), primary_key=True)
    flow_id = Column(String(64), ForeignKey('flows.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(String(255))
    name = Column(String(255))

    schedule_type = Column(String(20), nullable=False)
    cron_expression = Column(String(255))
    interval_value = Column(Integer)
    interval_unit = Column(String(20))
    time = Column(String(5))
    days_of_week = Column(JSON, default=list)
    day_of_month = Column(Integer)
    timezone = Column(String(64), nullable=False, default="UTC")

    enabled = Column(Boolean, nullable=False, default=True)
    input_data = Column(JSON, default=dict)
    max_executions = Column(Integer)
    expires_at = Column(DateTime(timezone=True))

    next_execution_at = Column(DateTime(timezone=True))
    last_executed_at = Column(DateTime(timezone=True))
    last_execution_status = Column(String(20), nullable=False, default="none")
    execution_count = Column(Integer, nullable=False, default=0)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    is_currently_running = Column(Boolean, nullable=False, default=False)
    current_execution_id = Column(String(64))
    running_since = Column(DateTime(timezone=True))
    paused_reason = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_flow_schedules_enabled', 'enabled'),
        Index('idx_flow_schedules_flow_id', 'flow_id'),
    )


class FlowExecutionRecord(Base):
    """One run of a flow"""
    __tablename__ = 'flow_executions'

    id = Column(String(64), primary_key=True)
    flow_id = Column(String(64), nullable=False)
    user_id = Column(String(255))
    triggered_by = Column(String(20), nullable=False, default="manual")
    schedule_id = Column(String(64))
    status = Column(String(20), nullable=False)
    inputs = Column(JSON, default=dict)
    results = Column(JSON, default=dict)
    node_executions = Column(JSON, default=dict)
    error = Column(JSON)
    nodes_executed = Column(Integer, nullable=False, default=0)
    start_time = Column(DateTime(timezone=True))
    end_time = Column(DateTime(timezone=True))
    duration = Column(Float)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index('idx_flow_executions_schedule_id', 'schedule_id'),
        Index('idx_flow_executions_status', 'status'),
    )
