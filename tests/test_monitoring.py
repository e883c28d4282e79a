"""
Monitoring helper tests
"""
import logging

from flowforge.monitoring import EventLogger, MetricsRecorder


def test_counters_are_keyed_by_sorted_labels():
    metrics = MetricsRecorder()
    metrics.inc("firings", {"outcome": "failed", "schedule": "s1"})
    metrics.inc("firings", {"schedule": "s1", "outcome": "failed"})
    metrics.inc("firings")

    assert metrics.get_counter("firings", {"outcome": "failed", "schedule": "s1"}) == 2
    assert metrics.get_counter("firings") == 1
    assert metrics.get_counter("unknown") == 0
    assert metrics.snapshot("firings") == {"outcome=failed,schedule=s1": 2, "": 1}
    assert metrics.snapshot("unknown") == {}


def test_flow_execution_event(caplog):
    caplog.set_level(logging.INFO, logger="flowforge.events")

    EventLogger().flow_execution("flow-1", "user-1", "failed", 1.5, execution_id="e1")

    [record] = caplog.records
    assert record.getMessage() == "flow_execution"
    assert record.levelno == logging.WARNING
    assert record.flow_id == "flow-1"
    assert record.duration_ms == 1500
    assert record.execution_id == "e1"
