"""Monitoring helpers: in-memory counters and structured event logging."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Optional


class MetricsRecorder:
    """In-memory labelled counters, surfaced through scheduler stats."""

    def __init__(self) -> None:
        self.counters: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))

    def inc(self, name: str, labels: Optional[Dict[str, str]] = None, value: float = 1) -> None:
        self.counters[name][self.series(labels)] += value

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self.counters.get(name, {}).get(self.series(labels), 0.0)

    def snapshot(self, name: str) -> Dict[str, float]:
        """Copy of every series of one counter"""
        return dict(self.counters.get(name, {}))

    @staticmethod
    def series(labels: Optional[Dict[str, str]]) -> str:
        """Stable series key, e.g. ``outcome=failed``"""
        if not labels:
            return ""
        return ",".join(f"{key}={labels[key]}" for key in sorted(labels))


class EventLogger:
    """Structured events for flow executions and schedule firings."""

    def __init__(self, name: str = "flowforge.events") -> None:
        self.logger = logging.getLogger(name)

    def log(self, event: str, level: int = logging.INFO, **payload: Any) -> None:
        self.logger.log(level, event, extra={"event": event, **payload})

    def flow_execution(
        self,
        flow_id: str,
        user_id: Optional[str],
        status: str,
        duration: Optional[float],
        **payload: Any,
    ) -> None:
        level = logging.INFO if status == "success" else logging.WARNING
        self.log(
            "flow_execution",
            level,
            flow_id=flow_id,
            user_id=user_id,
            status=status,
            duration_ms=int((duration or 0) * 1000),
            **payload,
        )
