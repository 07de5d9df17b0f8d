"""
Instance Logger — per-instance structured event log.

Each running workflow instance gets an ``InstanceLogger`` that records
node entries, edge decisions, waits, faults and completion. Entries are
mirrored to the standard ``psa_workflow`` logger and kept in memory so
the orchestration layer can persist them or show them to an operator.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class LogEvent(str, Enum):
    NODE_ENTER = "node_enter"
    EDGE_DECISION = "edge_decision"
    AWAITING = "awaiting"
    FAULT = "fault"
    COMPLETED = "completed"


@dataclass
class LogEntry:
    event: LogEvent
    message: str
    node_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.value,
            "message": self.message,
            "node_id": self.node_id,
            "data": dict(self.data),
            "timestamp": self.timestamp,
        }


class InstanceLogger:
    """Structured log for one workflow instance."""

    def __init__(self, instance_id: str, max_entries: int = 1000) -> None:
        self.instance_id = instance_id
        self._max_entries = max_entries
        self._entries: List[LogEntry] = []
        self._lock = threading.Lock()

    @property
    def entries(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def _record(
        self,
        event: LogEvent,
        message: str,
        level: int = logging.INFO,
        node_id: Optional[str] = None,
        **data: Any,
    ) -> LogEntry:
        entry = LogEntry(event=event, message=message, node_id=node_id, data=data)
        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self._max_entries:
                del self._entries[: len(self._entries) - self._max_entries]
        logger.log(level, f"[{self.instance_id}] {message}")
        return entry

    def log_node_enter(self, node_id: str, node_label: str, node_type: str) -> LogEntry:
        return self._record(
            LogEvent.NODE_ENTER,
            f"→ {node_label} ({node_type})",
            node_id=node_id,
            node_type=node_type,
        )

    def log_edge_decision(
        self,
        from_node: str,
        decision: str,
        target_node: str,
    ) -> LogEntry:
        return self._record(
            LogEvent.EDGE_DECISION,
            f"{from_node}: {decision} → {target_node}",
            node_id=from_node,
            decision=decision,
            target=target_node,
        )

    def log_awaiting(self, node_id: str, waiting_for: str) -> LogEntry:
        return self._record(
            LogEvent.AWAITING,
            f"waiting for {waiting_for} at {node_id}",
            node_id=node_id,
            waiting_for=waiting_for,
        )

    def log_fault(
        self,
        code: str,
        message: str,
        node_id: Optional[str] = None,
        recoverable: bool = False,
    ) -> LogEntry:
        return self._record(
            LogEvent.FAULT,
            f"FAULT {code}: {message}",
            level=logging.WARNING if recoverable else logging.ERROR,
            node_id=node_id,
            code=code,
            recoverable=recoverable,
        )

    def log_completed(self, node_id: str, step_count: int) -> LogEntry:
        return self._record(
            LogEvent.COMPLETED,
            f"completed at {node_id} after {step_count} steps",
            node_id=node_id,
            step_count=step_count,
        )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# ── Registry ──

_loggers: Dict[str, InstanceLogger] = {}
_registry_lock = threading.Lock()


def get_instance_logger(instance_id: str) -> InstanceLogger:
    """Return (creating if needed) the logger for an instance."""
    with _registry_lock:
        inst_logger = _loggers.get(instance_id)
        if inst_logger is None:
            inst_logger = InstanceLogger(instance_id)
            _loggers[instance_id] = inst_logger
        return inst_logger


def remove_instance_logger(instance_id: str) -> Optional[InstanceLogger]:
    """Drop an instance's logger, e.g. once the instance is archived."""
    with _registry_lock:
        return _loggers.pop(instance_id, None)
