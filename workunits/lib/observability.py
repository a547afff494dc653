"""Observability utilities for discovery runs.

Combines run-scoped events and counters with structured logging helpers
so a discovery run can capture both operational metrics and JSON-friendly
logs from the same module.

A :class:`RunContext` belongs to exactly one call of the assembler or the
driver; nothing here is shared between runs.
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional

logger = logging.getLogger(__name__)

__all__ = [
    "EVENT_NAMESPACE",
    "RunEvent",
    "PhaseTimer",
    "RunContext",
    "JSONFormatter",
    "setup_logging",
]

EVENT_NAMESPACE = "workunits.discovery"


@dataclass
class RunEvent:
    """A single named event submitted during a run."""

    name: str
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def qualified_name(self) -> str:
        return f"{EVENT_NAMESPACE}.{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable dictionary."""
        result: Dict[str, Any] = {
            "name": self.qualified_name,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.metadata:
            result["metadata"] = self.metadata
        return result


@dataclass
class PhaseTimer:
    """Timer tracking a named run phase."""

    name: str
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    def stop(self) -> float:
        """Stop the timer and return the duration (seconds)."""
        self.end_time = time.time()
        return self.duration

    @property
    def duration(self) -> float:
        end = self.end_time or time.time()
        return end - self.start_time


class RunContext:
    """Events, counters and phase timings for one discovery run.

    Example:
        context = RunContext()
        context.submit("Setup")
        with context.time_phase("assemble"):
            units = assembler.run(catalog, context)
        print(context.summary())
    """

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id or uuid.uuid4().hex
        self._start_time = time.time()
        self._end_time: Optional[float] = None
        self._events: List[RunEvent] = []
        self._phases: List[PhaseTimer] = []
        self._counters: Counter[str] = Counter()

    def submit(self, name: str, **metadata: Any) -> RunEvent:
        """Record a run event and log it."""
        event = RunEvent(
            name=name,
            timestamp=datetime.now(timezone.utc),
            metadata=metadata,
        )
        self._events.append(event)
        logger.info(
            "Event %s",
            event.qualified_name,
            extra={"run_id": self.run_id, "event_metadata": metadata},
        )
        return event

    def increment(self, name: str, amount: int = 1) -> None:
        self._counters[name] += amount

    def counter(self, name: str) -> int:
        return self._counters[name]

    @property
    def events(self) -> List[RunEvent]:
        return list(self._events)

    def event_names(self) -> List[str]:
        return [event.name for event in self._events]

    @contextmanager
    def time_phase(self, name: str) -> Generator[PhaseTimer, None, None]:
        """Context manager that tracks a phase duration."""
        timer = PhaseTimer(name=name)
        self._phases.append(timer)
        try:
            yield timer
        finally:
            timer.stop()

    def finish(self) -> None:
        """Mark the run as complete."""
        if self._end_time is None:
            self._end_time = time.time()

    @property
    def total_duration(self) -> float:
        end = self._end_time or time.time()
        return end - self._start_time

    def summary(self) -> Dict[str, Any]:
        """Return a summary dictionary of the run."""
        self.finish()

        return {
            "run_id": self.run_id,
            "timing": {
                "total_seconds": round(self.total_duration, 3),
                "phases": {p.name: round(p.duration, 3) for p in self._phases},
            },
            "counters": dict(self._counters),
            "events": [e.to_dict() for e in self._events],
        }


class JSONFormatter(logging.Formatter):
    """Formatter that renders log records as one JSON object per line.

    The record's ``run_id`` (set by :meth:`RunContext.submit`) is lifted to
    the top level so that every line of a run can be grouped; other
    ``extra=`` fields are nested under ``extra``.

    Example output:
        {"timestamp": "2025-01-15T10:30:00.123Z", "level": "INFO",
         "logger": "workunits.lib.assembler", "message": "Created 3 work units"}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        run_id = getattr(record, "run_id", None)
        if run_id is not None:
            payload["run_id"] = run_id

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra_attrs = {
            k: v
            for k, v in record.__dict__.items()
            if k not in _RESERVED_RECORD_ATTRS and k not in ("message", "asctime", "run_id")
        }
        if extra_attrs:
            payload["extra"] = extra_attrs

        return json.dumps(payload, default=str)


_RESERVED_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger with optional JSON formatting.

    Args:
        verbose: Enable debug-level logging
        json_format: Use JSON output format (for log aggregation)
        log_file: Optional file path to write logs to
    """
    level = logging.DEBUG if verbose else logging.INFO

    formatter = JSONFormatter() if json_format else logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stdout carries the work-unit JSON, so logs go to stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("fsspec").setLevel(logging.WARNING)
