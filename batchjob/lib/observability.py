"""Observability utilities for batch jobs.

Combines run metrics collection with logging helpers so batch runs can
capture both operational metrics and JSON-friendly logs from the same
module. Run lifecycle events go through structlog, routed into the
standard logging tree so one ``setup_logging`` call controls everything.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional

import structlog

logger = logging.getLogger(__name__)

__all__ = [
    "MetricPoint",
    "PhaseTimer",
    "RunMetrics",
    "JSONFormatter",
    "configure_structlog",
    "get_structlog_logger",
    "setup_logging",
]


@dataclass
class MetricPoint:
    """A single metric data point."""

    name: str
    value: Any
    timestamp: datetime
    unit: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a serializable dictionary."""
        result = {
            "name": self.name,
            "value": self.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.unit:
            result["unit"] = self.unit
        if self.tags:
            result["tags"] = self.tags
        return result


@dataclass
class PhaseTimer:
    """Timer tracking a named run phase."""

    name: str
    start_time: float = field(default_factory=time.perf_counter)
    end_time: Optional[float] = None

    def stop(self) -> float:
        """Stop the timer and return the duration (seconds)."""
        self.end_time = time.perf_counter()
        return self.duration

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time

    @property
    def running(self) -> bool:
        """Whether the timer is still running."""
        return self.end_time is None


class RunMetrics:
    """Metrics for a single batch run.

    Runners increment counters (``transactions_succeeded``,
    ``transactions_failed``, ``retries``, ``records_processed``) and time the
    ``execute`` phase. Pass an instance via the ``metrics=`` argument.

    Example:
        metrics = RunMetrics(job="load_orders")
        total = await batch_job(executor, rows, reducer, options, metrics=metrics)
        print(metrics.summary())
    """

    def __init__(self, job: str = "batch_job", mode: Optional[str] = None):
        self.job = job
        self.mode = mode

        self._start_time = time.perf_counter()
        self._end_time: Optional[float] = None
        self._phases: List[PhaseTimer] = []
        self._counters: Dict[str, int] = {}
        self._metrics: List[MetricPoint] = []

    @contextmanager
    def time_phase(self, name: str) -> Generator[PhaseTimer, None, None]:
        """Context manager that tracks a phase duration."""
        timer = PhaseTimer(name=name)
        self._phases.append(timer)
        try:
            yield timer
        finally:
            timer.stop()

    def increment(self, name: str, amount: int = 1) -> None:
        self._counters[name] = self._counters.get(name, 0) + amount

    def count(self, name: str) -> int:
        return self._counters.get(name, 0)

    def record(
        self,
        name: str,
        value: Any,
        unit: Optional[str] = None,
        **tags: str,
    ) -> None:
        """Record a metric value with optional tags."""
        all_tags = {"job": self.job}
        if self.mode:
            all_tags["mode"] = self.mode
        all_tags.update(tags)

        self._metrics.append(
            MetricPoint(
                name=name,
                value=value,
                timestamp=datetime.now(timezone.utc),
                unit=unit,
                tags=all_tags,
            )
        )

    def finish(self) -> None:
        """Mark the run as complete."""
        if self._end_time is None:
            self._end_time = time.perf_counter()

    @property
    def total_duration(self) -> float:
        """Total duration in seconds."""
        end = self._end_time if self._end_time is not None else time.perf_counter()
        return end - self._start_time

    def summary(self) -> Dict[str, Any]:
        """Return a summary dictionary of the tracked metrics."""
        self.finish()

        return {
            "job": {"name": self.job, "mode": self.mode},
            "timing": {
                "total_seconds": round(self.total_duration, 3),
                "phases": {p.name: round(p.duration, 3) for p in self._phases},
            },
            "counters": dict(self._counters),
            "metrics": [m.to_dict() for m in self._metrics],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten metrics for structured logging."""
        result: Dict[str, Any] = {
            "job": self.job,
            "total_duration_seconds": round(self.total_duration, 3),
        }
        if self.mode:
            result["mode"] = self.mode

        for phase in self._phases:
            result[f"phase_{phase.name}_seconds"] = round(phase.duration, 3)

        result.update(self._counters)

        for metric in self._metrics:
            key = f"metric_{metric.name}"
            if metric.unit:
                key = f"{key}_{metric.unit}"
            result[key] = metric.value

        return result


class JSONFormatter(logging.Formatter):
    """Formatter that renders log records as JSON."""

    def __init__(
        self,
        include_fields: Optional[List[str]] = None,
        exclude_fields: Optional[List[str]] = None,
    ):
        super().__init__()
        self.include_fields = include_fields or []
        self.exclude_fields = exclude_fields or []

    def format(self, record: logging.LogRecord) -> str:
        """Format a record as JSON."""
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.pathname:
            payload["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for field_name in self.include_fields:
            if hasattr(record, field_name):
                payload[field_name] = getattr(record, field_name)

        extra_attrs = {
            k: v
            for k, v in record.__dict__.items()
            if k not in logging.LogRecord("", 0, "", 0, "", (), None).__dict__
            and k not in ("message", "asctime")
            and k not in self.exclude_fields
        }
        if extra_attrs:
            payload["extra"] = extra_attrs

        return json.dumps(payload, default=str)


def _stdlib_processors() -> List[Any]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.KeyValueRenderer(key_order=["event"], sort_keys=True),
    ]


def configure_structlog() -> None:
    """Route structlog events through the standard logging tree.

    Events render as ``event='...' key=value`` text; the stdlib handler's
    formatter (plain or JSONFormatter) decides the final shape. Only
    ``setup_logging`` calls this; importing the package leaves structlog's
    global configuration alone.
    """
    structlog.configure(
        processors=_stdlib_processors(),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_structlog_logger(name: str) -> Any:
    """Return a structlog logger wrapping the stdlib logger ``name``.

    The processor chain is bound locally, so events reach the stdlib
    handlers whether or not structlog has been configured.
    """
    return structlog.wrap_logger(
        logging.getLogger(name),
        processors=_stdlib_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger with optional JSON formatting."""
    level = logging.DEBUG if verbose else logging.INFO

    formatter = JSONFormatter() if json_format else logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    configure_structlog()
    logging.getLogger("asyncio").setLevel(logging.WARNING)
