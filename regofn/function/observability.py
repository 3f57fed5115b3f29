"""
Observability for regofn.

Structured logging and in-process metrics for function runs.

- JSONLogger: key-value log records rendered as JSON through stdlib logging
- FunctionLogger: named events for the stages of a run, correlated by tag
- FunctionMetrics: counters and duration percentiles, exposed at /metrics
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol


class LogLevel(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class StructuredLogger(Protocol):
    """Loggers that take a message plus key-value context."""

    def debug(self, message: str, **context: Any) -> None: ...

    def info(self, message: str, **context: Any) -> None: ...

    def warning(self, message: str, **context: Any) -> None: ...

    def error(self, message: str, **context: Any) -> None: ...


@dataclass
class JSONLogger:
    """
    Structured logger that emits one JSON object per record.

    Example output:
        {"timestamp": "2026-10-19T10:30:00+00:00", "level": "info",
         "message": "Running Function", "tag": "hello", "module_count": 2}
    """

    name: str = "regofn"
    extra_context: dict[str, Any] = field(default_factory=dict)

    def _log(self, level: LogLevel, message: str, context: dict[str, Any]) -> None:
        python_logger = logging.getLogger(self.name)
        if not python_logger.isEnabledFor(getattr(logging, level.name)):
            return
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "message": message,
            **self.extra_context,
            **context,
        }
        getattr(python_logger, level.value)(json.dumps(record, default=str))

    def debug(self, message: str, **context: Any) -> None:
        self._log(LogLevel.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(LogLevel.WARNING, message, context)

    def error(self, message: str, **context: Any) -> None:
        self._log(LogLevel.ERROR, message, context)

    def with_context(self, **extra: Any) -> JSONLogger:
        """Create a new logger with additional context."""
        return JSONLogger(name=self.name, extra_context={**self.extra_context, **extra})


@dataclass
class FunctionLogger:
    """
    Logger for the stages of a function run.

    Example:
        log = FunctionLogger(tag="hello", execution_id="4f1c...")
        log.function_started(modules=["deny.rego"])
        log.fatal_result(kind="compile", message="cannot prepare rego query: ...")
        log.function_completed(results=1, fatal=True, duration_ms=12.5)
    """

    tag: str
    execution_id: str = ""
    inner: StructuredLogger = field(default_factory=JSONLogger)

    def __post_init__(self) -> None:
        if isinstance(self.inner, JSONLogger):
            self.inner = self.inner.with_context(tag=self.tag, execution_id=self.execution_id)

    def function_started(self, modules: list[str]) -> None:
        self.inner.info("Running Function", modules=modules, module_count=len(modules))

    def input_rejected(self, reason: str) -> None:
        self.inner.warning("Function input rejected", reason=reason)

    def policies_compiled(self, engine: str, duration_ms: float) -> None:
        self.inner.debug("Policies compiled", engine=engine, duration_ms=round(duration_ms, 2))

    def evaluation_completed(self, duration_ms: float) -> None:
        self.inner.debug("Policy evaluation completed", duration_ms=round(duration_ms, 2))

    def fatal_result(self, kind: str, message: str) -> None:
        self.inner.warning("Fatal result", error_kind=kind, error=message)

    def function_completed(self, results: int, fatal: bool, duration_ms: float) -> None:
        self.inner.info(
            "Function completed",
            results=results,
            fatal=fatal,
            duration_ms=round(duration_ms, 2),
        )


@dataclass
class FunctionMetrics:
    """
    Function run metrics.

    Tracks:
    - Run counts (total, with a fatal result)
    - Failures by error kind (configuration, compile, evaluation, ...)
    - Duration percentiles
    """

    runs_total: int = 0
    runs_fatal: int = 0
    errors_by_kind: dict[str, int] = field(default_factory=dict)
    durations_ms: list[float] = field(default_factory=list)
    max_histogram_entries: int = 1000

    def record_run(self, fatal: bool, duration_ms: float, error_kind: str | None = None) -> None:
        """Record a completed run."""
        self.runs_total += 1
        if fatal:
            self.runs_fatal += 1
        if error_kind is not None:
            self.errors_by_kind[error_kind] = self.errors_by_kind.get(error_kind, 0) + 1

        self.durations_ms.append(duration_ms)
        if len(self.durations_ms) > self.max_histogram_entries:
            del self.durations_ms[: len(self.durations_ms) - self.max_histogram_entries]

    def get_stats(self) -> dict[str, Any]:
        """Get summary statistics."""

        def percentile(data: list[float], p: float) -> float | None:
            if not data:
                return None
            sorted_data = sorted(data)
            k = (len(sorted_data) - 1) * p
            f = int(k)
            c = f + 1 if f + 1 < len(sorted_data) else f
            return sorted_data[f] + (k - f) * (sorted_data[c] - sorted_data[f])

        return {
            "runs": {
                "total": self.runs_total,
                "fatal": self.runs_fatal,
                "fatal_rate": self.runs_fatal / self.runs_total if self.runs_total else None,
            },
            "errors_by_kind": dict(self.errors_by_kind),
            "duration_ms": {
                "p50": percentile(self.durations_ms, 0.5),
                "p95": percentile(self.durations_ms, 0.95),
                "p99": percentile(self.durations_ms, 0.99),
            },
        }

    def reset(self) -> None:
        self.runs_total = 0
        self.runs_fatal = 0
        self.errors_by_kind.clear()
        self.durations_ms.clear()


_global_metrics = FunctionMetrics()


def get_metrics() -> FunctionMetrics:
    """Get the global metrics instance."""
    return _global_metrics


def reset_metrics() -> None:
    """Reset global metrics (useful for testing)."""
    _global_metrics.reset()
