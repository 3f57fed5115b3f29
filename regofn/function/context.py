"""
Run context for regofn.

Request-scoped bookkeeping for a single function run: an execution ID
for log correlation, the pipeline tag, and per-step timings.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunContext:
    """
    Request-scoped context for one function run.

    Created when a request arrives and dropped once the response is
    returned. Never shared between requests.
    """

    execution_id: UUID = field(default_factory=uuid4)
    started_at: datetime = field(default_factory=_utc_now)
    tag: str = ""
    step_timings: dict[str, float] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the run started."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def record_timing(self, step: str, duration_ms: float) -> None:
        """Record step execution timing."""
        self.step_timings[step] = duration_ms

    @contextmanager
    def timed(self, step: str) -> Iterator[None]:
        """Time the enclosed block as `step`, even if it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_timing(step, (time.perf_counter() - start) * 1000)

    def to_audit_dict(self) -> dict[str, Any]:
        """Summary record for logging."""
        return {
            "execution_id": str(self.execution_id),
            "tag": self.tag,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.elapsed_ms,
            "step_timings": self.step_timings,
        }
