"""
Result model.

Results are the messages a function reports back to the pipeline. A
SEVERITY_FATAL result tells the caller to stop the pipeline; the function
only records the severity, it never halts anything itself.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import field_validator

from .resource import WireModel, _enum_from_number


class Severity(str, Enum):
    """Severity of a result."""

    FATAL = "SEVERITY_FATAL"
    WARNING = "SEVERITY_WARNING"
    NORMAL = "SEVERITY_NORMAL"


# Protobuf enum numbers. 0 (SEVERITY_UNSPECIFIED) is not a valid severity.
_SEVERITY_NUMBERS = {1: Severity.FATAL, 2: Severity.WARNING, 3: Severity.NORMAL}


class Result(WireModel):
    """A single severity-tagged message."""

    severity: Severity
    message: str = ""
    reason: str | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def _severity_from_number(cls, value: Any) -> Any:
        return _enum_from_number(Severity, _SEVERITY_NUMBERS, value)

    @property
    def is_fatal(self) -> bool:
        return self.severity is Severity.FATAL

    def __str__(self) -> str:
        return f"[{self.severity.value}] {self.message}"
