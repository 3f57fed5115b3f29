"""
Error taxonomy for regofn.

Every failure that can happen while evaluating policies for a request is a
FunctionError. The function never raises these to its caller: they are
converted into a single SEVERITY_FATAL result on the response.

EngineUnavailableError is the exception to that rule. It means the rule
engine itself cannot be constructed, which is a deployment problem and is
surfaced to the host as a hard failure.
"""

from __future__ import annotations

from typing import Any


class FunctionError(Exception):
    """Base class for errors that become a FATAL result."""

    kind: str = "function"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def add_context(self, context: str) -> FunctionError:
        """Prefix the message with the step that failed."""
        self.message = f"{context}: {self.message}"
        self.args = (self.message,)
        return self


class ConfigurationError(FunctionError):
    """The function input is missing or unusable (e.g. no scripts supplied)."""

    kind = "configuration"


class CompileError(FunctionError):
    """Policy source failed to parse or compile."""

    kind = "compile"


class EvaluationError(FunctionError):
    """Policy evaluation failed at runtime."""

    kind = "evaluation"


class EvaluationCancelled(EvaluationError):
    """Policy evaluation was aborted because its deadline expired."""

    kind = "cancelled"

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"evaluation did not complete within {timeout:g}s")


class CardinalityError(FunctionError):
    """The response query produced zero or several binding sets."""

    kind = "cardinality"

    def __init__(
        self,
        count: int | None,
        *,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        # count is None when the engine reports conflicting outputs instead
        # of returning them.
        self.count = count
        super().__init__(
            message or f"expected a single result from rego query, got {count}",
            details=details,
        )


class DecodeError(FunctionError):
    """The produced response value does not match the response shape."""

    kind = "decode"


class EngineUnavailableError(Exception):
    """The rule engine cannot be constructed (e.g. binary not installed)."""

    def __init__(self, engine_name: str, reason: str):
        self.engine_name = engine_name
        self.reason = reason
        super().__init__(f"Rule engine '{engine_name}' is unavailable: {reason}")
