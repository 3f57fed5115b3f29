"""
Function layer for regofn.

Core Components:
- RegoFunction: runs the policies supplied with a request
- response: seeding a response from a request, adding results, metadata
- merge: evaluating policies and folding their output into the response
- RunContext: request-scoped timings and correlation
- observability: structured logging and metrics
"""

from . import response
from .context import RunContext
from .merge import decode_response, evaluate_policies, merge_response, single_response
from .observability import (
    FunctionLogger,
    FunctionMetrics,
    JSONLogger,
    LogLevel,
    StructuredLogger,
    get_metrics,
    reset_metrics,
)
from .response import DEFAULT_TTL, detached_meta, fatal, finalize, normal, to, warning
from .runner import RegoFunction

__all__ = [
    # Runner
    "RegoFunction",
    "RunContext",
    # Response helpers
    "response",
    "DEFAULT_TTL",
    "to",
    "fatal",
    "warning",
    "normal",
    "detached_meta",
    "finalize",
    # Merge core
    "evaluate_policies",
    "single_response",
    "decode_response",
    "merge_response",
    # Observability
    "LogLevel",
    "StructuredLogger",
    "JSONLogger",
    "FunctionLogger",
    "FunctionMetrics",
    "get_metrics",
    "reset_metrics",
]
