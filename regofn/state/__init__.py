"""
State model for regofn.

Typed representation of the observed and desired state carried by a
request, the results a policy reports, and the response returned to the
pipeline.
"""

from .loaders import load_composition_scripts, load_request
from .messages import (
    Input,
    InputSpec,
    MatchLabels,
    QueryInput,
    Requirements,
    RequestMeta,
    ResourceSelector,
    ResponseMeta,
    RunFunctionRequest,
    RunFunctionResponse,
    format_duration,
    parse_duration,
)
from .resource import Ready, Resource, Resources, State, WireModel
from .result import Result, Severity

__all__ = [
    # Resources
    "WireModel",
    "Ready",
    "Resource",
    "Resources",
    "State",
    # Results
    "Severity",
    "Result",
    # Messages
    "RequestMeta",
    "ResponseMeta",
    "MatchLabels",
    "ResourceSelector",
    "Requirements",
    "Input",
    "InputSpec",
    "RunFunctionRequest",
    "RunFunctionResponse",
    "QueryInput",
    "parse_duration",
    "format_duration",
    # Loaders
    "load_request",
    "load_composition_scripts",
]
