"""
Request and response messages.

These mirror the protobuf-JSON form of RunFunctionRequest and
RunFunctionResponse. The response model doubles as the decoding target
for the value a policy produces, so it is strict: unknown keys and
incompatible types are validation errors, never silently dropped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from pydantic import ConfigDict, Field, field_serializer, field_validator

from .resource import Resources, State, WireModel
from .result import Result

_DURATION_RE = re.compile(r"^(-)?(\d+)(?:\.(\d{1,9}))?s$")


def parse_duration(value: str) -> timedelta:
    """Parse a protobuf-JSON duration such as "60s" or "1.5s"."""
    match = _DURATION_RE.match(value)
    if match is None:
        raise ValueError(f"invalid duration {value!r}")
    sign, seconds, fraction = match.groups()
    micros = int((fraction or "").ljust(6, "0")[:6])
    duration = timedelta(seconds=int(seconds), microseconds=micros)
    return -duration if sign else duration


def format_duration(duration: timedelta) -> str:
    """Format a timedelta as a protobuf-JSON duration."""
    sign = ""
    if duration < timedelta(0):
        sign, duration = "-", -duration
    seconds = duration.days * 86400 + duration.seconds
    if duration.microseconds:
        return f"{sign}{seconds}.{duration.microseconds:06d}".rstrip("0") + "s"
    return f"{sign}{seconds}s"


class RequestMeta(WireModel):
    model_config = ConfigDict(extra="ignore")

    tag: str = ""


class ResponseMeta(WireModel):
    """Pipeline-owned response metadata. Policies can never change it."""

    tag: str = ""
    ttl: timedelta | None = None

    @field_validator("ttl", mode="before")
    @classmethod
    def _parse_ttl(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @field_serializer("ttl")
    def _format_ttl(self, ttl: timedelta | None) -> str | None:
        return format_duration(ttl) if ttl is not None else None


class MatchLabels(WireModel):
    labels: dict[str, str] = Field(default_factory=dict)


class ResourceSelector(WireModel):
    """Selects extra resources a function wants the pipeline to fetch."""

    api_version: str
    kind: str
    match_name: str | None = None
    match_labels: MatchLabels | None = None


class Requirements(WireModel):
    extra_resources: dict[str, ResourceSelector] = Field(default_factory=dict)


class InputSpec(WireModel):
    model_config = ConfigDict(extra="ignore")

    scripts: dict[str, str] = Field(default_factory=dict)


class Input(WireModel):
    """
    Function input supplied by the composition author.

    apiVersion: rego.fn.crossplane.io/v1beta1
    kind: Input
    spec:
      scripts:
        policy.rego: |
          package crossplane
          ...

    Scripts keep the order in which they were written.
    """

    model_config = ConfigDict(extra="ignore")

    api_version: str = "rego.fn.crossplane.io/v1beta1"
    kind: str = "Input"
    spec: InputSpec = Field(default_factory=InputSpec)


class RunFunctionRequest(WireModel):
    """
    A request to run the function against observed and desired state.

    Top-level fields this version does not know about are ignored, so a
    newer pipeline can still call it. Policy output is decoded strictly.
    """

    model_config = ConfigDict(extra="ignore")

    meta: RequestMeta | None = None
    observed: State | None = None
    desired: State | None = None
    input: dict[str, Any] | None = None
    context: dict[str, Any] | None = None
    extra_resources: dict[str, Resources] = Field(default_factory=dict)

    @property
    def tag(self) -> str:
        return self.meta.tag if self.meta else ""

    def get_observed(self) -> State:
        return self.observed if self.observed is not None else State()

    def get_desired(self) -> State:
        return self.desired if self.desired is not None else State()

    def get_input(self) -> Input:
        """
        Decode the function input.

        Raises:
            pydantic.ValidationError: If the input does not match Input
        """
        return Input.model_validate(self.input or {})


class RunFunctionResponse(WireModel):
    """The function's response: results plus the new desired state."""

    meta: ResponseMeta | None = None
    desired: State = Field(default_factory=State)
    results: list[Result] = Field(default_factory=list)
    context: dict[str, Any] | None = None
    requirements: Requirements | None = None

    @property
    def has_fatal(self) -> bool:
        return any(r.is_fatal for r in self.results)


@dataclass(frozen=True)
class QueryInput:
    """
    The document exposed to policies as `input`.

    Built fresh for every evaluation and discarded afterwards.
    """

    request: RunFunctionRequest
    response: RunFunctionResponse

    def to_document(self) -> dict[str, Any]:
        return {
            "request": self.request.to_wire(),
            "response": self.response.to_wire(),
        }
