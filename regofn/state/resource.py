"""
Resource and State models.

A Resource wraps an opaque Kubernetes-style document. Nothing inside the
document is validated here; policies read and write whatever paths they
need (typically metadata.annotations).

A State is a composite resource plus a map of named composed resources.
Each request carries two of them: observed (read-only) and desired (the
accumulated intent of the pipeline so far).
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """
    Base for every message that crosses the wire.

    - camelCase keys on output, camelCase or snake_case accepted on input
    - unknown keys are rejected
    - a null field is treated as unset, as in protobuf JSON
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    def to_wire(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict with wire key names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _enum_from_number(enum_cls: type[Enum], numbers: dict[int, Enum], value: Any) -> Any:
    # Protobuf JSON allows enums as their numeric value.
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value not in numbers:
            raise ValueError(f"{value} is not a valid {enum_cls.__name__} number")
        return numbers[value]
    return value


class Ready(str, Enum):
    """Readiness of a desired resource."""

    UNSPECIFIED = "READY_UNSPECIFIED"
    TRUE = "READY_TRUE"
    FALSE = "READY_FALSE"


_READY_NUMBERS = {0: Ready.UNSPECIFIED, 1: Ready.TRUE, 2: Ready.FALSE}


class Resource(WireModel):
    """A single managed object and its connection details."""

    resource: dict[str, Any] = Field(default_factory=dict)
    connection_details: dict[str, str] = Field(default_factory=dict)
    ready: Ready = Ready.UNSPECIFIED

    @field_validator("ready", mode="before")
    @classmethod
    def _ready_from_number(cls, value: Any) -> Any:
        return _enum_from_number(Ready, _READY_NUMBERS, value)


class State(WireModel):
    """Composite resource plus named composed resources."""

    composite: Resource | None = None
    resources: dict[str, Resource] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.composite is None and not self.resources


class Resources(WireModel):
    """A list of resources, as returned for an extra-resources requirement."""

    items: list[Resource] = Field(default_factory=list)
