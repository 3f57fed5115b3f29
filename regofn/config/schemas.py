"""
Configuration schemas for regofn.

Settings are read once at process start (see regofn.app.dependencies)
and never mutated afterwards.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Literal

from pydantic import BaseModel, Field


class AppSettings(BaseModel):
    """
    Application settings model.

    Populated from REGOFN_* environment variables.
    """

    # Service identity
    service_name: str = "regofn"
    environment: str = "development"
    debug: bool = False
    log_level: Literal["debug", "info", "warning", "error"] = "info"

    # Rule engine
    opa_binary: str = Field(default="opa", description="Name or path of the OPA executable")
    rego_version: Literal["v0", "v1"] = Field(
        default="v0",
        description="Rego syntax accepted in policy scripts",
    )
    evaluation_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Deadline for a single policy evaluation",
    )

    # Responses
    default_ttl_seconds: int = Field(default=60, ge=0, description="TTL stamped on responses")

    @property
    def default_ttl(self) -> timedelta:
        return timedelta(seconds=self.default_ttl_seconds)
