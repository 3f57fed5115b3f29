"""
Dependency Injection for regofn.

Provides process-wide instances of settings, the rule engine and the
function. All of them are immutable once built, so they are safe to share
between concurrent requests.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache

from regofn.config import AppSettings
from regofn.engine import OPARuleEngine, RuleEngine
from regofn.function import RegoFunction

logger = logging.getLogger(__name__)


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return AppSettings(
        # Service
        service_name=os.getenv("REGOFN_SERVICE_NAME", "regofn"),
        environment=os.getenv("REGOFN_ENVIRONMENT", "development"),
        debug=os.getenv("REGOFN_DEBUG", "false").lower() == "true",
        log_level=os.getenv("REGOFN_LOG_LEVEL", "info").lower(),
        # Rule engine
        opa_binary=os.getenv("REGOFN_OPA_BINARY", "opa"),
        rego_version=os.getenv("REGOFN_REGO_VERSION", "v0"),
        evaluation_timeout_seconds=float(os.getenv("REGOFN_EVALUATION_TIMEOUT_SECONDS", "10")),
        # Responses
        default_ttl_seconds=int(os.getenv("REGOFN_DEFAULT_TTL_SECONDS", "60")),
    )


@lru_cache()
def get_engine() -> RuleEngine:
    """
    Get the rule engine.

    Raises:
        EngineUnavailableError: If the OPA binary is not installed
    """
    settings = get_settings()
    engine = OPARuleEngine(settings.opa_binary, rego_version=settings.rego_version)
    logger.info(f"Using rule engine '{engine.name}' ({engine.binary}, rego {settings.rego_version})")
    return engine


@lru_cache()
def get_function() -> RegoFunction:
    """Get the function wired to the configured engine."""
    settings = get_settings()
    return RegoFunction(
        get_engine(),
        ttl=settings.default_ttl,
        timeout=settings.evaluation_timeout_seconds,
    )
