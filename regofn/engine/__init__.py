"""
Rule engines for regofn.

- RuleEngine: protocol every engine implements (compile + evaluate)
- OPARuleEngine: Open Policy Agent via the `opa` binary
"""

from .base import (
    RESPONSE_BINDING,
    RESPONSE_QUERY,
    BaseRuleEngine,
    EvaluationResult,
    PolicyModule,
    PreparedQuery,
    RuleEngine,
)
from .opa import OPARuleEngine

__all__ = [
    # Protocol and base
    "RuleEngine",
    "BaseRuleEngine",
    "PolicyModule",
    "PreparedQuery",
    "EvaluationResult",
    "RESPONSE_QUERY",
    "RESPONSE_BINDING",
    # Implementations
    "OPARuleEngine",
]
