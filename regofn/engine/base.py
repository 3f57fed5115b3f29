"""
Rule Engine Protocol for regofn.

Defines the narrow interface the function needs from a declarative rule
engine: compile a set of named policy modules for a query, then evaluate
the prepared query against an input document.

The engine's own language, parser and built-ins are entirely its business.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

# Query asked of every policy set, and the variable it binds.
RESPONSE_BINDING = "response"
RESPONSE_QUERY = f"{RESPONSE_BINDING} = data.crossplane.response"


@dataclass(frozen=True)
class PolicyModule:
    """
    A named unit of policy source.

    Attributes:
        name: Module name as written in the function input (e.g. "deny.rego")
        source: Policy source text
    """

    name: str
    source: str


@dataclass(frozen=True)
class PreparedQuery:
    """
    A query compiled against a set of modules.

    Engines may stash whatever they need to evaluate it in `handle`.
    """

    query: str
    modules: tuple[PolicyModule, ...]
    engine: str = ""
    handle: Any = field(default=None, compare=False, repr=False)

    @property
    def module_names(self) -> list[str]:
        return [m.name for m in self.modules]


@dataclass(frozen=True)
class EvaluationResult:
    """
    Every solution the engine found for a query.

    Each entry is one independently satisfying set of variable bindings.
    Declarative semantics allow zero, one or many.
    """

    bindings: tuple[dict[str, Any], ...] = ()

    def __len__(self) -> int:
        return len(self.bindings)

    def __iter__(self):
        return iter(self.bindings)

    def __getitem__(self, index: int) -> dict[str, Any]:
        return self.bindings[index]


@runtime_checkable
class RuleEngine(Protocol):
    """
    Protocol for rule engines.

    Implementations must provide:
    - name: Engine identifier
    - compile(): Prepare a query over policy modules
    - evaluate(): Run a prepared query against an input document

    Errors:
    - regofn.errors.CompileError from compile() (and from evaluate() when
      the engine only detects static errors late)
    - regofn.errors.EvaluationError from evaluate(), with
      EvaluationCancelled when the deadline expires
    - regofn.errors.CardinalityError from evaluate() when the engine
      itself rejects a query with several conflicting solutions
    """

    @property
    def name(self) -> str:
        """Engine name for logging."""
        ...

    async def compile(
        self,
        modules: Sequence[PolicyModule],
        query: str,
    ) -> PreparedQuery:
        """Compile modules for query."""
        ...

    async def evaluate(
        self,
        prepared: PreparedQuery,
        input: Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> EvaluationResult:
        """Evaluate a prepared query against input."""
        ...


class BaseRuleEngine(ABC):
    """
    Base class for rule engine implementations.

    Enforces the non-empty module precondition before delegating to
    _compile().
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Engine name."""
        pass

    async def compile(
        self,
        modules: Sequence[PolicyModule],
        query: str,
    ) -> PreparedQuery:
        if not modules:
            raise ValueError("at least one policy module is required")
        return await self._compile(tuple(modules), query)

    @abstractmethod
    async def _compile(
        self,
        modules: tuple[PolicyModule, ...],
        query: str,
    ) -> PreparedQuery:
        pass

    @abstractmethod
    async def evaluate(
        self,
        prepared: PreparedQuery,
        input: Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> EvaluationResult:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
