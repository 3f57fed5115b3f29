"""
Pytest configuration and fixtures for regofn tests.
"""

import sys
from pathlib import Path
from typing import Any, Callable, Mapping

import pytest

# Add the repository root to path for imports
# This allows `from regofn.function import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from regofn.engine import BaseRuleEngine, EvaluationResult, PolicyModule, PreparedQuery  # noqa: E402
from regofn.function import reset_metrics  # noqa: E402

ILLEGAL_ANNOTATION = "dummy.fn.crossplane.io/illegal"
ILLEGAL_MESSAGE = (
    "Composite resources with the annotation dummy.fn.crossplane.io/illegal "
    "set to true are not allowed"
)


class FakeRuleEngine(BaseRuleEngine):
    """
    Scripted rule engine for testing.

    Returns a fixed EvaluationResult, or computes one from the input
    document with `respond`. Records every compile and evaluate call.
    """

    def __init__(
        self,
        result: EvaluationResult | None = None,
        *,
        respond: Callable[[Mapping[str, Any]], EvaluationResult] | None = None,
        compile_error: Exception | None = None,
        evaluate_error: Exception | None = None,
    ):
        self.result = result if result is not None else EvaluationResult()
        self.respond = respond
        self.compile_error = compile_error
        self.evaluate_error = evaluate_error
        self.compiled: list[tuple[tuple[PolicyModule, ...], str]] = []
        self.inputs: list[Mapping[str, Any]] = []
        self.timeouts: list[float | None] = []

    @property
    def name(self) -> str:
        return "fake"

    async def _compile(self, modules, query):
        self.compiled.append((modules, query))
        if self.compile_error is not None:
            raise self.compile_error
        return PreparedQuery(query=query, modules=modules, engine=self.name)

    async def evaluate(self, prepared, input, *, timeout=None):
        self.inputs.append(input)
        self.timeouts.append(timeout)
        if self.evaluate_error is not None:
            raise self.evaluate_error
        if self.respond is not None:
            return self.respond(input)
        return self.result


def union_with_input(patch: dict[str, Any]) -> Callable[[Mapping[str, Any]], EvaluationResult]:
    """
    Behave like `response = object.union(input.response, patch)`.

    Only merges the top level, which is all these tests need.
    """

    def respond(document: Mapping[str, Any]) -> EvaluationResult:
        return EvaluationResult(bindings=({"response": {**document["response"], **patch}},))

    return respond


def scripts_input(**scripts: str) -> dict[str, Any]:
    """Build a function input document with the given scripts."""
    return {
        "apiVersion": "rego.fn.crossplane.io/v1beta1",
        "kind": "Input",
        "spec": {"scripts": dict(scripts)},
    }


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def desired_foo():
    """Desired state with a single composed resource named foo."""
    return {"resources": {"foo": {"resource": {"metadata": {"name": "foo"}}}}}


@pytest.fixture
def illegal_composite():
    """Observed state whose composite is annotated illegal=true."""
    return {
        "composite": {
            "resource": {"metadata": {"annotations": {ILLEGAL_ANNOTATION: "true"}}},
        },
    }
