"""
Tests for RegoFunction.

Runs whole requests through the function with a scripted rule engine
standing in for OPA. Each respond callable behaves like the Rego policy
named in its docstring.
"""
from datetime import timedelta

import pytest

from conftest import (
    ILLEGAL_ANNOTATION,
    ILLEGAL_MESSAGE,
    FakeRuleEngine,
    scripts_input,
    union_with_input,
)
from regofn.engine import EvaluationResult
from regofn.errors import CompileError
from regofn.function import FunctionMetrics, RegoFunction
from regofn.state import RunFunctionRequest, Severity


def _request(**fields) -> RunFunctionRequest:
    return RunFunctionRequest.model_validate({"meta": {"tag": "hello"}, **fields})


def deny_illegal(document):
    """
    package crossplane

    results[x] {
        input.request.observed.composite.resource.metadata.annotations[...] == "true"
        x := {"severity": "SEVERITY_FATAL", "message": "..."}
    }

    response = object.union(input.response, {"results": results})
    """
    composite = document["request"].get("observed", {}).get("composite") or {}
    annotations = composite.get("resource", {}).get("metadata", {}).get("annotations", {})
    results = []
    if annotations.get(ILLEGAL_ANNOTATION) == "true":
        results.append({"severity": "SEVERITY_FATAL", "message": ILLEGAL_MESSAGE})
    return union_with_input({"results": results})(document)


# =============================================================================
# Input handling
# =============================================================================


class TestInputHandling:
    """Tests for reading scripts from the function input."""

    @pytest.mark.asyncio
    async def test_no_scripts_is_fatal(self, desired_foo):
        engine = FakeRuleEngine()
        request = _request(desired=desired_foo, input=scripts_input())

        rsp = await RegoFunction(engine).run_function(request)

        assert len(rsp.results) == 1
        assert rsp.results[0].severity is Severity.FATAL
        assert rsp.results[0].message == "no scripts supplied"
        assert rsp.desired == request.desired
        assert engine.compiled == []

    @pytest.mark.asyncio
    async def test_missing_input_is_fatal(self):
        rsp = await RegoFunction(FakeRuleEngine()).run_function(_request())

        assert [r.message for r in rsp.results] == ["no scripts supplied"]

    @pytest.mark.asyncio
    async def test_malformed_input_is_fatal(self):
        request = _request(input={"spec": {"scripts": "package crossplane"}})

        rsp = await RegoFunction(FakeRuleEngine()).run_function(request)

        assert rsp.results[0].is_fatal
        assert rsp.results[0].message.startswith(
            "cannot get Function input from RunFunctionRequest: "
        )

    @pytest.mark.asyncio
    async def test_modules_keep_input_order(self):
        engine = FakeRuleEngine(respond=union_with_input({}))
        request = _request(input=scripts_input(**{"z.rego": "package z", "a.rego": "package a"}))

        await RegoFunction(engine).run_function(request)

        modules, _ = engine.compiled[0]
        assert [m.name for m in modules] == ["z.rego", "a.rego"]
        assert modules[0].source == "package z"


# =============================================================================
# Scenarios
# =============================================================================


class TestScenarios:
    """End-to-end behavior of representative policies."""

    @pytest.mark.asyncio
    async def test_hello_world(self, desired_foo):
        engine = FakeRuleEngine(
            respond=union_with_input(
                {"results": [{"severity": "SEVERITY_NORMAL", "message": "Hello World!"}]}
            )
        )
        request = _request(desired=desired_foo, input=scripts_input(p="package crossplane"))

        rsp = await RegoFunction(engine).run_function(request)

        assert len(rsp.results) == 1
        assert rsp.results[0].severity is Severity.NORMAL
        assert rsp.results[0].message == "Hello World!"
        assert rsp.desired == request.desired

    @pytest.mark.asyncio
    async def test_results_only_response_keeps_desired(self, desired_foo):
        """response.results = [...] with no desired key in the produced value."""
        engine = FakeRuleEngine(
            EvaluationResult(
                bindings=(
                    {
                        "response": {
                            "results": [{"severity": "SEVERITY_NORMAL", "message": "Hello World!"}]
                        }
                    },
                )
            )
        )
        request = _request(desired=desired_foo, input=scripts_input(p="package crossplane"))

        rsp = await RegoFunction(engine).run_function(request)

        assert [(r.severity, r.message) for r in rsp.results] == [
            (Severity.NORMAL, "Hello World!")
        ]
        assert rsp.desired == request.desired

    @pytest.mark.asyncio
    async def test_illegal_composite_is_fatal(self, desired_foo, illegal_composite):
        request = _request(
            observed=illegal_composite,
            desired=desired_foo,
            input=scripts_input(**{"deny.rego": "package crossplane"}),
        )

        rsp = await RegoFunction(FakeRuleEngine(respond=deny_illegal)).run_function(request)

        assert len(rsp.results) == 1
        assert rsp.results[0].severity is Severity.FATAL
        assert rsp.results[0].message == ILLEGAL_MESSAGE
        assert rsp.desired == request.desired

    @pytest.mark.asyncio
    async def test_legal_composite_has_no_results(self, desired_foo, illegal_composite):
        illegal_composite["composite"]["resource"]["metadata"]["annotations"][
            ILLEGAL_ANNOTATION
        ] = "false"
        request = _request(
            observed=illegal_composite,
            desired=desired_foo,
            input=scripts_input(**{"deny.rego": "package crossplane"}),
        )

        rsp = await RegoFunction(FakeRuleEngine(respond=deny_illegal)).run_function(request)

        assert rsp.results == []
        assert rsp.desired == request.desired


# =============================================================================
# Properties
# =============================================================================


class TestProperties:
    """Guarantees that hold for any policy."""

    @pytest.mark.asyncio
    async def test_pass_through_keeps_desired(self, desired_foo):
        request = _request(desired=desired_foo, input=scripts_input(p="package crossplane"))

        rsp = await RegoFunction(FakeRuleEngine(respond=union_with_input({}))).run_function(request)

        assert rsp.results == []
        assert rsp.desired == request.desired

    @pytest.mark.asyncio
    async def test_fatal_with_desired_keeps_both(self, desired_foo):
        patched = {"resources": {"foo": {"resource": {"metadata": {"name": "foo"}}}}}
        engine = FakeRuleEngine(
            respond=union_with_input(
                {
                    "results": [{"severity": "SEVERITY_FATAL", "message": "denied"}],
                    "desired": patched,
                }
            )
        )
        request = _request(desired=desired_foo, input=scripts_input(p="package crossplane"))

        rsp = await RegoFunction(engine).run_function(request)

        assert rsp.has_fatal
        assert list(rsp.desired.resources) == ["foo"]

    @pytest.mark.asyncio
    async def test_contradictory_branches_are_fatal(self, desired_foo):
        engine = FakeRuleEngine(
            EvaluationResult(
                bindings=(
                    {"response": {"results": []}},
                    {"response": {"results": [{"severity": "SEVERITY_NORMAL"}]}},
                )
            )
        )
        request = _request(desired=desired_foo, input=scripts_input(p="package crossplane"))

        rsp = await RegoFunction(engine).run_function(request)

        assert [r.message for r in rsp.results] == [
            "expected a single result from rego query, got 2"
        ]
        assert rsp.desired == request.desired

    @pytest.mark.asyncio
    async def test_policy_cannot_change_meta(self):
        engine = FakeRuleEngine(
            respond=union_with_input({"meta": {"tag": "evil", "ttl": "1s"}})
        )
        request = _request(input=scripts_input(p="package crossplane"))

        rsp = await RegoFunction(engine).run_function(request)

        assert rsp.results == []
        assert rsp.meta.tag == "hello"
        assert rsp.meta.ttl == timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_meta_restored_after_failure(self):
        engine = FakeRuleEngine(compile_error=CompileError("rego_parse_error: unexpected eof"))
        request = _request(input=scripts_input(p="package"))

        rsp = await RegoFunction(engine, ttl=timedelta(seconds=30)).run_function(request)

        assert rsp.meta.tag == "hello"
        assert rsp.meta.ttl == timedelta(seconds=30)
        assert rsp.results[0].message == "cannot prepare rego query: rego_parse_error: unexpected eof"


# =============================================================================
# Desired-state policies
# =============================================================================


class TestDesiredStatePolicies:
    """Policies that read or patch the desired state."""

    @pytest.mark.asyncio
    async def test_rule_fires_from_desired_state(self):
        """Rule evaluated against input.request.desired instead of observed."""

        def deny_desired(document):
            composite = document["request"]["desired"]["composite"]
            annotations = composite["resource"]["metadata"]["annotations"]
            results = []
            if annotations.get(ILLEGAL_ANNOTATION) == "true":
                results.append({"severity": "SEVERITY_FATAL", "message": ILLEGAL_MESSAGE})
            return union_with_input({"results": results})(document)

        desired = {
            "composite": {"resource": {"metadata": {"annotations": {ILLEGAL_ANNOTATION: "true"}}}}
        }
        request = _request(desired=desired, input=scripts_input(p="package crossplane"))

        rsp = await RegoFunction(FakeRuleEngine(respond=deny_desired)).run_function(request)

        assert rsp.results[0].message == ILLEGAL_MESSAGE
        assert rsp.desired == request.desired

    @pytest.mark.asyncio
    async def test_patch_desired_state(self, desired_foo):
        """Policy unions extra annotations into the composite and resource foo."""

        def patch_desired(document):
            desired = document["response"]["desired"]
            composite = {
                "resource": {
                    "metadata": {
                        "annotations": {ILLEGAL_ANNOTATION: "false", "specFoo": "specBar"}
                    }
                }
            }
            foo = desired["resources"]["foo"]
            foo["resource"]["metadata"]["annotations"] = {"specFoo": "specBar"}
            patched = {"composite": composite, "resources": {"foo": foo}}
            return union_with_input({"desired": patched})(document)

        request = _request(desired=desired_foo, input=scripts_input(p="package crossplane"))

        rsp = await RegoFunction(FakeRuleEngine(respond=patch_desired)).run_function(request)

        assert rsp.results == []
        assert rsp.desired.composite.resource["metadata"]["annotations"] == {
            ILLEGAL_ANNOTATION: "false",
            "specFoo": "specBar",
        }
        foo = rsp.desired.resources["foo"].resource
        assert foo["metadata"] == {"name": "foo", "annotations": {"specFoo": "specBar"}}
        # The request itself is never mutated.
        assert "annotations" not in request.desired.resources["foo"].resource["metadata"]


# =============================================================================
# Timeouts and metrics
# =============================================================================


class TestRunOptions:
    """Tests for deadlines and metrics."""

    @pytest.mark.asyncio
    async def test_default_timeout_passed_to_engine(self):
        engine = FakeRuleEngine(respond=union_with_input({}))
        function = RegoFunction(engine, timeout=5.0)

        await function.run_function(_request(input=scripts_input(p="package crossplane")))
        await function.run_function(
            _request(input=scripts_input(p="package crossplane")), timeout=1.0
        )

        assert engine.timeouts == [5.0, 1.0]

    @pytest.mark.asyncio
    async def test_zero_timeout_overrides_default(self):
        engine = FakeRuleEngine(respond=union_with_input({}))
        function = RegoFunction(engine, timeout=5.0)

        await function.run_function(
            _request(input=scripts_input(p="package crossplane")), timeout=0
        )

        assert engine.timeouts == [0]

    @pytest.mark.asyncio
    async def test_metrics_recorded(self):
        metrics = FunctionMetrics()
        function = RegoFunction(FakeRuleEngine(respond=union_with_input({})), metrics=metrics)

        await function.run_function(_request(input=scripts_input(p="package crossplane")))
        await function.run_function(_request())

        stats = metrics.get_stats()
        assert stats["runs"]["total"] == 2
        assert stats["runs"]["fatal"] == 1
        assert stats["errors_by_kind"] == {"configuration": 1}

    def test_repr(self):
        assert repr(RegoFunction(FakeRuleEngine())) == "RegoFunction(engine='fake')"
