"""
Evaluation and merge of policy output.

Runs the policy modules against {request, response} and folds the single
response value they produce back into the response object.

Fail-closed rules:
- The response query must yield exactly one solution. None means the
  policy never defined `response`; several mean it is ambiguous.
- The produced value must decode into RunFunctionResponse without any
  unknown key or type mismatch. Decoding is all or nothing.

A silently wrong result here (e.g. desired resources dropped) leads to
resources being deleted downstream, so any doubt becomes a FATAL result.
The response's desired state is left as seeded whenever that happens.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from regofn.engine import RESPONSE_BINDING, RESPONSE_QUERY, EvaluationResult, PolicyModule, RuleEngine
from regofn.errors import CardinalityError, DecodeError, FunctionError
from regofn.state import QueryInput, RunFunctionRequest, RunFunctionResponse

from .context import RunContext
from .response import fatal

logger = logging.getLogger(__name__)

# Response fields a policy may write. meta is owned by the pipeline.
MERGED_FIELDS = ("results", "desired", "context", "requirements")


def single_response(result: EvaluationResult) -> Any:
    """
    Extract the response binding from the only solution.

    Raises:
        CardinalityError: If there is not exactly one solution
        DecodeError: If the solution does not bind the response variable
    """
    if len(result) != 1:
        raise CardinalityError(len(result))
    bindings = result[0]
    if RESPONSE_BINDING not in bindings:
        raise DecodeError(f"rego result has no binding for '{RESPONSE_BINDING}'")
    return bindings[RESPONSE_BINDING]


def decode_response(value: Any) -> RunFunctionResponse:
    """
    Decode a policy-produced value into a RunFunctionResponse.

    Raises:
        DecodeError: On any structural mismatch
    """
    try:
        return RunFunctionResponse.model_validate(value)
    except ValidationError as e:
        out = json.dumps(value, sort_keys=True, default=str)
        raise DecodeError(
            f"cannot unmarshal rego result into RunFunctionResponse: {e}: {out}",
            details={"errors": e.errors(include_url=False)},
        ) from e


def merge_response(rsp: RunFunctionResponse, decoded: RunFunctionResponse) -> None:
    """
    Replace the policy-writable fields of rsp with decoded ones.

    Whole-field replacement: merging of individual resources is the
    policy's job, done against input.response. Only fields the policy
    actually produced are replaced; an omitted (or null) field keeps its
    seeded value. Decoded meta is ignored.
    """
    for name in MERGED_FIELDS:
        if name in decoded.model_fields_set:
            setattr(rsp, name, getattr(decoded, name))


async def evaluate_policies(
    engine: RuleEngine,
    modules: Sequence[PolicyModule],
    request: RunFunctionRequest,
    rsp: RunFunctionResponse,
    *,
    timeout: float | None = None,
    ctx: RunContext | None = None,
) -> FunctionError | None:
    """
    Evaluate modules and merge their output into rsp.

    Expects rsp.meta to be detached by the caller. Never raises a
    FunctionError: the failure is recorded as a FATAL result on rsp and
    returned for observability.

    Args:
        engine: Rule engine to evaluate with
        modules: Policy modules, in input order (must be non-empty)
        request: The incoming request, exposed as input.request
        rsp: The seeded response, exposed as input.response and updated in place
        timeout: Evaluation deadline in seconds
        ctx: Run context for step timings

    Returns:
        The error that produced a FATAL result, or None on success
    """
    ctx = ctx or RunContext(tag=request.tag)

    try:
        with ctx.timed("compile"):
            try:
                prepared = await engine.compile(modules, RESPONSE_QUERY)
            except FunctionError as e:
                raise e.add_context("cannot prepare rego query")

        document = QueryInput(request=request, response=rsp).to_document()

        with ctx.timed("evaluate"):
            try:
                result = await engine.evaluate(prepared, document, timeout=timeout)
            except FunctionError as e:
                raise e.add_context("cannot evaluate rego query")

        with ctx.timed("decode"):
            decoded = decode_response(single_response(result))

    except FunctionError as e:
        logger.warning(f"Policy evaluation failed ({e.kind}): {e}")
        fatal(rsp, str(e))
        return e

    merge_response(rsp, decoded)
    logger.debug(
        f"Merged policy response: results={len(rsp.results)}, "
        f"desired_resources={len(rsp.desired.resources)}"
    )
    return None
