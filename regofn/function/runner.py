"""
Rego function runner.

RegoFunction is the unit the host calls once per request:

    request -> seed response -> detach meta -> read input scripts
            -> evaluate + merge -> restore meta -> response

It always returns a structurally valid response. Anything that goes wrong
with the input or the policies is reported as a SEVERITY_FATAL result;
only a broken engine (or task cancellation) escapes as an exception.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from pydantic import ValidationError

from regofn.engine import PolicyModule, RuleEngine
from regofn.errors import ConfigurationError, FunctionError
from regofn.state import RunFunctionRequest, RunFunctionResponse

from . import response
from .context import RunContext
from .merge import evaluate_policies
from .observability import FunctionLogger, FunctionMetrics, get_metrics

logger = logging.getLogger(__name__)


class RegoFunction:
    """
    Evaluates the Rego scripts supplied in a request's input.

    Example:
        function = RegoFunction(OPARuleEngine(), timeout=10.0)
        rsp = await function.run_function(request)
        if rsp.has_fatal:
            ...  # the pipeline stops here
    """

    def __init__(
        self,
        engine: RuleEngine,
        *,
        ttl: timedelta = response.DEFAULT_TTL,
        timeout: float | None = None,
        metrics: FunctionMetrics | None = None,
    ):
        """
        Args:
            engine: Rule engine used for every request
            ttl: Time-to-live stamped on every response
            timeout: Default evaluation deadline in seconds (None: no deadline)
            metrics: Metrics sink (defaults to the process-wide instance)
        """
        self._engine = engine
        self._ttl = ttl
        self._timeout = timeout
        self._metrics = metrics or get_metrics()

    @property
    def engine(self) -> RuleEngine:
        return self._engine

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    async def run_function(
        self,
        request: RunFunctionRequest,
        *,
        timeout: float | None = None,
    ) -> RunFunctionResponse:
        """
        Run the function.

        Args:
            request: The incoming request
            timeout: Evaluation deadline overriding the default

        Returns:
            The response, with the request's tag and the configured ttl
        """
        ctx = RunContext(tag=request.tag)
        log = FunctionLogger(tag=ctx.tag, execution_id=str(ctx.execution_id))

        if timeout is None:
            timeout = self._timeout

        rsp = response.to(request, self._ttl)
        with response.detached_meta(rsp):
            error = await self._run(request, rsp, ctx, log, timeout)

        duration_ms = ctx.elapsed_ms
        self._metrics.record_run(
            fatal=rsp.has_fatal,
            duration_ms=duration_ms,
            error_kind=error.kind if error else None,
        )
        log.function_completed(results=len(rsp.results), fatal=rsp.has_fatal, duration_ms=duration_ms)
        logger.debug(f"Run summary: {ctx.to_audit_dict()}")
        return response.finalize(rsp)

    async def _run(
        self,
        request: RunFunctionRequest,
        rsp: RunFunctionResponse,
        ctx: RunContext,
        log: FunctionLogger,
        timeout: float | None,
    ) -> FunctionError | None:
        try:
            spec = request.get_input().spec
        except ValidationError as e:
            log.input_rejected(str(e))
            return self._fatal(
                rsp,
                log,
                ConfigurationError(f"cannot get Function input from RunFunctionRequest: {e}"),
            )

        if not spec.scripts:
            return self._fatal(rsp, log, ConfigurationError("no scripts supplied"))

        modules = [PolicyModule(name=name, source=source) for name, source in spec.scripts.items()]
        log.function_started(modules=[m.name for m in modules])

        error = await evaluate_policies(
            self._engine,
            modules,
            request,
            rsp,
            timeout=timeout,
            ctx=ctx,
        )

        if "compile" in ctx.step_timings:
            log.policies_compiled(engine=self._engine.name, duration_ms=ctx.step_timings["compile"])
        if "evaluate" in ctx.step_timings:
            log.evaluation_completed(duration_ms=ctx.step_timings["evaluate"])
        if error is not None:
            log.fatal_result(kind=error.kind, message=str(error))
        return error

    @staticmethod
    def _fatal(
        rsp: RunFunctionResponse,
        log: FunctionLogger,
        error: FunctionError,
    ) -> FunctionError:
        logger.info(f"Rejecting request before evaluation: {error}")
        response.fatal(rsp, str(error))
        log.fatal_result(kind=error.kind, message=str(error))
        return error

    def __repr__(self) -> str:
        return f"RegoFunction(engine={self._engine.name!r})"
