"""
regofn - Rego policy evaluation for composition pipelines.

regofn is one stage of a resource composition pipeline. Given the observed
and desired state of a composite resource and a set of Rego policy scripts,
it evaluates the scripts and returns:

- **Results**: severity-tagged messages (SEVERITY_FATAL stops the pipeline)
- **Desired state**: passed through unchanged, or patched by the policies

Policies see `input.request` and `input.response` and must define
`data.crossplane.response`, usually as a union over `input.response`:

    package crossplane

    results = [{"severity": "SEVERITY_NORMAL", "message": "Hello World!"}]

    response = object.union(input.response, {"results": results})

Quick Start:
    >>> from regofn import OPARuleEngine, RegoFunction, RunFunctionRequest
    >>>
    >>> function = RegoFunction(OPARuleEngine())
    >>> rsp = await function.run_function(RunFunctionRequest.model_validate(doc))
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"

from regofn.engine import OPARuleEngine, PolicyModule, RuleEngine
from regofn.errors import EngineUnavailableError, FunctionError
from regofn.function import RegoFunction
from regofn.state import Result, RunFunctionRequest, RunFunctionResponse, Severity, State

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Function
    "RegoFunction",
    # Engines
    "RuleEngine",
    "OPARuleEngine",
    "PolicyModule",
    # State
    "RunFunctionRequest",
    "RunFunctionResponse",
    "Result",
    "Severity",
    "State",
    # Errors
    "FunctionError",
    "EngineUnavailableError",
]
