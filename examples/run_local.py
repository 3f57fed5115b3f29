"""
Run a composition step locally.

Loads the Rego scripts of one pipeline step from a Composition, puts them
into a captured RunFunctionRequest, and prints the response.

Usage:
    python examples/run_local.py
    python examples/run_local.py examples/composition.yaml examples/request.yaml annotateResources

Requires the `opa` binary on PATH.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

from regofn import OPARuleEngine, RegoFunction
from regofn.state import load_composition_scripts, load_request

HERE = Path(__file__).parent


async def main() -> int:
    composition = sys.argv[1] if len(sys.argv) > 1 else HERE / "composition.yaml"
    request_file = sys.argv[2] if len(sys.argv) > 2 else HERE / "request.yaml"
    step = sys.argv[3] if len(sys.argv) > 3 else None

    scripts = load_composition_scripts(composition, step=step)
    request = load_request(request_file)
    request.input = {
        "apiVersion": "rego.fn.crossplane.io/v1beta1",
        "kind": "Input",
        "spec": {"scripts": scripts},
    }

    function = RegoFunction(OPARuleEngine(), timeout=10.0)
    rsp = await function.run_function(request)

    print(json.dumps(rsp.to_wire(), indent=2))
    for result in rsp.results:
        print(result, file=sys.stderr)

    return 1 if rsp.has_fatal else 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(asyncio.run(main()))
