"""
Function endpoint for regofn.

Accepts a RunFunctionRequest in protobuf-JSON form and returns the
RunFunctionResponse. Policy failures are not HTTP errors: they come back
as SEVERITY_FATAL results in a 200 response.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from regofn.app.dependencies import get_function
from regofn.function import RegoFunction
from regofn.state import RunFunctionRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["function"])


@router.post("/run")
async def run_function(
    body: RunFunctionRequest,
    function: RegoFunction = Depends(get_function),
) -> dict[str, Any]:
    """Run the policies in the request's input against its state."""
    logger.debug(f"Received request tag={body.tag!r}")
    rsp = await function.run_function(body)
    return rsp.to_wire()
