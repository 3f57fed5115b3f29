"""
Response helpers for regofn.

Functions run in a pipeline: other functions may already have produced
desired state. `to()` seeds a response that passes that state through
unchanged, so a function only has to touch what it cares about.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta

from regofn.state import (
    ResponseMeta,
    Result,
    RunFunctionRequest,
    RunFunctionResponse,
    Severity,
    State,
)

DEFAULT_TTL = timedelta(seconds=60)


def to(request: RunFunctionRequest, ttl: timedelta = DEFAULT_TTL) -> RunFunctionResponse:
    """
    Create a response to the supplied request.

    The response echoes the request's tag, carries the given ttl, and
    copies the request's desired state and context verbatim.
    """
    desired = request.desired.model_copy(deep=True) if request.desired else State()
    context = copy.deepcopy(request.context)
    return RunFunctionResponse(
        meta=ResponseMeta(tag=request.tag, ttl=ttl),
        desired=desired,
        context=context,
    )


def fatal(rsp: RunFunctionResponse, message: str) -> None:
    """Append a SEVERITY_FATAL result."""
    rsp.results.append(Result(severity=Severity.FATAL, message=message))


def warning(rsp: RunFunctionResponse, message: str) -> None:
    """Append a SEVERITY_WARNING result."""
    rsp.results.append(Result(severity=Severity.WARNING, message=message))


def normal(rsp: RunFunctionResponse, message: str) -> None:
    """Append a SEVERITY_NORMAL result."""
    rsp.results.append(Result(severity=Severity.NORMAL, message=message))


@contextmanager
def detached_meta(rsp: RunFunctionResponse) -> Iterator[ResponseMeta | None]:
    """
    Hide response metadata for the duration of the block.

    Metadata belongs to the pipeline. It is removed before policies see the
    response and put back on every exit path, overriding anything written
    to rsp.meta inside the block.
    """
    meta = rsp.meta
    rsp.meta = None
    try:
        yield meta
    finally:
        rsp.meta = meta


def finalize(rsp: RunFunctionResponse) -> RunFunctionResponse:
    """Return the response to the pipeline once metadata is restored."""
    return rsp
