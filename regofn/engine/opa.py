"""
Open Policy Agent rule engine for regofn.

Drives the `opa` command line binary:
- compile: `opa check` over the policy modules
- evaluate: `opa eval` with the query input on stdin

Each call gets a private temporary directory holding the modules as files,
removed as soon as the subprocess exits. Nothing is cached between calls,
so concurrent requests never share state.

Requirements:
- OPA >= 1.0 on PATH (or an explicit binary path)
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Literal, Mapping

from regofn.errors import (
    CardinalityError,
    CompileError,
    EngineUnavailableError,
    EvaluationCancelled,
    EvaluationError,
)

from .base import BaseRuleEngine, EvaluationResult, PolicyModule, PreparedQuery

logger = logging.getLogger(__name__)

RegoVersion = Literal["v0", "v1"]

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")

# Reported when a complete rule (such as response) has several values.
CONFLICT_ERROR_CODE = "eval_conflict_error"


@contextmanager
def _module_directory(modules: tuple[PolicyModule, ...]) -> Iterator[tuple[Path, dict[str, str]]]:
    """
    Write modules to a temporary directory.

    Yields the directory and a map of written file path to module name, so
    engine messages can refer to modules by the name their author gave them.
    """
    with tempfile.TemporaryDirectory(prefix="regofn-") as tmp:
        directory = Path(tmp)
        files: dict[str, str] = {}
        for index, module in enumerate(modules):
            stem = _UNSAFE_FILENAME_CHARS.sub("_", module.name).removesuffix(".rego") or "module"
            path = directory / f"{index:03d}-{stem}.rego"
            path.write_text(module.source, encoding="utf-8")
            files[str(path)] = module.name
        yield directory, files


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


class OPARuleEngine(BaseRuleEngine):
    """
    Rule engine backed by the OPA binary.

    Features:
    - Compile and runtime errors kept apart (rego_* vs eval_* error codes)
    - Conflicting rule outputs reported as a cardinality failure
    - Deadlines enforced by killing the subprocess
    - Rego v0 syntax support for existing policy sets
    """

    def __init__(
        self,
        binary: str = "opa",
        *,
        rego_version: RegoVersion = "v0",
        compile_timeout: float = 30.0,
    ):
        """
        Initialize the OPA engine.

        Args:
            binary: Name or path of the opa executable
            rego_version: "v0" to accept pre-1.0 syntax, "v1" for the engine default
            compile_timeout: Deadline in seconds for `opa check`

        Raises:
            EngineUnavailableError: If the binary cannot be found
        """
        resolved = shutil.which(binary)
        if resolved is None:
            raise EngineUnavailableError("opa", f"executable '{binary}' not found")
        self._binary = resolved
        self._rego_version = rego_version
        self._compile_timeout = compile_timeout

    @property
    def name(self) -> str:
        return "opa"

    @property
    def binary(self) -> str:
        return self._binary

    def _version_args(self) -> list[str]:
        return ["--v0-compatible"] if self._rego_version == "v0" else []

    async def _compile(
        self,
        modules: tuple[PolicyModule, ...],
        query: str,
    ) -> PreparedQuery:
        with _module_directory(modules) as (directory, files):
            code, stdout, stderr = await self._run(
                ["check", "--format", "json", *self._version_args(), str(directory)],
                timeout=self._compile_timeout,
            )
            if code != 0:
                errors = self._parse_errors(stdout, stderr)
                raise CompileError(
                    self._describe(errors, files, stderr),
                    details={"errors": errors},
                )

        logger.debug(f"Compiled {len(modules)} module(s) for query '{query}'")
        return PreparedQuery(query=query, modules=modules, engine=self.name)

    async def evaluate(
        self,
        prepared: PreparedQuery,
        input: Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> EvaluationResult:
        document = json.dumps(input).encode("utf-8")

        with _module_directory(prepared.modules) as (directory, files):
            code, stdout, stderr = await self._run(
                [
                    "eval",
                    "--format",
                    "json",
                    "--stdin-input",
                    *self._version_args(),
                    "--data",
                    str(directory),
                    prepared.query,
                ],
                stdin=document,
                timeout=timeout,
            )

            output = self._load_json(stdout)
            errors = output.get("errors") if isinstance(output, dict) else None
            if code != 0 or errors:
                errors = errors or self._parse_errors(stdout, stderr)
                message = self._describe(errors, files, stderr)
                codes = [str(e.get("code", "")) for e in errors]
                if any(c.startswith("rego_") for c in codes):
                    raise CompileError(message, details={"errors": errors})
                if CONFLICT_ERROR_CODE in codes:
                    raise CardinalityError(
                        None,
                        message=f"expected a single result from rego query: {message}",
                        details={"errors": errors},
                    )
                raise EvaluationError(message, details={"errors": errors})

        if not isinstance(output, dict):
            raise EvaluationError(f"unexpected output from opa eval: {stdout[:200]!r}")

        results = output.get("result") or []
        return EvaluationResult(
            bindings=tuple(dict(r.get("bindings") or {}) for r in results),
        )

    async def _run(
        self,
        args: list[str],
        *,
        stdin: bytes | None = None,
        timeout: float | None = None,
    ) -> tuple[int, bytes, bytes]:
        proc = await asyncio.create_subprocess_exec(
            self._binary,
            *args,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(stdin), timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            logger.warning(f"opa {args[0]} exceeded {timeout}s deadline, killed")
            raise EvaluationCancelled(timeout or 0.0) from None
        except asyncio.CancelledError:
            await _kill(proc)
            raise
        return proc.returncode or 0, stdout, stderr

    @staticmethod
    def _load_json(raw: bytes) -> Any:
        try:
            return json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError:
            return None

    def _parse_errors(self, stdout: bytes, stderr: bytes) -> list[dict[str, Any]]:
        for raw in (stdout, stderr):
            output = self._load_json(raw)
            if isinstance(output, dict) and isinstance(output.get("errors"), list):
                return [e for e in output["errors"] if isinstance(e, dict)]
        return []

    @staticmethod
    def _describe(errors: list[dict[str, Any]], files: dict[str, str], stderr: bytes) -> str:
        """Render engine errors, naming modules instead of temp file paths."""
        if errors:
            lines = []
            for error in errors:
                message = str(error.get("message", "unknown error"))
                code = error.get("code")
                location = error.get("location") or {}
                where = files.get(str(location.get("file", "")), location.get("file"))
                prefix = f"{where}:{location['row']}: " if where and "row" in location else ""
                lines.append(f"{prefix}{code}: {message}" if code else f"{prefix}{message}")
            text = "; ".join(lines)
        else:
            text = stderr.decode("utf-8", errors="replace").strip() or "opa failed without output"

        for path, name in files.items():
            text = text.replace(path, name)
        return text
