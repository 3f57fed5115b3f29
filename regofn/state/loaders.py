"""
File loaders for requests and compositions.

Useful for running the function locally against a request captured from a
real pipeline, or against the scripts embedded in a Composition manifest.

Usage:
    request = load_request("examples/request.yaml")
    scripts = load_composition_scripts("examples/composition.yaml")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from regofn.errors import ConfigurationError

from .messages import Input, RunFunctionRequest

logger = logging.getLogger(__name__)

REGO_INPUT_API_VERSION = "rego.fn.crossplane.io/v1beta1"


def _read_document(path: str | Path) -> Any:
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def load_request(path: str | Path) -> RunFunctionRequest:
    """
    Load a RunFunctionRequest from a YAML or JSON file.

    Raises:
        pydantic.ValidationError: If the document is not a valid request
    """
    document = _read_document(path) or {}
    logger.debug(f"Loaded request document from {path}")
    return RunFunctionRequest.model_validate(document)


def load_composition_scripts(path: str | Path, step: str | None = None) -> dict[str, str]:
    """
    Extract the Rego scripts from a pipeline-mode Composition.

    Args:
        path: Composition manifest (YAML)
        step: Pipeline step name; defaults to the first step whose
            input is a Rego function Input

    Returns:
        Ordered map of module name to Rego source

    Raises:
        ConfigurationError: If no matching step exists
    """
    composition = _read_document(path) or {}
    pipeline = composition.get("spec", {}).get("pipeline") or []

    for entry in pipeline:
        if step is not None and entry.get("step") != step:
            continue
        raw_input = entry.get("input") or {}
        if step is None and raw_input.get("apiVersion") != REGO_INPUT_API_VERSION:
            continue
        return dict(Input.model_validate(raw_input).spec.scripts)

    wanted = f"step '{step}'" if step else "a step with Rego input"
    raise ConfigurationError(f"composition {path} has no {wanted}")
