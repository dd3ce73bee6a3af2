"""Shared YAML-to-Pydantic loader utility."""

from __future__ import annotations

from pathlib import Path
from typing import TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from rolesync.errors import ConfigurationError

_T = TypeVar("_T", bound=BaseModel)


def load_yaml_model(path: Path, model_cls: type[_T]) -> _T:
    """Read a YAML file and validate it against a Pydantic model.

    An empty file validates as an empty mapping, so models whose fields
    all have defaults can be declared with a blank file.

    Raises:
        ConfigurationError: on unreadable files, invalid YAML, a
            non-mapping document, or a schema violation.
    """
    try:
        raw = path.read_text()
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Validation failed for {path}:\n{e}") from e


def load_optional_yaml_model(path: Path, model_cls: type[_T]) -> _T:
    """Like :func:`load_yaml_model`, but return the model's defaults when *path* is absent."""
    if not path.exists():
        return model_cls()
    return load_yaml_model(path, model_cls)
