from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import fields
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import MergeOptions

"""Run options loader.

Responsibilities:
- Load an optional YAML options file (keys = MergeOptions field names)
- Validate it against the packaged options_schema.json
- Apply defaults, then CLI overrides (None means "not given on the CLI")
"""

SCHEMA_PATH = Path(__file__).parent / "options_schema.json"


class ConfigError(Exception):
    pass


def _validate_options_schema(data: dict[str, Any]) -> None:
    """Validate options data against the JSON schema.

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or the
            options fail schema validation (unknown keys, wrong types).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"options schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"options validation failed: {e.message}") from e


def read_options_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"options file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"options file must contain a mapping, got {type(data).__name__}")

    _validate_options_schema(data)
    return data


def load_options(
    path: Path | None = None, overrides: Mapping[str, Any] | None = None
) -> MergeOptions:
    """Build MergeOptions from defaults < options file < overrides."""
    values: dict[str, Any] = {}
    if path is not None:
        values.update(read_options_file(path))

    known = {f.name for f in fields(MergeOptions)}
    for key, value in (overrides or {}).items():
        if key not in known:
            raise ConfigError(f"unknown option: {key}")
        if value is None:
            continue
        # store_true flags arrive as False when not given; only True overrides the file
        if value is False and key in values:
            continue
        values[key] = value

    return MergeOptions(**values)
