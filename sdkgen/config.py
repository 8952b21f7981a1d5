"""Generator settings: defaults, an optional JSON config file, then overrides.

Examples:
  load_config()                                   -> defaults
  load_config("sdkgen.json")                      -> defaults + file
  load_config("sdkgen.json", package_name="shop") -> defaults + file + override
"""

from __future__ import annotations

import dataclasses
import json
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .diagnostics import ConfigError


@dataclass
class GeneratorConfig:
    """Settings for one generation run."""

    package_name: str = "client"
    output_dir: str = "generated"
    default_tag: str = "default"

    # Vendor extension that may carry {"method_name": ...}
    method_name_extension: str = "x-codegen"

    # Formatter run over the output directory, e.g. ["ruff", "format"]
    format_command: list[str] = field(default_factory=list)

    base_url: str = ""

    # Unknown keys from the config file
    custom: dict[str, Any] = field(default_factory=dict)


def _load_config_file(config_path: Path | str) -> dict[str, Any]:
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"configuration file not found: {path}")
    try:
        config = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in configuration file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"cannot read configuration file {path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"configuration file must contain a JSON object: {path}")
    return config


def _dict_to_config(values: dict[str, Any]) -> GeneratorConfig:
    known = {f.name for f in dataclasses.fields(GeneratorConfig)}
    args: dict[str, Any] = {}
    custom: dict[str, Any] = {}
    for key, value in values.items():
        if key in known:
            args[key] = value
        else:
            custom[key] = value

    if custom:
        args["custom"] = {**args.get("custom", {}), **custom}

    command = args.get("format_command")
    if isinstance(command, str):
        args["format_command"] = shlex.split(command)
    elif command is not None and not isinstance(command, list):
        raise ConfigError("format_command must be a string or a list of arguments")
    return GeneratorConfig(**args)


def load_config(config_file: Path | str | None = None, **overrides: Any) -> GeneratorConfig:
    """Merge defaults, the config file and non-None overrides, in that order."""
    values: dict[str, Any] = {}
    if config_file:
        values.update(_load_config_file(config_file))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return _dict_to_config(values)
