from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from deploy_kernel.config.models import AppConfig


# ConfigError is raised for invalid configuration (fail fast, before any step runs).
class ConfigError(ValueError):
    pass


def load_yaml_config(path: Path) -> dict[str, Any]:
    # Raw YAML mapping; validation happens in load_config.
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    return raw


def parse_config(raw: dict[str, Any]) -> AppConfig:
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(_format_validation_error(exc)) from exc


def load_config(path: Path) -> AppConfig:
    return parse_config(load_yaml_config(path))


def _format_validation_error(exc: ValidationError) -> str:
    # One line per problem, addressed by dotted path ("environment.network: ...").
    lines = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        lines.append(f"{location}: {error['msg']}")
    return "Invalid config:\n  " + "\n  ".join(lines)
