from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from deferred_kernel.config.models import AppConfig


# ConfigError is raised for invalid configuration (fail fast).
class ConfigError(ValueError):
    pass


def load_yaml_config(path: Path) -> dict[str, Any]:
    # Raw YAML mapping; typed validation happens in parse_config.
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    return raw


def parse_config(raw: dict[str, Any]) -> AppConfig:
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config: {exc}") from exc


def load_config(path: Path) -> AppConfig:
    return parse_config(load_yaml_config(path))
