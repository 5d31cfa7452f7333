"""Evaluation settings and their YAML loader."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

NETWORK_NAMES = ("main", "test", "signet", "regtest")
DEFAULT_MAX_DEPTH = 100


class ConfigError(ValueError):
    """Raised for malformed or unknown configuration settings."""


@dataclass
class EvalConfig:
    """Settings shared by the evaluator, the report and the CLI."""

    network: str = "main"           # network used for addresses in reports
    max_depth: int = DEFAULT_MAX_DEPTH  # maximum scope nesting before giving up
    demo: bool = False              # pre-bind the demo keys and hashes

    def __post_init__(self) -> None:
        if self.network not in NETWORK_NAMES:
            raise ConfigError(
                f"unknown network {self.network!r}, expected one of: {', '.join(NETWORK_NAMES)}"
            )
        if not isinstance(self.max_depth, int) or self.max_depth < 1:
            raise ConfigError(f"max_depth must be a positive integer, got {self.max_depth!r}")

    def replace(self, **changes: Any) -> "EvalConfig":
        """Return a copy with ``changes`` applied, skipping ``None`` values."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in changes.items() if v is not None})
        return EvalConfig(**values)


def config_from_mapping(data: Mapping[str, Any]) -> EvalConfig:
    """Build an ``EvalConfig`` from a plain mapping, rejecting unknown keys."""

    known = {f.name for f in fields(EvalConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")
    return EvalConfig(**dict(data))


def load_config(path: Path | str) -> EvalConfig:
    """Load a YAML settings file and return the resulting ``EvalConfig``."""

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"configuration file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as fp:
            data: Dict[str, Any] = yaml.safe_load(fp) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML parse error in {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"configuration must be a mapping, got {type(data)!r}")
    return config_from_mapping(data)
