"""
Configuration Loader (``job_config.loader``).

Responsibility
--------------
Loads a configuration set YAML file and parses it into the frozen
dataclasses of ``job_config.schema``.  Build/test tooling: runtime code
obtains configuration only through ``job_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id``/``version``  -> ``KeyError`` propagates.
* Unknown keys in a section  -> ``ValueError``.  A typo must not silently
  fall back to a default.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from job_config.schema import ChangeOrderConfig, EngineConfig, NumberingConfig, RetryConfig


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file.  An empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _section(data: dict[str, Any], name: str, schema: type) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Section '{name}' must be a mapping")
    allowed = set(schema.__dataclass_fields__)
    unknown = sorted(set(section) - allowed)
    if unknown:
        raise ValueError(f"Unknown key(s) in '{name}': {', '.join(unknown)}")
    return section


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    """Parse the ``numbering`` section."""
    return NumberingConfig(**_section(data, "numbering", NumberingConfig))


def parse_change_orders(data: dict[str, Any]) -> ChangeOrderConfig:
    """Parse the ``change_orders`` section."""
    return ChangeOrderConfig(**_section(data, "change_orders", ChangeOrderConfig))


def parse_retry(data: dict[str, Any]) -> RetryConfig:
    """Parse the ``retry`` section."""
    return RetryConfig(**_section(data, "retry", RetryConfig))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization.  Deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """Parse a whole configuration set from its YAML dict."""
    return EngineConfig(
        config_id=data["config_id"],
        version=data["version"],
        description=data.get("description", ""),
        numbering=parse_numbering(data),
        change_orders=parse_change_orders(data),
        retry=parse_retry(data),
        checksum=compute_checksum(data),
    )


def load_config_set(path: Path) -> EngineConfig:
    """Load and parse one ``<set>.yaml`` file."""
    return parse_engine_config(load_yaml_file(path))
