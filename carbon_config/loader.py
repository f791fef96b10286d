"""
Configuration Loader (``carbon_config.loader``).

Responsibility
--------------
Reads a YAML file and parses it into the frozen ``carbon_config.schema``
dataclasses.  Callers go through ``carbon_config.get_active_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key  -> ``ValueError``; typos are never ignored.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from carbon_config.schema import (
    DatabaseSettings,
    EngineSettings,
    IssuanceSettings,
    LedgerSettings,
    LoggingSettings,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseSettings,
    "ledger": LedgerSettings,
    "issuance": IssuanceSettings,
    "logging": LoggingSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _parse_section(name: str, cls: type, data: Any):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"Section '{name}' must be a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown keys in section '{name}': {', '.join(unknown)}")
    return cls(**data)


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """Build EngineSettings from an already-parsed mapping."""
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(unknown)}")
    return EngineSettings(**{
        name: _parse_section(name, cls, data.get(name))
        for name, cls in _SECTIONS.items()
    })


def load_settings(path: Path) -> EngineSettings:
    return parse_settings(load_yaml_file(path))
