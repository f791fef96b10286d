"""
carbon_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_settings()``.  No other component reads configuration
    files or environment variables.

Architecture position:
    Configuration.  Sits above ``carbon_kernel`` and beside
    ``carbon_services``.  The kernel MUST NEVER import from
    ``carbon_config``; settings reach it as plain constructor arguments.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_settings()``.
    - Validation before use: a returned EngineSettings has passed
      ``schema.validate``.

Failure modes:
    - ``FileNotFoundError`` -- override path does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from carbon_config.loader import load_settings
from carbon_config.schema import (
    DatabaseSettings,
    EngineSettings,
    IssuanceSettings,
    LedgerSettings,
    LoggingSettings,
    validate,
)

_logger = logging.getLogger("carbon_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV = "CARBON_LEDGER_DATABASE_URL"


def get_active_settings(config_path: Path | None = None) -> EngineSettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load instead of the packaged defaults.

    Returns:
        Validated, frozen EngineSettings.  When ``CARBON_LEDGER_DATABASE_URL``
        is set it replaces ``database.url``.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    settings = load_settings(path)

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        settings = replace(settings, database=replace(settings.database, url=env_url))

    validate(settings)
    _logger.info(
        "config_loaded",
        extra={
            "config_path": str(path),
            "database_url_from_env": bool(env_url),
            "serial_prefix": settings.issuance.serial_prefix,
        },
    )
    return settings


__all__ = [
    "DATABASE_URL_ENV",
    "DEFAULT_CONFIG_PATH",
    "DatabaseSettings",
    "EngineSettings",
    "IssuanceSettings",
    "LedgerSettings",
    "LoggingSettings",
    "get_active_settings",
]
