"""
EngineSettings schema.

The typed, frozen form of the engine's YAML configuration.  The loader
parses ``defaults.yaml`` (or an override file) into these dataclasses;
``validate()`` rejects values the engine cannot run with.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_PREFIX_RE = re.compile(r"^[A-Z][A-Z0-9]{1,15}$")
_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection and pool settings passed to ``init_engine_from_url``."""

    url: str = "sqlite:///carbon_ledger.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_busy_timeout: float = 30.0
    install_triggers: bool = True


@dataclass(frozen=True)
class LedgerSettings:
    default_currency: str = "INR"
    max_conflict_attempts: int = 3


@dataclass(frozen=True)
class IssuanceSettings:
    serial_prefix: str = "CCR"
    max_attempts: int = 5


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class EngineSettings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    issuance: IssuanceSettings = field(default_factory=IssuanceSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def validate(settings: EngineSettings) -> EngineSettings:
    """
    Check a parsed configuration.

    Returns the settings unchanged.

    Raises:
        ValueError: listing every problem found.
    """
    errors: list[str] = []

    if not settings.database.url:
        errors.append("database.url must not be empty")
    if settings.database.pool_size < 1:
        errors.append("database.pool_size must be positive")
    if settings.database.max_overflow < 0:
        errors.append("database.max_overflow must not be negative")
    if settings.database.sqlite_busy_timeout <= 0:
        errors.append("database.sqlite_busy_timeout must be positive")

    currency = settings.ledger.default_currency
    if len(currency) != 3 or not currency.isalpha() or not currency.isupper():
        errors.append(f"ledger.default_currency must be a 3-letter upper-case code, got {currency!r}")
    if settings.ledger.max_conflict_attempts < 1:
        errors.append("ledger.max_conflict_attempts must be positive")

    if not settings.issuance.serial_prefix:
        errors.append("issuance.serial_prefix must not be empty")
    elif not _PREFIX_RE.match(settings.issuance.serial_prefix):
        errors.append(
            "issuance.serial_prefix must be 2-16 upper-case letters/digits "
            f"starting with a letter, got {settings.issuance.serial_prefix!r}"
        )
    if settings.issuance.max_attempts < 1:
        errors.append("issuance.max_attempts must be positive")

    if settings.logging.level.upper() not in _LEVELS:
        errors.append(f"logging.level must be one of {sorted(_LEVELS)}, got {settings.logging.level!r}")

    if errors:
        raise ValueError("Invalid engine configuration: " + "; ".join(errors))
    return settings
