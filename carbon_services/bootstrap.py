"""
carbon_services.bootstrap -- application assembly.

Responsibility:
    Turns validated EngineSettings into a running engine: logging, the
    database engine and schema, ORM invariant listeners, and the wired
    request-layer facades.

Architecture position:
    Services.  The only module that combines carbon_config with the kernel.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from carbon_config import EngineSettings, get_active_settings
from carbon_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from carbon_kernel.db.immutability import register_immutability_listeners
from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.logging_config import configure_logging, get_logger
from carbon_kernel.utils.serials import SerialNumberGenerator
from carbon_services.accounts import AccountProvisioningService
from carbon_services.admin_workflow import AdminWorkflowController
from carbon_services.marketplace import MarketplaceService

logger = get_logger("services.bootstrap")


@dataclass(frozen=True)
class Application:
    """The wired request-layer facades."""

    settings: EngineSettings
    session_factory: sessionmaker[Session]
    accounts: AccountProvisioningService
    marketplace: MarketplaceService
    admin: AdminWorkflowController


def create_application(
    settings: EngineSettings | None = None,
    clock: Clock | None = None,
    serial_generator: Callable[[], str] | None = None,
    create_schema: bool = True,
) -> Application:
    """
    Initialize logging, the engine and the schema, and wire the facades.

    Args:
        settings: Validated settings; defaults to ``get_active_settings()``.
        clock: Injected clock (tests); defaults to the system clock.
        serial_generator: Injected serial source (tests); defaults to a
            SerialNumberGenerator with the configured prefix.
        create_schema: Create tables (and PostgreSQL triggers) if missing.
    """
    settings = settings or get_active_settings()
    clock = clock or SystemClock()

    configure_logging(level=settings.logging.level.upper())

    db = settings.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        sqlite_busy_timeout=db.sqlite_busy_timeout,
    )
    if create_schema:
        create_tables(install_triggers=db.install_triggers)
    register_immutability_listeners()

    session_factory = get_session_factory()
    serials = serial_generator or SerialNumberGenerator(
        prefix=settings.issuance.serial_prefix,
        clock=clock,
    )

    application = Application(
        settings=settings,
        session_factory=session_factory,
        accounts=AccountProvisioningService(
            session_factory,
            clock=clock,
            default_currency=settings.ledger.default_currency,
        ),
        marketplace=MarketplaceService(
            session_factory,
            clock=clock,
            serial_generator=serials,
            max_conflict_attempts=settings.ledger.max_conflict_attempts,
            max_issuance_attempts=settings.issuance.max_attempts,
        ),
        admin=AdminWorkflowController(
            session_factory,
            clock=clock,
            max_conflict_attempts=settings.ledger.max_conflict_attempts,
        ),
    )
    logger.info(
        "application_created",
        extra={
            "serial_prefix": settings.issuance.serial_prefix,
            "max_conflict_attempts": settings.ledger.max_conflict_attempts,
        },
    )
    return application
