"""
carbon_services.wiring -- per-session container for kernel services.

Responsibility:
    Creates every kernel service exactly once for a session and wires them
    together, so the facades never construct services ad hoc.

Architecture position:
    Services -- the single point of dependency injection for the request
    layer.

Invariants enforced:
    - Single-instance lifecycle: one AuditorService (and so one view of the
      audit chain) per unit of work.
    - All services share the same Session and Clock.

Usage:
    services = KernelServices(session, clock=clock, max_issuance_attempts=5)
    services.ledger.purchase(capability, project_id, Decimal("6"))
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.orm import Session

from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.selectors.ledger_selector import LedgerSelector
from carbon_kernel.services.auditor_service import AuditorService
from carbon_kernel.services.authorization_service import AuthorizationService
from carbon_kernel.services.certificate_issuer import DEFAULT_MAX_ATTEMPTS, CertificateIssuer
from carbon_kernel.services.certification_service import CertificationService
from carbon_kernel.services.credit_ledger_service import CreditLedgerService
from carbon_kernel.services.project_service import ProjectService
from carbon_kernel.services.wallet_service import WalletService


class KernelServices:
    """Kernel services bound to one session.

    Contract:
        Construct once per attempt of a unit of work.  Exposes the services
        as public attributes.

    Non-goals:
        - Does NOT manage transaction boundaries (caller's responsibility).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        serial_generator: Callable[[], str] | None = None,
        max_issuance_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.session = session
        self.clock = clock or SystemClock()

        # Foundational
        self.auditor = AuditorService(session, self.clock)
        self.authorization = AuthorizationService(session, self.auditor, self.clock)

        # Ledger
        self.wallets = WalletService(session, self.auditor, self.clock)
        self.projects = ProjectService(session, self.auditor, self.clock)
        self.certification = CertificationService(session, self.auditor, self.clock)
        self.issuer = CertificateIssuer(
            session,
            self.auditor,
            self.clock,
            serial_generator=serial_generator,
            max_attempts=max_issuance_attempts,
        )
        self.ledger = CreditLedgerService(session, self.auditor, self.issuer, self.clock)

        # Read side
        self.selector = LedgerSelector(session)
