"""
carbon_services.marketplace -- buyer- and owner-facing request operations.

Responsibility:
    The request boundary for project registration, compliance signing,
    purchase, retirement, certificate verification and the read API.  Each
    call is one unit of work: fresh session, kernel call, commit, DTO out.

Architecture position:
    Services.  Owns sessions and commits; everything below it only flushes.

Invariants enforced:
    - Purchases and retirements run under conflict retry.
    - A purchase or retirement that fails ledger validation leaves wallet
      and project rows untouched and is recorded as a failed transaction in
      a separate, fresh transaction.  The original error is then re-raised
      unchanged.
    - Only DTOs leave this module, built while the session is still open.

Failure modes:
    - Every kernel error propagates to the caller as its typed exception.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from carbon_kernel.db.engine import session_scope
from carbon_kernel.db.types import MAX_EXACT_AMOUNT
from carbon_kernel.domain.authorization import Capability
from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.domain.dtos import (
    CertificateRecord,
    CertificateVerification,
    ComplianceDeclaration,
    ProjectInfo,
    ProjectRegistration,
    PurchaseResult,
    RetirementResult,
    TransactionRecord,
    WalletInfo,
)
from carbon_kernel.exceptions import LedgerError
from carbon_kernel.logging_config import LogContext, get_logger
from carbon_kernel.models.credit_transaction import (
    CreditTransaction,
    TransactionStatus,
    TransactionType,
)
from carbon_kernel.models.project import Project
from carbon_kernel.models.wallet import Wallet
from carbon_kernel.selectors.ledger_selector import (
    PlatformTotals,
    ProjectCreditSummary,
    WalletSummary,
)
from carbon_kernel.services.certificate_issuer import DEFAULT_MAX_ATTEMPTS
from carbon_services.conflict_retry import DEFAULT_MAX_ATTEMPTS as DEFAULT_CONFLICT_ATTEMPTS
from carbon_services.conflict_retry import run_with_conflict_retry
from carbon_services.wiring import KernelServices

logger = get_logger("services.marketplace")


def _recordable_quantity(quantity: Any) -> Decimal | None:
    """The requested quantity if it can be stored exactly, else None."""
    if isinstance(quantity, (float, bool)) or quantity is None:
        return None
    try:
        value = quantity if isinstance(quantity, Decimal) else Decimal(str(quantity))
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or abs(value) > MAX_EXACT_AMOUNT:
        return None
    return value


class MarketplaceService:
    """
    Buyer/owner facade over the credit ledger.

    Contract:
        Every write method takes the caller's Capability (see
        AccountProvisioningService.capability_for) and returns frozen DTOs.

    Non-goals:
        - Payment collection; cash arrives through the external gateway.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        serial_generator: Callable[[], str] | None = None,
        max_conflict_attempts: int = DEFAULT_CONFLICT_ATTEMPTS,
        max_issuance_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._serial_generator = serial_generator
        self._max_conflict_attempts = max_conflict_attempts
        self._max_issuance_attempts = max_issuance_attempts

    def _services(self, session: Session) -> KernelServices:
        return KernelServices(
            session,
            clock=self._clock,
            serial_generator=self._serial_generator,
            max_issuance_attempts=self._max_issuance_attempts,
        )

    def _run(self, operation: str, fn: Callable[[KernelServices], Any]) -> Any:
        return run_with_conflict_retry(
            self._session_factory,
            lambda session: fn(self._services(session)),
            operation=operation,
            max_attempts=self._max_conflict_attempts,
        )

    def _record_failure(
        self,
        transaction_type: TransactionType,
        capability: Capability,
        project_id: UUID | None,
        quantity: Any,
        error: LedgerError,
    ) -> None:
        with session_scope(self._session_factory) as session:
            wallet_id = session.execute(
                select(Wallet.id).where(Wallet.user_id == capability.user_id)
            ).scalar_one_or_none()
            project = session.get(Project, project_id) if project_id is not None else None
            session.add(CreditTransaction(
                transaction_type=transaction_type,
                status=TransactionStatus.FAILED,
                buyer_id=capability.user_id,
                seller_id=project.owner_id if project is not None else None,
                wallet_id=wallet_id,
                project_id=project.id if project is not None else None,
                credits=_recordable_quantity(quantity),
                requested_quantity=str(quantity)[:64],
                price_per_unit=project.price_per_unit if project is not None else None,
                currency=project.currency if project is not None else None,
                failure_code=error.code,
                failure_reason=str(error)[:1000],
                created_at=self._clock.now(),
            ))
        logger.info(
            "failed_transaction_recorded",
            extra={
                "transaction_type": transaction_type.value,
                "failure_code": error.code,
                "user_id": str(capability.user_id),
            },
        )

    # Owner operations

    def register_project(
        self,
        capability: Capability,
        registration: ProjectRegistration,
    ) -> ProjectInfo:
        with session_scope(self._session_factory) as session:
            project = self._services(session).projects.register_project(capability, registration)
            return ProjectInfo.from_model(project)

    def sign_compliance_declaration(
        self,
        capability: Capability,
        project_id: UUID,
        declaration: ComplianceDeclaration | str,
    ) -> ProjectInfo:
        def work(services: KernelServices) -> ProjectInfo:
            project = services.projects.sign_compliance_declaration(
                capability, project_id, declaration
            )
            return ProjectInfo.from_model(project)

        return self._run("sign_compliance_declaration", work)

    # Buyer operations

    def purchase(self, capability: Capability, project_id: UUID, quantity: Any) -> PurchaseResult:
        def work(services: KernelServices) -> PurchaseResult:
            txn, wallet, project = services.ledger.purchase(capability, project_id, quantity)
            return PurchaseResult(
                transaction=TransactionRecord.from_model(txn),
                wallet=WalletInfo.from_model(wallet),
                project=ProjectInfo.from_model(project),
            )

        with LogContext.bind(actor_id=str(capability.user_id), project_id=str(project_id)):
            try:
                return self._run("purchase", work)
            except LedgerError as exc:
                logger.info("purchase_rejected", extra={"failure_code": exc.code})
                self._record_failure(TransactionType.PURCHASE, capability, project_id, quantity, exc)
                raise

    def retire(
        self,
        capability: Capability,
        quantity: Any,
        reason: str | None = None,
        project_id: UUID | None = None,
    ) -> RetirementResult:
        def work(services: KernelServices) -> RetirementResult:
            txn, certificate, wallet = services.ledger.retire(
                capability, quantity, project_id=project_id, reason=reason
            )
            return RetirementResult(
                transaction=TransactionRecord.from_model(txn),
                certificate=CertificateRecord.from_model(certificate),
                wallet=WalletInfo.from_model(wallet),
            )

        with LogContext.bind(actor_id=str(capability.user_id)):
            try:
                return self._run("retire", work)
            except LedgerError as exc:
                logger.info("retirement_rejected", extra={"failure_code": exc.code})
                self._record_failure(TransactionType.RETIREMENT, capability, project_id, quantity, exc)
                raise

    # Read API

    def verify_certificate(self, serial_number: str) -> CertificateVerification:
        with session_scope(self._session_factory) as session:
            return self._services(session).issuer.verify(serial_number)

    def marketplace_listing(self) -> list[ProjectInfo]:
        with session_scope(self._session_factory) as session:
            return self._services(session).selector.marketplace_listing()

    def wallet_summary(self, user_id: UUID) -> WalletSummary:
        with session_scope(self._session_factory) as session:
            return self._services(session).selector.wallet_summary(user_id)

    def project_credit_summary(self, project_id: UUID) -> ProjectCreditSummary:
        with session_scope(self._session_factory) as session:
            return self._services(session).selector.project_credit_summary(project_id)

    def transactions_for_user(self, user_id: UUID, include_failed: bool = False) -> list[TransactionRecord]:
        with session_scope(self._session_factory) as session:
            return self._services(session).selector.transactions_for_user(
                user_id, include_failed=include_failed
            )

    def transactions_for_project(self, project_id: UUID) -> list[TransactionRecord]:
        with session_scope(self._session_factory) as session:
            return self._services(session).selector.transactions_for_project(project_id)

    def certificates_for_user(self, user_id: UUID) -> list[CertificateRecord]:
        with session_scope(self._session_factory) as session:
            return self._services(session).selector.certificates_for_user(user_id)

    def platform_totals(self) -> PlatformTotals:
        with session_scope(self._session_factory) as session:
            return self._services(session).selector.platform_totals()
