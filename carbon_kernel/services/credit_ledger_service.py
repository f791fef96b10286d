"""
CreditLedgerService -- the credit transaction engine.

Responsibility:
    Executes purchases (project pool -> buyer wallet, paid in cash) and
    retirements (wallet credit balance -> permanent retirement plus a
    certificate) as single atomic units inside the caller's transaction.

Architecture position:
    Kernel > Services.  The request layer (carbon_services.marketplace)
    owns the session, commits, retries conflicts and records failed
    attempts.

Invariants enforced:
    - Conservation: every credit leaving a project's pool arrives in exactly
      one wallet, recorded by exactly one completed transaction row.
    - No negative balances: all preconditions are evaluated against rows
      read under SELECT ... FOR UPDATE, so they still hold at write time.
    - Lock order is project, then wallet, then the audit sequence counter.
      Every ledger operation follows it, so two operations cannot deadlock.
    - Exact arithmetic: quantities are 4-place Decimals, cash totals are
      quantity * price rounded up to the cent, so a purchase never costs
      less than its exact price.  Floats are refused at the boundary.

Failure modes:
    - InvalidQuantityError, ProjectNotPurchasableError,
      InsufficientCreditsError, InsufficientFundsError,
      CurrencyMismatchError: precondition failed, nothing was written.
    - ProjectNotFoundError, WalletNotFoundError.
    - IssuanceFailedError: the issuer exhausted its serial retries.
    - OptimisticLockError: version conflict (request layer retries).

Audit relevance:
    Each completed purchase/retirement writes one transaction row and one
    audit event in the same transaction as the balance changes.
"""

from decimal import ROUND_CEILING
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from carbon_kernel.db.types import normalize_credit_quantity, round_money
from carbon_kernel.domain.authorization import Capability, Operation, authorize
from carbon_kernel.domain.certification import final_stage
from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.exceptions import (
    CurrencyMismatchError,
    InsufficientCreditsError,
    InsufficientFundsError,
    ProjectNotPurchasableError,
)
from carbon_kernel.logging_config import LogContext, get_logger
from carbon_kernel.models.credit_transaction import (
    CreditTransaction,
    TransactionStatus,
    TransactionType,
)
from carbon_kernel.models.project import Project
from carbon_kernel.models.retirement_certificate import RetirementCertificate
from carbon_kernel.models.wallet import Wallet
from carbon_kernel.services.auditor_service import AuditorService
from carbon_kernel.services.base import BaseService
from carbon_kernel.services.certificate_issuer import CertificateIssuer
from carbon_kernel.services.project_service import ProjectService
from carbon_kernel.services.wallet_service import WalletService

logger = get_logger("services.credit_ledger")


class CreditLedgerService(BaseService[CreditTransaction]):
    """
    Purchase and retirement execution.

    Contract:
        Returns the completed CreditTransaction with the locked wallet and
        project (purchase) or certificate (retirement) already flushed.

    Guarantees:
        - On any raised error the session holds no pending ledger change
          that the caller would commit: all checks run before the first
          mutation.

    Non-goals:
        - Crediting the seller's cash.  Settlement to project owners goes
          through the external payment gateway.
        - Recording failed attempts (request layer, fresh transaction).
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        issuer: CertificateIssuer,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._issuer = issuer
        self._clock = clock or SystemClock()
        self._projects = ProjectService(session, auditor, self._clock)
        self._wallets = WalletService(session, auditor, self._clock)

    def purchase(
        self,
        capability: Capability,
        project_id: UUID,
        quantity: Any,
    ) -> tuple[CreditTransaction, Wallet, Project]:
        """
        Buy ``quantity`` credits from a project's pool at its current price.

        Preconditions (checked against locked rows):
            - quantity > 0 with at most 4 decimal places.
            - project is at the final stage of its pipeline.
            - quantity <= project.available_credits.
            - wallet currency == project currency.
            - wallet.cash_balance >= quantity * price_per_unit, charged
              rounded up to the cent.

        Postconditions:
            - project.available_credits -= quantity
            - wallet.cash_balance -= total_amount
            - wallet.credit_balance += quantity
            - one completed purchase transaction and one audit event.
        """
        authorize(capability, Operation.PURCHASE)
        qty = normalize_credit_quantity(quantity)
        buyer_id = capability.user_id

        with LogContext.bind(project_id=str(project_id), actor_id=str(buyer_id)):
            project = self._projects.lock(project_id)
            wallet = self._wallets.lock_for_user(buyer_id)

            # A sold-out project at its final stage reports InsufficientCredits
            if project.status.value != final_stage(project.pipeline):
                raise ProjectNotPurchasableError(str(project.id), project.status.value)
            if qty > project.available_credits:
                raise InsufficientCreditsError(str(qty), str(project.available_credits))

            if wallet.currency != project.currency:
                raise CurrencyMismatchError(wallet.currency, project.currency)

            price = project.price_per_unit
            total = round_money(qty * price, rounding=ROUND_CEILING)
            if total > wallet.cash_balance:
                raise InsufficientFundsError(str(total), str(wallet.cash_balance), wallet.currency)

            project.available_credits = project.available_credits - qty
            project.updated_by_id = buyer_id
            self._flush("Project", project.id)

            wallet.cash_balance = wallet.cash_balance - total
            wallet.credit_balance = wallet.credit_balance + qty
            wallet.updated_by_id = buyer_id
            self._flush("Wallet", wallet.id)

            txn = CreditTransaction(
                transaction_type=TransactionType.PURCHASE,
                status=TransactionStatus.COMPLETED,
                buyer_id=buyer_id,
                seller_id=project.owner_id,
                wallet_id=wallet.id,
                project_id=project.id,
                credits=qty,
                requested_quantity=str(quantity),
                price_per_unit=price,
                total_amount=total,
                currency=project.currency,
                created_at=self._clock.now(),
            )
            self.session.add(txn)
            self.session.flush()

            self._auditor.record_purchase(
                transaction_id=txn.id,
                project_id=project.id,
                wallet_id=wallet.id,
                credits=qty,
                total_amount=total,
                actor_id=buyer_id,
            )
            logger.info(
                "credits_purchased",
                extra={
                    "wallet_id": str(wallet.id),
                    "credits": str(qty),
                    "total_amount": str(total),
                    "available_after": str(project.available_credits),
                },
            )
            return txn, wallet, project

    def retire(
        self,
        capability: Capability,
        quantity: Any,
        project_id: UUID | None = None,
        reason: str | None = None,
    ) -> tuple[CreditTransaction, RetirementCertificate, Wallet]:
        """
        Permanently retire credits from the caller's wallet.

        Credits are fungible: ``project_id`` is recorded on the certificate
        as a provenance note and is never used to pick a balance.  When
        given it must exist.

        Postconditions:
            - wallet.credit_balance -= quantity
            - one certificate, one completed retirement transaction linked
              to it, and their audit events.
        """
        authorize(capability, Operation.RETIRE)
        qty = normalize_credit_quantity(quantity)
        holder_id = capability.user_id
        if reason is not None and not isinstance(reason, str):
            raise ValueError(f"reason must be a string, got {type(reason).__name__}")
        reason = (reason.strip() or None) if reason is not None else None

        with LogContext.bind(actor_id=str(holder_id)):
            if project_id is not None:
                self._projects.get(project_id)

            wallet = self._wallets.lock_for_user(holder_id)
            if qty > wallet.credit_balance:
                raise InsufficientCreditsError(str(qty), str(wallet.credit_balance))

            wallet.credit_balance = wallet.credit_balance - qty
            wallet.updated_by_id = holder_id
            self._flush("Wallet", wallet.id)

            certificate = self._issuer.issue(
                user_id=holder_id,
                wallet_id=wallet.id,
                project_id=project_id,
                quantity=qty,
                reason=reason,
            )

            txn = CreditTransaction(
                transaction_type=TransactionType.RETIREMENT,
                status=TransactionStatus.COMPLETED,
                buyer_id=holder_id,
                wallet_id=wallet.id,
                project_id=project_id,
                certificate_id=certificate.id,
                credits=qty,
                requested_quantity=str(quantity),
                created_at=self._clock.now(),
            )
            self.session.add(txn)
            self.session.flush()

            self._auditor.record_retirement(
                transaction_id=txn.id,
                wallet_id=wallet.id,
                certificate_id=certificate.id,
                credits=qty,
                actor_id=holder_id,
            )
            logger.info(
                "credits_retired",
                extra={
                    "wallet_id": str(wallet.id),
                    "serial_number": certificate.serial_number,
                    "credits": str(qty),
                    "credit_balance_after": str(wallet.credit_balance),
                },
            )
            return txn, certificate, wallet
