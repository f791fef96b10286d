"""
Module: carbon_kernel.selectors.ledger_selector
Responsibility: Server-side aggregates over wallets, projects, transactions and
    certificates: per-user and per-project summaries, histories, the
    marketplace listing and platform totals.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Conservation check: project_credit_summary() reports whether
      total == available + SUM(completed purchase credits) holds for the
      stored rows.
    - Sums are computed in SQL over exact-decimal columns and come back as
      Decimal on every backend.  An empty SUM is reported as 0.

Failure modes:
    - WalletNotFoundError / ProjectNotFoundError for keyed summaries.

Audit relevance:
    project_credit_summary().conserved is the operational check that the
    purchase path never over- or under-debits a pool.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from carbon_kernel.domain.certification import PIPELINES, final_stage
from carbon_kernel.domain.dtos import CertificateRecord, ProjectInfo, TransactionRecord
from carbon_kernel.exceptions import ProjectNotFoundError, WalletNotFoundError
from carbon_kernel.models.credit_transaction import (
    CreditTransaction,
    TransactionStatus,
    TransactionType,
)
from carbon_kernel.models.project import CertificationPipeline, Project, ProjectStatus
from carbon_kernel.models.retirement_certificate import RetirementCertificate
from carbon_kernel.models.wallet import Wallet
from carbon_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


@dataclass(frozen=True)
class WalletSummary:
    """Balances plus lifetime purchase/retirement totals for one user."""

    user_id: UUID
    wallet_id: UUID
    currency: str
    cash_balance: Decimal
    escrow_balance: Decimal
    credit_balance: Decimal
    total_purchased: Decimal
    total_spent: Decimal
    total_retired: Decimal
    certificate_count: int


@dataclass(frozen=True)
class ProjectCreditSummary:
    project_id: UUID
    status: str
    total_credits: Decimal
    available_credits: Decimal
    sold_credits: Decimal
    purchased_per_ledger: Decimal
    purchase_count: int

    @property
    def conserved(self) -> bool:
        return self.total_credits == self.available_credits + self.purchased_per_ledger


@dataclass(frozen=True)
class PlatformTotals:
    projects_by_status: dict[str, int]
    credits_issued: Decimal
    credits_available: Decimal
    credits_sold: Decimal
    credits_retired: Decimal
    purchase_volume: dict[str, Decimal]
    purchase_count: int
    certificate_count: int


def _purchasable_clause():
    """SQL predicate: project sits at the final stage of its own pipeline."""
    return or_(*(
        and_(
            Project.pipeline == CertificationPipeline(name),
            Project.status == ProjectStatus(final_stage(name)),
        )
        for name in PIPELINES
    ))


class LedgerSelector(BaseSelector[Wallet]):
    """
    Read API for the credit ledger.

    Contract:
        Every method runs a bounded number of aggregate queries; none loads
        whole tables into Python.

    Non-goals:
        - Currency conversion.  Purchase volume is reported per currency.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _sum(self, column, *criteria) -> Decimal:
        query = select(func.sum(column))
        if criteria:
            query = query.where(*criteria)
        value = self.session.execute(query).scalar()
        return value if value is not None else ZERO

    def _count(self, column, *criteria) -> int:
        query = select(func.count(column))
        if criteria:
            query = query.where(*criteria)
        return self.session.execute(query).scalar() or 0

    def wallet_summary(self, user_id: UUID) -> WalletSummary:
        wallet = self.session.execute(
            select(Wallet).where(Wallet.user_id == user_id)
        ).scalar_one_or_none()
        if wallet is None:
            raise WalletNotFoundError(str(user_id))

        completed_purchase = (
            CreditTransaction.buyer_id == user_id,
            CreditTransaction.transaction_type == TransactionType.PURCHASE,
            CreditTransaction.status == TransactionStatus.COMPLETED,
        )
        return WalletSummary(
            user_id=wallet.user_id,
            wallet_id=wallet.id,
            currency=wallet.currency,
            cash_balance=wallet.cash_balance,
            escrow_balance=wallet.escrow_balance,
            credit_balance=wallet.credit_balance,
            total_purchased=self._sum(CreditTransaction.credits, *completed_purchase),
            total_spent=self._sum(CreditTransaction.total_amount, *completed_purchase),
            total_retired=self._sum(
                RetirementCertificate.credits_retired,
                RetirementCertificate.user_id == user_id,
            ),
            certificate_count=self._count(
                RetirementCertificate.id,
                RetirementCertificate.user_id == user_id,
            ),
        )

    def project_credit_summary(self, project_id: UUID) -> ProjectCreditSummary:
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))

        completed_purchase = (
            CreditTransaction.project_id == project_id,
            CreditTransaction.transaction_type == TransactionType.PURCHASE,
            CreditTransaction.status == TransactionStatus.COMPLETED,
        )
        return ProjectCreditSummary(
            project_id=project.id,
            status=project.status.value,
            total_credits=project.total_credits,
            available_credits=project.available_credits,
            sold_credits=project.sold_credits,
            purchased_per_ledger=self._sum(CreditTransaction.credits, *completed_purchase),
            purchase_count=self._count(CreditTransaction.id, *completed_purchase),
        )

    def transactions_for_user(
        self,
        user_id: UUID,
        include_failed: bool = False,
        limit: int | None = None,
    ) -> list[TransactionRecord]:
        """Newest first."""
        query = select(CreditTransaction).where(CreditTransaction.buyer_id == user_id)
        if not include_failed:
            query = query.where(CreditTransaction.status == TransactionStatus.COMPLETED)
        query = query.order_by(CreditTransaction.created_at.desc(), CreditTransaction.id)
        if limit is not None:
            query = query.limit(limit)
        return [TransactionRecord.from_model(t) for t in self.session.execute(query).scalars()]

    def transactions_for_project(
        self,
        project_id: UUID,
        include_failed: bool = False,
    ) -> list[TransactionRecord]:
        query = select(CreditTransaction).where(CreditTransaction.project_id == project_id)
        if not include_failed:
            query = query.where(CreditTransaction.status == TransactionStatus.COMPLETED)
        query = query.order_by(CreditTransaction.created_at.desc(), CreditTransaction.id)
        return [TransactionRecord.from_model(t) for t in self.session.execute(query).scalars()]

    def certificates_for_user(self, user_id: UUID) -> list[CertificateRecord]:
        rows = self.session.execute(
            select(RetirementCertificate)
            .where(RetirementCertificate.user_id == user_id)
            .order_by(RetirementCertificate.issued_at.desc(), RetirementCertificate.serial_number)
        ).scalars()
        return [CertificateRecord.from_model(c) for c in rows]

    def marketplace_listing(self) -> list[ProjectInfo]:
        """Projects that can be bought from right now, cheapest first."""
        rows = self.session.execute(
            select(Project)
            .where(_purchasable_clause(), Project.available_credits > 0)
            .order_by(Project.price_per_unit, Project.name)
        ).scalars()
        return [ProjectInfo.from_model(p) for p in rows]

    def platform_totals(self) -> PlatformTotals:
        by_status = {
            status.value: count
            for status, count in self.session.execute(
                select(Project.status, func.count(Project.id)).group_by(Project.status)
            )
        }

        completed_purchase = (
            CreditTransaction.transaction_type == TransactionType.PURCHASE,
            CreditTransaction.status == TransactionStatus.COMPLETED,
        )
        volume = {
            currency: amount if amount is not None else ZERO
            for currency, amount in self.session.execute(
                select(CreditTransaction.currency, func.sum(CreditTransaction.total_amount))
                .where(*completed_purchase)
                .group_by(CreditTransaction.currency)
            )
        }

        return PlatformTotals(
            projects_by_status=by_status,
            credits_issued=self._sum(Project.total_credits),
            credits_available=self._sum(Project.available_credits),
            credits_sold=self._sum(CreditTransaction.credits, *completed_purchase),
            credits_retired=self._sum(RetirementCertificate.credits_retired),
            purchase_volume=volume,
            purchase_count=self._count(CreditTransaction.id, *completed_purchase),
            certificate_count=self._count(RetirementCertificate.id),
        )
