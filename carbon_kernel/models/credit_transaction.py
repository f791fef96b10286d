"""
Module: carbon_kernel.models.credit_transaction
Responsibility: ORM persistence for the immutable record of every purchase
    and retirement attempt, completed or failed.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listener + DB trigger).
    - A completed row always carries credits > 0 (CHECK).
    - Exactly one completed row per successful engine execution.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE.

Audit relevance:
    The transactions table is the ledger's history.  Conservation
    (total = available + sum of completed purchases) is checked against it
    by LedgerSelector.project_credit_summary().
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import Base, UTCDateTime, UUIDString
from carbon_kernel.db.types import enum_column


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    RETIREMENT = "retirement"


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class CreditTransaction(Base):
    """
    One purchase or retirement event.

    Contract:
        Written once by CreditLedgerService (completed) or by the request
        layer (failed, in its own transaction after the rollback).

    Guarantees:
        - Completed purchases carry price_per_unit and total_amount as they
          were at execution time.
        - Completed retirements link to their certificate.
        - Failed rows carry failure_code (the error's ``code``) and leave
          credits NULL when the requested quantity could not be represented.

    Non-goals:
        - No settlement or payment-gateway state.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint(
            "status = 'failed' OR credits > 0",
            name="ck_transaction_completed_credits_positive",
        ),
        Index("idx_transaction_buyer", "buyer_id"),
        Index("idx_transaction_project", "project_id"),
        Index("idx_transaction_type_status", "transaction_type", "status"),
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        enum_column(TransactionType, "transaction_type", length=16),
        nullable=False,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        enum_column(TransactionStatus, "transaction_status", length=16),
        nullable=False,
    )

    # Acting user (purchaser, or holder retiring credits)
    buyer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # Project owner for purchases
    seller_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    wallet_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("wallets.id"),
        nullable=True,
    )

    project_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=True,
    )

    certificate_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("retirement_certificates.id"),
        nullable=True,
    )

    credits: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    # Raw requested quantity as received (failed rows)
    requested_quantity: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    price_per_unit: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    total_amount: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    currency: Mapped[str | None] = mapped_column(
        String(3),
        nullable=True,
    )

    failure_code: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    failure_reason: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<CreditTransaction {self.transaction_type.value} "
            f"{self.status.value} credits={self.credits}>"
        )

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED
