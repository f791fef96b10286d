"""
Module: carbon_kernel.models.wallet
Responsibility: ORM persistence for the one-per-user wallet: cash balance,
    escrow balance and fungible credit balance.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - cash_balance >= 0, escrow_balance >= 0, credit_balance >= 0 (CHECK
      constraints + ORM listener in db/immutability.py).
    - One wallet per user (uq_wallet_user).
    - Never deleted (ORM listener + DB trigger).
    - version is a compare-and-swap row version (version_id_col); a
      concurrent writer that loses the race gets StaleDataError, surfaced
      by the services as OptimisticLockError.

Failure modes:
    - IntegrityError on a second wallet for the same user.
    - LedgerInvariantViolationError if a flush would leave a balance negative.

Audit relevance:
    Balances are mutated only by CreditLedgerService (purchase, retire) and
    WalletService (provisioning).  Every mutation is paired with an
    immutable transactions row and an audit event.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import TrackedBase, UUIDString
from carbon_kernel.db.types import DEFAULT_CURRENCY


class Wallet(TrackedBase):
    """
    Cash and credit holdings of a single user.

    Contract:
        Mutated only by the credit transaction engine.  Reads that precede
        a write must lock the row (SELECT ... FOR UPDATE).

    Guarantees:
        - All three balances are non-negative in every committed state.
        - Every UPDATE bumps version and checks the previous version.

    Non-goals:
        - Deposits and withdrawals (payment gateway) are not modelled here.
        - Credits are fungible: no per-project sub-balance is kept.
    """

    __tablename__ = "wallets"

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_wallet_user"),
        CheckConstraint("cash_balance >= 0", name="ck_wallet_cash_non_negative"),
        CheckConstraint("escrow_balance >= 0", name="ck_wallet_escrow_non_negative"),
        CheckConstraint("credit_balance >= 0", name="ck_wallet_credit_non_negative"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default=DEFAULT_CURRENCY,
    )

    cash_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    # Funds reserved pending settlement
    escrow_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    # Fungible tCO2e held
    credit_balance: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    version: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Wallet user={self.user_id} cash={self.cash_balance} "
            f"credits={self.credit_balance}>"
        )
