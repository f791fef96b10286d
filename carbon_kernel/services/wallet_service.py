"""
WalletService -- wallet provisioning and locked wallet access.

Responsibility:
    Creates the single wallet a user holds (at account provisioning, with an
    optional opening cash balance) and gives the ledger services a locked
    handle on it.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - One wallet per user (checked here, backed by uq_wallet_user).
    - Opening balances are exact, non-negative, 2-place amounts.
    - ``lock_for_user`` always takes SELECT ... FOR UPDATE with
      populate_existing, so the caller sees the committed balance, not a
      stale identity-map copy.

Failure modes:
    - WalletAlreadyExistsError on a second provisioning.
    - WalletNotFoundError for a user without a wallet.
    - ValueError for a malformed opening balance or currency.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carbon_kernel.db.types import DEFAULT_CURRENCY, normalize_money
from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.exceptions import WalletAlreadyExistsError, WalletNotFoundError
from carbon_kernel.logging_config import get_logger
from carbon_kernel.models.wallet import Wallet
from carbon_kernel.services.auditor_service import AuditorService
from carbon_kernel.services.base import BaseService

logger = get_logger("services.wallet")


class WalletService(BaseService[Wallet]):
    """
    Wallet provisioning.

    Non-goals:
        - Deposits/withdrawals: the payment gateway is an external
          collaborator and is not part of this core.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()

    def provision_wallet(
        self,
        user_id: UUID,
        actor_id: UUID,
        opening_cash: Decimal = Decimal("0"),
        currency: str = DEFAULT_CURRENCY,
    ) -> Wallet:
        """
        Create the user's wallet.

        Preconditions:
            - ``opening_cash`` is a non-negative Decimal with <= 2 places.
            - ``currency`` is a 3-letter code.
        Postconditions:
            - A wallet with zero credits and escrow is flushed and audited.
        """
        cash = normalize_money(opening_cash, "opening_cash")
        if not isinstance(currency, str) or len(currency.strip()) != 3 or not currency.strip().isalpha():
            raise ValueError(f"currency must be a 3-letter code, got {currency!r}")
        currency = currency.strip().upper()

        existing = self.session.execute(
            select(Wallet.id).where(Wallet.user_id == user_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise WalletAlreadyExistsError(str(user_id))

        wallet = Wallet(
            user_id=user_id,
            currency=currency,
            cash_balance=cash,
            escrow_balance=Decimal("0"),
            credit_balance=Decimal("0"),
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(wallet)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise WalletAlreadyExistsError(str(user_id)) from None

        self._auditor.record_wallet_provisioned(
            wallet_id=wallet.id,
            user_id=user_id,
            currency=currency,
            opening_cash=cash,
            actor_id=actor_id,
        )
        logger.info(
            "wallet_provisioned",
            extra={"wallet_id": str(wallet.id), "user_id": str(user_id), "currency": currency},
        )
        return wallet

    def get(self, user_id: UUID) -> Wallet:
        """Unlocked read of the user's wallet."""
        wallet = self.session.execute(
            select(Wallet).where(Wallet.user_id == user_id)
        ).scalar_one_or_none()
        if wallet is None:
            raise WalletNotFoundError(str(user_id))
        return wallet

    def lock_for_user(self, user_id: UUID) -> Wallet:
        """Read the user's wallet under a row lock, refreshing cached state."""
        wallet = self.session.execute(
            select(Wallet)
            .where(Wallet.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if wallet is None:
            raise WalletNotFoundError(str(user_id))
        return wallet
