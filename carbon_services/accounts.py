"""
carbon_services.accounts -- account provisioning and capability issue.

Responsibility:
    Called by the identity-provider integration when an account is created
    (wallet provisioning, initial roles) and at the start of every request
    (capability_for).

Architecture position:
    Services.  Owns sessions and commits.

Invariants enforced:
    - One wallet per user.
    - ``bootstrap_admin`` works only while nobody holds the admin role.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from carbon_kernel.db.engine import session_scope
from carbon_kernel.db.types import DEFAULT_CURRENCY
from carbon_kernel.domain.authorization import ADMIN, Capability
from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.domain.dtos import WalletInfo
from carbon_kernel.exceptions import UnauthorizedError
from carbon_kernel.logging_config import get_logger
from carbon_kernel.models.role_grant import Role
from carbon_services.wiring import KernelServices

logger = get_logger("services.accounts")


class AccountProvisioningService:
    """Wallet and role provisioning at the identity boundary."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        default_currency: str = DEFAULT_CURRENCY,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._default_currency = default_currency

    def capability_for(self, user_id: UUID) -> Capability:
        """Read the user's active grants once, for the current request."""
        with session_scope(self._session_factory) as session:
            return KernelServices(session, clock=self._clock).authorization.capability_for(user_id)

    def provision_wallet(
        self,
        user_id: UUID,
        opening_cash: Decimal = Decimal("0"),
        currency: str | None = None,
        actor_id: UUID | None = None,
    ) -> WalletInfo:
        """Create the user's wallet.

        ``currency`` defaults to the configured ledger currency and
        ``actor_id`` to the user.
        """
        with session_scope(self._session_factory) as session:
            wallet = KernelServices(session, clock=self._clock).wallets.provision_wallet(
                user_id=user_id,
                actor_id=actor_id or user_id,
                opening_cash=opening_cash,
                currency=currency or self._default_currency,
            )
            return WalletInfo.from_model(wallet)

    def bootstrap_admin(self, user_id: UUID) -> Capability:
        """Make ``user_id`` the first administrator of an empty installation."""
        with session_scope(self._session_factory) as session:
            services = KernelServices(session, clock=self._clock)
            if services.authorization.role_is_held(Role.ADMIN):
                raise UnauthorizedError(
                    user_id=str(user_id),
                    operation="bootstrap_admin",
                    required_roles=[ADMIN],
                )
            services.authorization.bootstrap_grant(user_id, Role.ADMIN)
            logger.warning("admin_bootstrapped", extra={"user_id": str(user_id)})
            return services.authorization.capability_for(user_id)
