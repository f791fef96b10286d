"""Wallet provisioning and locked reads."""

from decimal import Decimal
from uuid import uuid4

import pytest

from carbon_kernel.exceptions import WalletAlreadyExistsError, WalletNotFoundError
from carbon_kernel.models.audit_event import AuditAction


class TestProvisionWallet:

    def test_new_wallet_has_opening_cash_and_no_credits(self, create_wallet):
        user_id = uuid4()
        wallet = create_wallet(user_id, cash=Decimal("1000"))

        assert wallet.user_id == user_id
        assert wallet.cash_balance == Decimal("1000")
        assert wallet.credit_balance == Decimal("0")
        assert wallet.escrow_balance == Decimal("0")
        assert wallet.currency == "INR"

    def test_currency_is_upper_cased(self, create_wallet):
        wallet = create_wallet(uuid4(), currency="usd")
        assert wallet.currency == "USD"

    def test_one_wallet_per_user(self, create_wallet):
        user_id = uuid4()
        create_wallet(user_id)
        with pytest.raises(WalletAlreadyExistsError) as exc_info:
            create_wallet(user_id)
        assert exc_info.value.code == "WALLET_ALREADY_EXISTS"

    @pytest.mark.parametrize("cash", [Decimal("-1"), Decimal("0.001"), 10.5])
    def test_invalid_opening_cash(self, create_wallet, cash):
        with pytest.raises(ValueError):
            create_wallet(uuid4(), cash=cash)

    @pytest.mark.parametrize("currency", ["RUPEE", "", "12A"])
    def test_invalid_currency(self, create_wallet, currency):
        with pytest.raises(ValueError, match="currency"):
            create_wallet(uuid4(), currency=currency)

    def test_provisioning_is_audited(self, create_wallet, auditor_service):
        wallet = create_wallet(uuid4(), cash=Decimal("250.50"))
        trace = auditor_service.get_trace("Wallet", wallet.id)
        assert trace.actions == (AuditAction.WALLET_PROVISIONED,)
        assert trace.entries[0].payload["opening_cash"] == "250.5"

    def test_provisioning_is_logged(self, create_wallet, captured_logs):
        create_wallet(uuid4())
        assert any(r["message"] == "wallet_provisioned" for r in captured_logs())


class TestWalletReads:

    def test_get_and_lock_return_same_row(self, create_wallet, wallet_service):
        user_id = uuid4()
        wallet = create_wallet(user_id)
        assert wallet_service.get(user_id).id == wallet.id
        assert wallet_service.lock_for_user(user_id).id == wallet.id

    def test_unknown_user(self, wallet_service):
        with pytest.raises(WalletNotFoundError):
            wallet_service.get(uuid4())
        with pytest.raises(WalletNotFoundError):
            wallet_service.lock_for_user(uuid4())
