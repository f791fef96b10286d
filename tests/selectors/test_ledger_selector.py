"""Read API: wallet and project summaries, listings, platform totals."""

from decimal import Decimal
from uuid import uuid4

import pytest

from carbon_kernel.exceptions import ProjectNotFoundError, WalletNotFoundError


@pytest.fixture
def market(create_project, create_wallet, ledger, buyer, certification_service, admin):
    cheap = create_project(total_credits=Decimal("20"), price_per_unit=Decimal("4"))
    dear = create_project(total_credits=Decimal("30"), price_per_unit=Decimal("12"), currency="USD")
    pending = create_project(activate=False)
    sold_out = create_project(total_credits=Decimal("2"))
    rejected = create_project()
    certification_service.reject(admin, rejected.id, "Registry suspension")

    create_wallet(buyer.user_id, cash=Decimal("1000"))
    ledger.purchase(buyer, cheap.id, Decimal("5"))
    ledger.purchase(buyer, sold_out.id, Decimal("2"))
    ledger.retire(buyer, Decimal("3"), project_id=cheap.id)
    return {"cheap": cheap, "dear": dear, "pending": pending, "sold_out": sold_out}


class TestWalletSummary:

    def test_totals(self, market, ledger_selector, buyer):
        summary = ledger_selector.wallet_summary(buyer.user_id)
        assert summary.credit_balance == Decimal("4")
        assert summary.cash_balance == Decimal("960")
        assert summary.total_purchased == Decimal("7")
        assert summary.total_spent == Decimal("40")
        assert summary.total_retired == Decimal("3")
        assert summary.certificate_count == 1

    def test_fresh_wallet_has_zero_totals(self, create_wallet, ledger_selector, make_capability):
        user = make_capability("buyer")
        create_wallet(user.user_id, cash=Decimal("5"))
        summary = ledger_selector.wallet_summary(user.user_id)
        assert summary.total_purchased == Decimal("0")
        assert summary.total_retired == Decimal("0")
        assert summary.certificate_count == 0

    def test_unknown_user(self, ledger_selector):
        with pytest.raises(WalletNotFoundError):
            ledger_selector.wallet_summary(uuid4())


class TestProjectSummary:

    def test_pool_matches_ledger(self, market, ledger_selector):
        summary = ledger_selector.project_credit_summary(market["cheap"].id)
        assert summary.available_credits == Decimal("15")
        assert summary.sold_credits == Decimal("5")
        assert summary.purchased_per_ledger == Decimal("5")
        assert summary.purchase_count == 1
        assert summary.conserved

    def test_unknown_project(self, ledger_selector):
        with pytest.raises(ProjectNotFoundError):
            ledger_selector.project_credit_summary(uuid4())


class TestListings:

    def test_marketplace_lists_only_purchasable_with_stock(self, market, ledger_selector):
        listing = ledger_selector.marketplace_listing()
        assert [p.id for p in listing] == [market["cheap"].id, market["dear"].id]

    def test_transactions_for_user(self, market, ledger_selector, buyer):
        records = ledger_selector.transactions_for_user(buyer.user_id)
        assert sorted(r.transaction_type for r in records) == ["purchase", "purchase", "retirement"]
        assert len(ledger_selector.transactions_for_user(buyer.user_id, limit=1)) == 1

    def test_transactions_for_project(self, market, ledger_selector):
        records = ledger_selector.transactions_for_project(market["cheap"].id)
        # The retirement carries the project as provenance
        assert {r.transaction_type for r in records} == {"purchase", "retirement"}

    def test_certificates_for_user(self, market, ledger_selector, buyer):
        certificates = ledger_selector.certificates_for_user(buyer.user_id)
        assert len(certificates) == 1
        assert certificates[0].credits_retired == Decimal("3")
        assert certificates[0].project_id == market["cheap"].id


class TestPlatformTotals:

    def test_totals(self, market, ledger_selector):
        totals = ledger_selector.platform_totals()
        assert totals.projects_by_status == {"active": 3, "application": 1, "rejected": 1}
        assert totals.credits_issued == Decimal("152")
        assert totals.credits_available == Decimal("145")
        assert totals.credits_sold == Decimal("7")
        assert totals.credits_retired == Decimal("3")
        assert totals.purchase_volume == {"INR": Decimal("40")}
        assert totals.purchase_count == 2
        assert totals.certificate_count == 1

    def test_empty_platform(self, ledger_selector):
        totals = ledger_selector.platform_totals()
        assert totals.projects_by_status == {}
        assert totals.credits_issued == Decimal("0")
        assert totals.purchase_volume == {}
