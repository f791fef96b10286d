"""
Immutability and ledger invariant enforcement at flush.

The ORM listeners are the first line of defence on every backend (the
PostgreSQL triggers are the second).  Each test bypasses the services and
mutates rows directly, as a buggy caller would.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from carbon_kernel.exceptions import (
    ImmutabilityViolationError,
    LedgerInvariantViolationError,
)
from carbon_kernel.models.audit_event import AuditEvent
from carbon_kernel.models.project import ProjectStatus


@pytest.fixture
def retired_credits(create_project, create_wallet, ledger, buyer):
    project = create_project()
    create_wallet(buyer.user_id)
    purchase, wallet, project = ledger.purchase(buyer, project.id, Decimal("4"))
    retirement, certificate, wallet = ledger.retire(buyer, Decimal("1"))
    return purchase, retirement, certificate, wallet, project


class TestAppendOnlyRecords:

    def test_transaction_update_blocked(self, retired_credits, session):
        purchase = retired_credits[0]
        purchase.credits = Decimal("400")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_transaction_delete_blocked(self, retired_credits, session):
        session.delete(retired_credits[1])
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_certificate_update_blocked(self, retired_credits, session):
        certificate = retired_credits[2]
        certificate.retirement_reason = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_certificate_delete_blocked(self, retired_credits, session):
        session.delete(retired_credits[2])
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_audit_event_update_blocked(self, retired_credits, session):
        event = session.execute(select(AuditEvent).limit(1)).scalar_one()
        event.actor_id = retired_credits[3].user_id
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestLedgerRows:

    def test_wallet_delete_blocked(self, retired_credits, session):
        session.delete(retired_credits[3])
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_project_delete_blocked(self, retired_credits, session):
        session.delete(retired_credits[4])
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_negative_credit_balance_blocked(self, retired_credits, session):
        wallet = retired_credits[3]
        wallet.credit_balance = Decimal("-1")
        with pytest.raises(LedgerInvariantViolationError) as exc_info:
            session.flush()
        assert exc_info.value.invariant == "non_negative_balances"

    def test_pool_increase_blocked(self, retired_credits, session):
        project = retired_credits[4]
        project.available_credits = project.available_credits + Decimal("1")
        with pytest.raises(LedgerInvariantViolationError):
            session.flush()

    def test_total_credits_fixed(self, retired_credits, session):
        project = retired_credits[4]
        project.total_credits = Decimal("5000")
        with pytest.raises(LedgerInvariantViolationError):
            session.flush()

    def test_status_jump_blocked(self, create_project, session):
        project = create_project(activate=False)
        project.status = ProjectStatus.ACTIVE
        project.current_stage = ProjectStatus.ACTIVE
        with pytest.raises(LedgerInvariantViolationError):
            session.flush()

    def test_reopening_rejected_project_blocked(self, create_project, certification_service, admin, session):
        project = create_project(activate=False)
        certification_service.reject(admin, project.id, "Fraudulent documents")
        project.status = ProjectStatus.APPLICATION
        project.current_stage = ProjectStatus.APPLICATION
        with pytest.raises(LedgerInvariantViolationError):
            session.flush()

    def test_stage_must_mirror_status(self, create_project, session):
        project = create_project(activate=False)
        project.status = ProjectStatus.REGISTRATION
        with pytest.raises(LedgerInvariantViolationError):
            session.flush()
