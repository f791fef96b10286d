"""
Certificate issuer tests.

Covers serial collision retry (via an injected generator that repeats
itself), the bounded failure, verification by serial, fingerprint
tamper detection, and append-only corrections.
"""

from decimal import Decimal
from itertools import chain, repeat

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from carbon_kernel.exceptions import (
    CertificateNotFoundError,
    IssuanceFailedError,
    UnauthorizedError,
)
from carbon_kernel.models.audit_event import AuditAction
from carbon_kernel.models.retirement_certificate import RetirementCertificate
from carbon_kernel.services.certificate_issuer import CertificateIssuer
from carbon_kernel.services.credit_ledger_service import CreditLedgerService

SERIAL_A = "CCR-2024-000000000001-0001000001"
SERIAL_B = "CCR-2024-000000000002-0002000002"
SERIAL_C = "CCR-2024-000000000003-0003000003"


def _scripted(*serials):
    """Serial generator that returns ``serials`` in order, then repeats the last."""
    source = chain(serials, repeat(serials[-1]))
    return lambda: next(source)


@pytest.fixture
def holder(create_project, create_wallet, ledger, buyer):
    project = create_project()
    create_wallet(buyer.user_id)
    ledger.purchase(buyer, project.id, Decimal("10"))
    return buyer


def _ledger_with(session, auditor_service, deterministic_clock, generator, max_attempts=5):
    issuer = CertificateIssuer(
        session,
        auditor_service,
        deterministic_clock,
        serial_generator=generator,
        max_attempts=max_attempts,
    )
    return issuer, CreditLedgerService(session, auditor_service, issuer, deterministic_clock)


class TestCollisionRetry:

    def test_collision_is_retried_with_fresh_serial(
        self, session, auditor_service, deterministic_clock, holder, captured_logs
    ):
        _, ledger = _ledger_with(
            session, auditor_service, deterministic_clock, _scripted(SERIAL_A, SERIAL_A, SERIAL_B)
        )
        first = ledger.retire(holder, Decimal("1"))[1]
        second = ledger.retire(holder, Decimal("1"))[1]

        assert first.serial_number == SERIAL_A
        assert second.serial_number == SERIAL_B
        collisions = [r for r in captured_logs() if r["message"] == "serial_collision"]
        assert len(collisions) == 1
        assert collisions[0]["attempt"] == 1

    def test_exhausted_attempts_raise_issuance_failed(
        self, session, auditor_service, deterministic_clock, holder
    ):
        _, ledger = _ledger_with(
            session, auditor_service, deterministic_clock, _scripted(SERIAL_C), max_attempts=3
        )
        ledger.retire(holder, Decimal("1"))

        with pytest.raises(IssuanceFailedError) as exc_info:
            ledger.retire(holder, Decimal("1"))
        assert exc_info.value.attempts == 3
        count = session.execute(select(func.count(RetirementCertificate.id))).scalar_one()
        assert count == 1

    def test_other_constraint_failures_are_not_retried(
        self, session, auditor_service, deterministic_clock, holder, wallet_service, captured_logs
    ):
        issuer, _ = _ledger_with(
            session, auditor_service, deterministic_clock, _scripted(SERIAL_A, SERIAL_B)
        )
        wallet = wallet_service.lock_for_user(holder.user_id)

        # credits_retired > 0 is a CHECK constraint, not a serial clash
        with pytest.raises(IntegrityError):
            issuer.issue(
                user_id=holder.user_id,
                wallet_id=wallet.id,
                project_id=None,
                quantity=Decimal("0"),
                reason=None,
            )
        assert not [r for r in captured_logs() if r["message"] == "serial_collision"]

    def test_max_attempts_must_be_positive(self, session, auditor_service):
        with pytest.raises(ValueError):
            CertificateIssuer(session, auditor_service, max_attempts=0)


class TestVerify:

    def test_genuine_certificate_verifies(self, certificate_issuer, ledger, holder):
        _, certificate, _ = ledger.retire(holder, Decimal("3"), reason="Scope 1 offset")

        result = certificate_issuer.verify(certificate.serial_number)

        assert result.authentic is True
        assert result.is_valid is True
        assert result.corrections == ()
        assert result.certificate.serial_number == certificate.serial_number
        assert result.certificate.credits_retired == Decimal("3")
        assert result.certificate.fingerprint == certificate.fingerprint

    def test_surrounding_whitespace_is_ignored(self, certificate_issuer, ledger, holder):
        _, certificate, _ = ledger.retire(holder, Decimal("1"))
        assert certificate_issuer.verify(f"  {certificate.serial_number}\n").authentic

    @pytest.mark.parametrize("serial", ["", "not-a-serial", "CCR-2024-000000000009-0009000009"])
    def test_unknown_or_malformed_serial(self, certificate_issuer, serial):
        with pytest.raises(CertificateNotFoundError):
            certificate_issuer.verify(serial)

    def test_tampered_content_is_not_authentic(
        self, certificate_issuer, ledger, holder, session, on_postgres, captured_logs
    ):
        if on_postgres:
            pytest.skip("immutability trigger blocks the tampering UPDATE")
        _, certificate, _ = ledger.retire(holder, Decimal("2"), reason="original")

        session.execute(
            update(RetirementCertificate)
            .where(RetirementCertificate.id == certificate.id)
            .values(retirement_reason="forged")
        )
        session.expire_all()

        result = certificate_issuer.verify(certificate.serial_number)
        assert result.authentic is False
        assert result.is_valid is False
        assert any(
            r["message"] == "certificate_fingerprint_mismatch" and r["level"] == "CRITICAL"
            for r in captured_logs()
        )


class TestCorrections:

    def test_invalidation_marks_certificate_invalid(
        self, certificate_issuer, ledger, holder, admin, auditor_service
    ):
        _, certificate, _ = ledger.retire(holder, Decimal("1"))

        correction = certificate_issuer.record_correction(
            admin, certificate.serial_number, "invalidation", "  Double-counted with registry  "
        )

        assert correction.reason == "Double-counted with registry"
        result = certificate_issuer.verify(certificate.serial_number)
        assert result.authentic is True
        assert result.invalidated is True
        assert result.is_valid is False
        assert [c.kind for c in result.corrections] == ["invalidation"]

        trace = auditor_service.get_trace("RetirementCertificate", certificate.id)
        assert trace.actions == (AuditAction.CERTIFICATE_ISSUED, AuditAction.CERTIFICATE_CORRECTED)

    def test_annotation_leaves_certificate_valid(self, certificate_issuer, ledger, holder, admin):
        _, certificate, _ = ledger.retire(holder, Decimal("1"))
        certificate_issuer.record_correction(
            admin, certificate.serial_number, "annotation", "Beneficiary renamed"
        )
        assert certificate_issuer.verify(certificate.serial_number).is_valid is True

    def test_requires_admin(self, certificate_issuer, ledger, holder):
        _, certificate, _ = ledger.retire(holder, Decimal("1"))
        with pytest.raises(UnauthorizedError):
            certificate_issuer.record_correction(
                holder, certificate.serial_number, "annotation", "self-service"
            )

    @pytest.mark.parametrize("kind, reason", [("erasure", "x"), ("annotation", " ")])
    def test_bad_kind_or_reason(self, certificate_issuer, ledger, holder, admin, kind, reason):
        _, certificate, _ = ledger.retire(holder, Decimal("1"))
        with pytest.raises(ValueError):
            certificate_issuer.record_correction(admin, certificate.serial_number, kind, reason)

    def test_unknown_serial(self, certificate_issuer, admin):
        with pytest.raises(CertificateNotFoundError):
            certificate_issuer.record_correction(
                admin, "CCR-2024-000000000009-0009000009", "annotation", "x"
            )

    def test_certificate_fields_are_unchanged_by_correction(
        self, certificate_issuer, ledger, holder, admin, session
    ):
        _, certificate, _ = ledger.retire(holder, Decimal("1"), reason="kept")
        fingerprint = certificate.fingerprint
        certificate_issuer.record_correction(admin, certificate.serial_number, "invalidation", "x")
        session.expire_all()
        stored = session.get(RetirementCertificate, certificate.id)
        assert stored.fingerprint == fingerprint
        assert stored.retirement_reason == "kept"
        assert stored.user_id == holder.user_id
        assert stored.wallet_id is not None
