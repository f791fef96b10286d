"""
CertificateIssuer -- mints, verifies and corrects retirement certificates.

Responsibility:
    Generates a registry-style serial, persists an immutable certificate
    carrying a content fingerprint, and later answers "is this serial
    genuine and still valid?".  Administrative corrections are appended as
    separate rows.

Architecture position:
    Kernel > Services.  ``issue`` is called only by CreditLedgerService
    inside the retirement's transaction; ``verify`` and
    ``record_correction`` are exposed through the request layer.

Invariants enforced:
    - Serial uniqueness is guaranteed by the uq_certificate_serial
      constraint.  A collision rolls back only the savepoint of that
      attempt and is retried with a fresh serial.
    - The issuer never updates or deletes a certificate row.

Failure modes:
    - SerialCollisionError: raised per attempt, handled internally.
    - IssuanceFailedError: every one of ``max_attempts`` attempts collided.
    - CertificateNotFoundError: verify/correct of an unknown serial.

Audit relevance:
    Issuance and every correction append an audit event.
"""

from collections.abc import Callable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from carbon_kernel.domain.authorization import Capability, Operation, authorize
from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.domain.dtos import (
    CertificateRecord,
    CertificateVerification,
    CorrectionRecord,
)
from carbon_kernel.exceptions import (
    CertificateNotFoundError,
    IssuanceFailedError,
    SerialCollisionError,
)
from carbon_kernel.logging_config import get_logger
from carbon_kernel.models.retirement_certificate import (
    CertificateCorrection,
    CorrectionKind,
    RetirementCertificate,
)
from carbon_kernel.services.auditor_service import AuditorService
from carbon_kernel.services.base import BaseService
from carbon_kernel.utils.hashing import certificate_fingerprint
from carbon_kernel.utils.serials import SerialNumberGenerator, is_well_formed

logger = get_logger("services.certificate_issuer")

DEFAULT_MAX_ATTEMPTS = 5


def _is_serial_collision(exc: IntegrityError) -> bool:
    """True only for a duplicate serial; other constraint failures propagate."""
    diag = getattr(exc.orig, "diag", None)
    if diag is not None and getattr(diag, "constraint_name", None):
        return diag.constraint_name == "uq_certificate_serial"
    message = str(exc.orig)
    return "UNIQUE" in message and "retirement_certificates.serial_number" in message


class CertificateIssuer(BaseService[RetirementCertificate]):
    """
    Certificate minting with bounded collision retry.

    Contract:
        ``serial_generator`` is any zero-argument callable returning a
        string.  Production uses SerialNumberGenerator; tests inject one
        that repeats to exercise the retry path.

    Guarantees:
        - A returned certificate's fingerprint matches its stored content.
        - SerialCollisionError is the only error retried.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        serial_generator: Callable[[], str] | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        super().__init__(session)
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._serials = serial_generator or SerialNumberGenerator(clock=self._clock)
        self._max_attempts = max_attempts

    def _insert(self, certificate: RetirementCertificate) -> None:
        savepoint = self.session.begin_nested()
        try:
            self.session.add(certificate)
            self.session.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            if not _is_serial_collision(exc):
                raise
            raise SerialCollisionError(certificate.serial_number) from None
        savepoint.commit()

    def issue(
        self,
        user_id: UUID,
        wallet_id: UUID,
        project_id: UUID | None,
        quantity: Decimal,
        reason: str | None,
    ) -> RetirementCertificate:
        """
        Mint a certificate for an already-debited retirement.

        Preconditions:
            - Called inside the retirement's transaction, after the credit
              balance has been debited.
            - ``quantity`` is a validated, 4-place positive Decimal.

        Raises:
            IssuanceFailedError: ``max_attempts`` consecutive collisions.
        """
        for attempt in range(1, self._max_attempts + 1):
            serial = self._serials()
            issued_at = self._clock.now()
            certificate = RetirementCertificate(
                serial_number=serial,
                user_id=user_id,
                wallet_id=wallet_id,
                project_id=project_id,
                credits_retired=quantity,
                retirement_reason=reason,
                issued_at=issued_at,
                fingerprint=certificate_fingerprint(
                    serial_number=serial,
                    user_id=user_id,
                    project_id=project_id,
                    credits_retired=quantity,
                    retirement_reason=reason,
                    issued_at=issued_at,
                ),
            )
            try:
                self._insert(certificate)
            except SerialCollisionError:
                logger.warning(
                    "serial_collision",
                    extra={"serial_number": serial, "attempt": attempt},
                )
                continue

            self._auditor.record_certificate_issued(
                certificate_id=certificate.id,
                serial_number=serial,
                fingerprint=certificate.fingerprint,
                actor_id=user_id,
            )
            logger.info(
                "certificate_issued",
                extra={
                    "serial_number": serial,
                    "credits_retired": str(quantity),
                    "attempt": attempt,
                },
            )
            return certificate

        logger.error("certificate_issuance_failed", extra={"attempts": self._max_attempts})
        raise IssuanceFailedError(self._max_attempts)

    def _by_serial(self, serial_number: str) -> RetirementCertificate:
        if not isinstance(serial_number, str) or not is_well_formed(serial_number.strip()):
            raise CertificateNotFoundError(str(serial_number))
        certificate = self.session.execute(
            select(RetirementCertificate).where(
                RetirementCertificate.serial_number == serial_number.strip()
            )
        ).scalar_one_or_none()
        if certificate is None:
            raise CertificateNotFoundError(serial_number)
        return certificate

    def _corrections(self, certificate_id: UUID) -> tuple[CorrectionRecord, ...]:
        rows = self.session.execute(
            select(CertificateCorrection)
            .where(CertificateCorrection.certificate_id == certificate_id)
            .order_by(CertificateCorrection.recorded_at, CertificateCorrection.id)
        ).scalars()
        return tuple(CorrectionRecord.from_model(row) for row in rows)

    def verify(self, serial_number: str) -> CertificateVerification:
        """
        Look up a serial and recompute its fingerprint.

        ``authentic`` is False when the stored content no longer hashes to
        the stored fingerprint.  Corrections are returned oldest first.
        """
        certificate = self._by_serial(serial_number)
        expected = certificate_fingerprint(
            serial_number=certificate.serial_number,
            user_id=certificate.user_id,
            project_id=certificate.project_id,
            credits_retired=certificate.credits_retired,
            retirement_reason=certificate.retirement_reason,
            issued_at=certificate.issued_at,
        )
        authentic = expected == certificate.fingerprint
        if not authentic:
            logger.critical(
                "certificate_fingerprint_mismatch",
                extra={"serial_number": certificate.serial_number},
            )
        return CertificateVerification(
            certificate=CertificateRecord.from_model(certificate),
            authentic=authentic,
            corrections=self._corrections(certificate.id),
        )

    def record_correction(
        self,
        capability: Capability,
        serial_number: str,
        kind: CorrectionKind | str,
        reason: str,
    ) -> CertificateCorrection:
        """
        Append an administrative correction to a certificate.

        Raises:
            UnauthorizedError: caller is not an admin.
            CertificateNotFoundError: unknown serial.
            ValueError: unknown kind or empty reason.
        """
        authorize(capability, Operation.RECORD_CERTIFICATE_CORRECTION)
        kind = CorrectionKind(kind)
        if reason is None or not reason.strip():
            raise ValueError("A correction reason is required")

        certificate = self._by_serial(serial_number)
        correction = CertificateCorrection(
            certificate_id=certificate.id,
            kind=kind,
            reason=reason.strip(),
            recorded_by=capability.user_id,
            recorded_at=self._clock.now(),
        )
        self.session.add(correction)
        self.session.flush()

        self._auditor.record_certificate_corrected(
            certificate_id=certificate.id,
            correction_id=correction.id,
            kind=kind.value,
            reason=correction.reason,
            actor_id=capability.user_id,
        )
        logger.info(
            "certificate_corrected",
            extra={"serial_number": certificate.serial_number, "kind": kind.value},
        )
        return correction
