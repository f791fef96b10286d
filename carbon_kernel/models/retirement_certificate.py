"""
Module: carbon_kernel.models.retirement_certificate
Responsibility: ORM persistence for retirement certificates and the
    administrative correction records that may later qualify them.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - serial_number is globally unique (uq_certificate_serial).  The issuer
      relies on this constraint to detect collisions and retry.
    - Certificates and corrections are append-only: no UPDATE or DELETE
      (ORM listener + DB trigger).
    - credits_retired > 0 (CHECK).

Failure modes:
    - IntegrityError on a duplicate serial (converted to SerialCollisionError
      by CertificateIssuer).
    - ImmutabilityViolationError on UPDATE/DELETE.

Audit relevance:
    A certificate is a compliance record.  It can only be superseded by a
    CertificateCorrection row; its fingerprint lets anyone holding the
    serial confirm that the stored content was never altered.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import Base, UTCDateTime, UUIDString
from carbon_kernel.db.types import enum_column


class RetirementCertificate(Base):
    """
    Immutable proof of permanent credit retirement.

    Contract:
        Created once per retirement by CertificateIssuer and never touched
        again.

    Guarantees:
        - fingerprint = SHA-256 over the canonical certificate content.
        - project_id, when present, is a provenance note only: credits are
          fungible and are not drawn from a per-project balance.
    """

    __tablename__ = "retirement_certificates"

    __table_args__ = (
        UniqueConstraint("serial_number", name="uq_certificate_serial"),
        CheckConstraint("credits_retired > 0", name="ck_certificate_credits_positive"),
        Index("idx_certificate_user", "user_id"),
        Index("idx_certificate_project", "project_id"),
    )

    serial_number: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    wallet_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("wallets.id"),
        nullable=False,
    )

    project_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=True,
    )

    credits_retired: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    retirement_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    issued_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    fingerprint: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<RetirementCertificate {self.serial_number} credits={self.credits_retired}>"


class CorrectionKind(str, Enum):
    """What an administrative correction does to its certificate.

    INVALIDATION: the certificate must no longer be relied upon.
    ANNOTATION: informational note; the certificate stays valid.
    """

    INVALIDATION = "invalidation"
    ANNOTATION = "annotation"


class CertificateCorrection(Base):
    """
    Out-of-band administrative record qualifying a certificate.

    Contract:
        Appended by CertificateIssuer.record_correction(); never updated
        or deleted.  The referenced certificate row is left untouched.
    """

    __tablename__ = "certificate_corrections"

    __table_args__ = (
        Index("idx_correction_certificate", "certificate_id"),
    )

    certificate_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("retirement_certificates.id"),
        nullable=False,
    )

    kind: Mapped[CorrectionKind] = mapped_column(
        enum_column(CorrectionKind, "correction_kind", length=16),
        nullable=False,
    )

    reason: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    recorded_by: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    recorded_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )
