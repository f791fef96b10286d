"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable structures that cross the kernel boundary: registration input,
    wallet/project/transaction/certificate snapshots, and the results of
    purchase, retirement and certificate verification.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters invoked only from
    services and selectors, while the owning session is still open.

Invariants enforced:
    - Services and request-layer facades return these DTOs, never live ORM
      rows, so callers cannot mutate ledger state by accident.
    - Monetary and credit fields are Decimal, never float.

Failure modes:
    - ValueError from ProjectRegistration when totals or price are floats.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from carbon_kernel.models.credit_transaction import CreditTransaction
    from carbon_kernel.models.project import Project
    from carbon_kernel.models.retirement_certificate import (
        CertificateCorrection,
        RetirementCertificate,
    )
    from carbon_kernel.models.wallet import Wallet


def _v(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class ComplianceDeclaration(str, Enum):
    """Declarations a project owner signs during registration."""

    OWNERSHIP_PROOF = "ownership_proof"
    NO_HARM_DECLARATION = "no_harm_declaration"
    MANDATE = "mandate"

    @property
    def flag_field(self) -> str:
        return f"{self.value}_signed"

    @property
    def timestamp_field(self) -> str:
        return f"{self.value}_signed_at"


@dataclass(frozen=True)
class ProjectRegistration:
    """Owner-submitted registration data."""

    name: str
    project_type: str
    total_credits: Decimal
    price_per_unit: Decimal
    description: str | None = None
    country: str | None = None
    location: str | None = None
    vintage_year: int | None = None
    registry_type: str = "ucr"
    registry_id: str | None = None
    currency: str = "INR"
    pipeline: str = "staged"
    ownership_proof_url: str | None = None
    pcn_document_url: str | None = None
    monitoring_plan_url: str | None = None
    monitoring_report_url: str | None = None

    def __post_init__(self) -> None:
        for name in ("total_credits", "price_per_unit"):
            if isinstance(getattr(self, name), float):
                raise ValueError(f"{name} must be an exact decimal, not float")


@dataclass(frozen=True)
class WalletInfo:
    id: UUID
    user_id: UUID
    currency: str
    cash_balance: Decimal
    escrow_balance: Decimal
    credit_balance: Decimal
    version: int

    @classmethod
    def from_model(cls, wallet: Wallet) -> WalletInfo:
        return cls(
            id=wallet.id,
            user_id=wallet.user_id,
            currency=wallet.currency,
            cash_balance=wallet.cash_balance,
            escrow_balance=wallet.escrow_balance,
            credit_balance=wallet.credit_balance,
            version=wallet.version,
        )


@dataclass(frozen=True)
class ProjectInfo:
    id: UUID
    owner_id: UUID
    name: str
    project_type: str
    pipeline: str
    status: str
    current_stage: str
    total_credits: Decimal
    available_credits: Decimal
    price_per_unit: Decimal
    currency: str
    registry_type: str
    registry_id: str | None
    country: str | None
    vintage_year: int | None
    ownership_proof_signed: bool
    no_harm_declaration_signed: bool
    mandate_signed: bool
    validated: bool
    validated_at: datetime | None
    verified_at: datetime | None
    validation_date: date | None
    verification_date: date | None
    vvb_name: str | None
    vvb_accreditation_number: str | None
    verification_notes: str | None
    rejection_reason: str | None
    version: int

    @property
    def sold_credits(self) -> Decimal:
        return self.total_credits - self.available_credits

    @classmethod
    def from_model(cls, project: Project) -> ProjectInfo:
        return cls(
            id=project.id,
            owner_id=project.owner_id,
            name=project.name,
            project_type=_v(project.project_type),
            pipeline=_v(project.pipeline),
            status=_v(project.status),
            current_stage=_v(project.current_stage),
            total_credits=project.total_credits,
            available_credits=project.available_credits,
            price_per_unit=project.price_per_unit,
            currency=project.currency,
            registry_type=_v(project.registry_type),
            registry_id=project.registry_id,
            country=project.country,
            vintage_year=project.vintage_year,
            ownership_proof_signed=project.ownership_proof_signed,
            no_harm_declaration_signed=project.no_harm_declaration_signed,
            mandate_signed=project.mandate_signed,
            validated=project.validated,
            validated_at=project.validated_at,
            verified_at=project.verified_at,
            validation_date=project.validation_date,
            verification_date=project.verification_date,
            vvb_name=project.vvb_name,
            vvb_accreditation_number=project.vvb_accreditation_number,
            verification_notes=project.verification_notes,
            rejection_reason=project.rejection_reason,
            version=project.version,
        )


@dataclass(frozen=True)
class TransactionRecord:
    id: UUID
    transaction_type: str
    status: str
    buyer_id: UUID
    seller_id: UUID | None
    wallet_id: UUID | None
    project_id: UUID | None
    certificate_id: UUID | None
    credits: Decimal | None
    price_per_unit: Decimal | None
    total_amount: Decimal | None
    currency: str | None
    failure_code: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, txn: CreditTransaction) -> TransactionRecord:
        return cls(
            id=txn.id,
            transaction_type=_v(txn.transaction_type),
            status=_v(txn.status),
            buyer_id=txn.buyer_id,
            seller_id=txn.seller_id,
            wallet_id=txn.wallet_id,
            project_id=txn.project_id,
            certificate_id=txn.certificate_id,
            credits=txn.credits,
            price_per_unit=txn.price_per_unit,
            total_amount=txn.total_amount,
            currency=txn.currency,
            failure_code=txn.failure_code,
            created_at=txn.created_at,
        )


@dataclass(frozen=True)
class CertificateRecord:
    id: UUID
    serial_number: str
    user_id: UUID
    wallet_id: UUID
    project_id: UUID | None
    credits_retired: Decimal
    retirement_reason: str | None
    issued_at: datetime
    fingerprint: str

    @classmethod
    def from_model(cls, certificate: RetirementCertificate) -> CertificateRecord:
        return cls(
            id=certificate.id,
            serial_number=certificate.serial_number,
            user_id=certificate.user_id,
            wallet_id=certificate.wallet_id,
            project_id=certificate.project_id,
            credits_retired=certificate.credits_retired,
            retirement_reason=certificate.retirement_reason,
            issued_at=certificate.issued_at,
            fingerprint=certificate.fingerprint,
        )


@dataclass(frozen=True)
class CorrectionRecord:
    id: UUID
    certificate_id: UUID
    kind: str
    reason: str
    recorded_by: UUID
    recorded_at: datetime

    @classmethod
    def from_model(cls, correction: CertificateCorrection) -> CorrectionRecord:
        return cls(
            id=correction.id,
            certificate_id=correction.certificate_id,
            kind=_v(correction.kind),
            reason=correction.reason,
            recorded_by=correction.recorded_by,
            recorded_at=correction.recorded_at,
        )


@dataclass(frozen=True)
class CertificateVerification:
    """Outcome of looking up a serial and recomputing its fingerprint."""

    certificate: CertificateRecord
    authentic: bool
    corrections: tuple[CorrectionRecord, ...]

    @property
    def invalidated(self) -> bool:
        return any(c.kind == "invalidation" for c in self.corrections)

    @property
    def is_valid(self) -> bool:
        return self.authentic and not self.invalidated


@dataclass(frozen=True)
class PurchaseResult:
    transaction: TransactionRecord
    wallet: WalletInfo
    project: ProjectInfo


@dataclass(frozen=True)
class RetirementResult:
    transaction: TransactionRecord
    certificate: CertificateRecord
    wallet: WalletInfo
