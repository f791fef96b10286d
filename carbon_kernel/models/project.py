"""
Module: carbon_kernel.models.project
Responsibility: ORM persistence for carbon-reduction projects: certification
    status, the issued credit pool, owner pricing, compliance declarations,
    registry identifiers and verification metadata.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - 0 <= available_credits <= total_credits (CHECK + ORM listener).
    - available_credits never increases; total_credits is fixed at
      registration (ORM listener + DB trigger).
    - status only moves along an edge of the project's certification
      workflow (ORM listener, driven by domain/certification.py).
    - Never deleted (ORM listener + DB trigger).  "rejected" is the soft
      terminal state instead.
    - version is a compare-and-swap row version (version_id_col).

Failure modes:
    - LedgerInvariantViolationError on an illegal pool or status change.
    - ImmutabilityViolationError on DELETE.

Audit relevance:
    Every status change and every pool debit is accompanied by an audit
    event.  verified_by / updated_by_id record the acting admin.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from carbon_kernel.db.types import DEFAULT_CURRENCY, enum_column


class ProjectStatus(str, Enum):
    """Certification status of a project.

    Contract: The staged pipeline runs APPLICATION -> ... -> ACTIVE; the
    legacy pipeline runs PENDING_VERIFICATION -> VERIFIED.  REJECTED and
    RETIRED are absorbing.
    """

    # Staged pipeline
    APPLICATION = "application"
    REGISTRATION = "registration"
    PRE_VALIDATION = "pre_validation"
    VALIDATION = "validation"
    MONITORING = "monitoring"
    AUDITED = "audited"
    ACTIVE = "active"

    # Legacy two-step pipeline
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"

    # Terminal exits
    REJECTED = "rejected"
    RETIRED = "retired"


class CertificationPipeline(str, Enum):
    """Which instance of the certification workflow a project follows."""

    STAGED = "staged"
    LEGACY = "legacy"


class ProjectType(str, Enum):
    RENEWABLE_ENERGY = "renewable_energy"
    FOREST_CONSERVATION = "forest_conservation"
    REFORESTATION = "reforestation"
    CLEAN_COOKSTOVES = "clean_cookstoves"
    WASTE_MANAGEMENT = "waste_management"
    ENERGY_EFFICIENCY = "energy_efficiency"
    OTHER = "other"


class RegistryType(str, Enum):
    """External certification body whose verification is recorded."""

    UCR = "ucr"
    VERRA = "verra"
    GOLD_STANDARD = "gold_standard"
    OTHER = "other"


class Project(TrackedBase):
    """
    One carbon-reduction initiative and its issued credit pool.

    Contract:
        status and current_stage are written only by CertificationService;
        available_credits only by CreditLedgerService.  Both must lock the
        row before reading values they will write back.

    Guarantees:
        - current_stage mirrors status.
        - available_credits only decreases.

    Non-goals:
        - Document contents: the *_url columns are opaque references into
          an external object store.
    """

    __tablename__ = "projects"

    __table_args__ = (
        CheckConstraint("total_credits > 0", name="ck_project_total_positive"),
        CheckConstraint("available_credits >= 0", name="ck_project_available_non_negative"),
        CheckConstraint("price_per_unit > 0", name="ck_project_price_positive"),
        Index("idx_project_owner", "owner_id"),
        Index("idx_project_status", "status"),
    )

    owner_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    project_type: Mapped[ProjectType] = mapped_column(
        enum_column(ProjectType, "project_type"),
        nullable=False,
    )

    country: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    location: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    vintage_year: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    # Certification
    pipeline: Mapped[CertificationPipeline] = mapped_column(
        enum_column(CertificationPipeline, "certification_pipeline", length=16),
        nullable=False,
        default=CertificationPipeline.STAGED,
    )

    status: Mapped[ProjectStatus] = mapped_column(
        enum_column(ProjectStatus, "project_status"),
        nullable=False,
    )

    # Display mirror of status
    current_stage: Mapped[ProjectStatus] = mapped_column(
        enum_column(ProjectStatus, "project_stage"),
        nullable=False,
    )

    # Credit pool
    total_credits: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    available_credits: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    price_per_unit: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default=DEFAULT_CURRENCY,
    )

    # Registry
    registry_type: Mapped[RegistryType] = mapped_column(
        enum_column(RegistryType, "registry_type", length=16),
        nullable=False,
        default=RegistryType.UCR,
    )

    registry_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    # Compliance declarations
    ownership_proof_signed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    ownership_proof_signed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    no_harm_declaration_signed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    no_harm_declaration_signed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    mandate_signed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    mandate_signed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    # Opaque object-store references
    ownership_proof_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    pcn_document_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    monitoring_plan_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    monitoring_report_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Validation / verification body
    vvb_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vvb_accreditation_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    validation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    verification_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    validated: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    validated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    verified_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    verified_by: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # Terminal exits
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )
    retired_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Project {self.id} {self.name!r} status={self.status.value}>"

    @property
    def sold_credits(self) -> Decimal:
        return self.total_credits - self.available_credits
