"""
Module: carbon_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM + DB trigger).
    - Hash chain integrity: hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.

Audit relevance:
    AuditEvent IS the audit trail.  Every state change in the carbon ledger
    (wallet provisioning, registration, certification, purchase, retirement,
    certificate issuance and correction, role changes) produces one.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import Base, UTCDateTime, UUIDString
from carbon_kernel.db.types import enum_column


class AuditAction(str, Enum):
    """Types of auditable actions.

    Contract: Every member represents one class of ledger event that
    MUST be recorded in the audit chain.  Adding a new action type requires
    a matching record_* method on AuditorService.
    """

    # Accounts
    WALLET_PROVISIONED = "wallet_provisioned"
    ROLE_GRANTED = "role_granted"
    ROLE_REVOKED = "role_revoked"

    # Project lifecycle
    PROJECT_REGISTERED = "project_registered"
    COMPLIANCE_SIGNED = "compliance_signed"
    PROJECT_ADVANCED = "project_advanced"
    PROJECT_REJECTED = "project_rejected"
    VERIFICATION_METADATA_UPDATED = "verification_metadata_updated"
    PROJECT_RETIRED = "project_retired"

    # Ledger
    CREDITS_PURCHASED = "credits_purchased"
    CREDITS_RETIRED = "credits_retired"

    # Certificates
    CERTIFICATE_ISSUED = "certificate_issued"
    CERTIFICATE_CORRECTED = "certificate_corrected"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Contract:
        AuditEvent rows are append-only, never updated or deleted.  Each
        row's hash includes the previous row's hash.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT enforce hash correctness at INSERT time;
          that is the responsibility of AuditorService.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    # Monotonic sequence for ordering
    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
    )

    # e.g. "Project", "Wallet", "RetirementCertificate"
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    entity_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    action: Mapped[AuditAction] = mapped_column(
        enum_column(AuditAction, "audit_action", length=50),
        nullable=False,
    )

    actor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    occurred_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    payload: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    payload_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # Null for the genesis event
    prev_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    # hash = H(entity_type + entity_id + action + payload_hash + prev_hash)
    hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action.value} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
