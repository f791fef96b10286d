"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every state change in
    the carbon ledger.  Provides chain validation for tamper detection and
    trace queries for forensic review.

Architecture position:
    Kernel > Services -- imperative shell, called by every write service in
    the same database transaction as the change it records.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Audit chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``.  The chain is global; the locked
      sequence counter serializes appends so two writers never link to the
      same predecessor.
    - Append-only: audit events are never modified or deleted (ORM +
      DB trigger enforced on the AuditEvent model).

Failure modes:
    - AuditChainBrokenError: Recomputed hash does not match stored hash,
      a payload no longer matches its payload_hash, or prev_hash does not
      match the predecessor's hash.

Audit relevance:
    This IS the audit service.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.exceptions import AuditChainBrokenError
from carbon_kernel.logging_config import get_logger
from carbon_kernel.models.audit_event import AuditAction, AuditEvent
from carbon_kernel.services.sequence_service import SequenceService
from carbon_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """Complete audit trace for an entity, in chronological order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


def _plain(value: Any) -> Any:
    """JSON-column-safe rendering of a payload value."""
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Contract:
        Accepts domain-specific recording requests and creates append-only
        ``AuditEvent`` rows with cryptographic hash chain linkage.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        """Get the hash of the most recent audit event."""
        return self._session.execute(
            select(AuditEvent.hash)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event with hash chain linkage.

        Postconditions:
            - A new ``AuditEvent`` row is flushed with a monotonically
              increasing ``seq`` and
              ``hash == H(entity_type, entity_id, action, payload_hash, prev_hash)``.
        """
        # Locks the counter row: appends to the chain are serialized from here.
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)

        prev_hash = self._get_last_hash()

        payload_data = {k: _plain(v) for k, v in (payload or {}).items()}
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )

        return audit_event

    # Accounts

    def record_wallet_provisioned(
        self,
        wallet_id: UUID,
        user_id: UUID,
        currency: str,
        opening_cash: Decimal,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Wallet",
            entity_id=wallet_id,
            action=AuditAction.WALLET_PROVISIONED,
            actor_id=actor_id,
            payload={
                "user_id": user_id,
                "currency": currency,
                "opening_cash": opening_cash,
            },
        )

    def record_role_granted(self, grant_id: UUID, user_id: UUID, role: str, actor_id: UUID) -> AuditEvent:
        return self._create_audit_event(
            entity_type="RoleGrant",
            entity_id=grant_id,
            action=AuditAction.ROLE_GRANTED,
            actor_id=actor_id,
            payload={"user_id": user_id, "role": role},
        )

    def record_role_revoked(self, grant_id: UUID, user_id: UUID, role: str, actor_id: UUID) -> AuditEvent:
        return self._create_audit_event(
            entity_type="RoleGrant",
            entity_id=grant_id,
            action=AuditAction.ROLE_REVOKED,
            actor_id=actor_id,
            payload={"user_id": user_id, "role": role},
        )

    # Project lifecycle

    def record_project_registered(
        self,
        project_id: UUID,
        owner_id: UUID,
        pipeline: str,
        total_credits: Decimal,
        price_per_unit: Decimal,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Project",
            entity_id=project_id,
            action=AuditAction.PROJECT_REGISTERED,
            actor_id=owner_id,
            payload={
                "pipeline": pipeline,
                "total_credits": total_credits,
                "price_per_unit": price_per_unit,
            },
        )

    def record_compliance_signed(
        self,
        project_id: UUID,
        declaration: str,
        signed_at: datetime,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Project",
            entity_id=project_id,
            action=AuditAction.COMPLIANCE_SIGNED,
            actor_id=actor_id,
            payload={"declaration": declaration, "signed_at": signed_at},
        )

    def record_project_transition(
        self,
        project_id: UUID,
        action: AuditAction,
        from_status: str,
        to_status: str,
        actor_id: UUID,
        reason: str | None = None,
    ) -> AuditEvent:
        """
        Record an advance, rejection or project retirement.

        Preconditions:
            - ``action`` is PROJECT_ADVANCED, PROJECT_REJECTED or PROJECT_RETIRED.
        """
        payload: dict[str, Any] = {"from_status": from_status, "to_status": to_status}
        if reason is not None:
            payload["reason"] = reason
        return self._create_audit_event(
            entity_type="Project",
            entity_id=project_id,
            action=action,
            actor_id=actor_id,
            payload=payload,
        )

    def record_verification_metadata_updated(
        self,
        project_id: UUID,
        changes: dict[str, Any],
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="Project",
            entity_id=project_id,
            action=AuditAction.VERIFICATION_METADATA_UPDATED,
            actor_id=actor_id,
            payload={"fields": sorted(changes), **{f"new_{k}": v for k, v in changes.items()}},
        )

    # Ledger

    def record_purchase(
        self,
        transaction_id: UUID,
        project_id: UUID,
        wallet_id: UUID,
        credits: Decimal,
        total_amount: Decimal,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="CreditTransaction",
            entity_id=transaction_id,
            action=AuditAction.CREDITS_PURCHASED,
            actor_id=actor_id,
            payload={
                "project_id": project_id,
                "wallet_id": wallet_id,
                "credits": credits,
                "total_amount": total_amount,
            },
        )

    def record_retirement(
        self,
        transaction_id: UUID,
        wallet_id: UUID,
        certificate_id: UUID,
        credits: Decimal,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="CreditTransaction",
            entity_id=transaction_id,
            action=AuditAction.CREDITS_RETIRED,
            actor_id=actor_id,
            payload={
                "wallet_id": wallet_id,
                "certificate_id": certificate_id,
                "credits": credits,
            },
        )

    # Certificates

    def record_certificate_issued(
        self,
        certificate_id: UUID,
        serial_number: str,
        fingerprint: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="RetirementCertificate",
            entity_id=certificate_id,
            action=AuditAction.CERTIFICATE_ISSUED,
            actor_id=actor_id,
            payload={"serial_number": serial_number, "fingerprint": fingerprint},
        )

    def record_certificate_corrected(
        self,
        certificate_id: UUID,
        correction_id: UUID,
        kind: str,
        reason: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type="RetirementCertificate",
            entity_id=certificate_id,
            action=AuditAction.CERTIFICATE_CORRECTED,
            actor_id=actor_id,
            payload={"correction_id": correction_id, "kind": kind, "reason": reason},
        )

    # Verification

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Postconditions:
            - Returns ``True`` only if every event's payload matches its
              payload_hash, every stored ``hash`` matches the recomputed
              value, and every ``prev_hash`` matches its predecessor.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        previous_hash: str | None = None
        for event in events:
            if event.prev_hash != previous_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq, "check": "linkage"})
                raise AuditChainBrokenError(
                    str(event.id),
                    previous_hash or "None",
                    event.prev_hash or "None",
                )

            recomputed_payload_hash = hash_payload(event.payload or {})
            if recomputed_payload_hash != event.payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq, "check": "payload"})
                raise AuditChainBrokenError(
                    str(event.id),
                    event.payload_hash,
                    recomputed_payload_hash,
                )

            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action.value,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": event.seq, "check": "hash"})
                raise AuditChainBrokenError(str(event.id), expected_hash, event.hash)

            previous_hash = event.hash

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """Get the complete audit trace for an entity."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=event.action,
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                payload=event.payload or {},
                hash=event.hash,
            )
            for event in events
        )

        return AuditTrace(entity_type=entity_type, entity_id=entity_id, entries=entries)
