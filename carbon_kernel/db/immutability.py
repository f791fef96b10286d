"""
ORM-Level Immutability and Ledger Invariant Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

Retired credits and sold credits must stay retired and sold.  Auditors and
registries require that transaction records and retirement certificates can
never be edited after the fact, and that no code path can quietly give a
wallet a negative balance or put credits back into a project's pool.

This module is the FIRST layer of "defense in depth":

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications made through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database
    - Works on every backend, including SQLite

  Layer 2: db/sql/*.sql (PostgreSQL triggers)
    - Catches raw SQL, bulk UPDATE statements, direct psql access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | Rule
-----------------------|--------------------------------------------------------
CreditTransaction      | Append-only (no UPDATE, no DELETE)
RetirementCertificate  | Append-only
CertificateCorrection  | Append-only
AuditEvent             | Append-only
Wallet                 | Never deleted; balances never negative
Project                | Never deleted; total_credits fixed; available_credits
                       | only decreases and stays within [0, total_credits];
                       | status only moves along a workflow edge;
                       | current_stage mirrors status; pipeline is fixed

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at / updated_by_id are audit metadata and are ignored by the
   append-only checks (they only exist on TrackedBase rows anyway).

2. Status legality is checked against SQLAlchemy attribute history
   (old value -> new value), so a service bug that jumps two stages or
   reopens a rejected project is stopped at flush.

3. Model and domain imports are inline to avoid circular imports.

===============================================================================
USAGE
===============================================================================

    from carbon_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup (create_application)

To temporarily disable (TESTS ONLY - never in production):

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from decimal import Decimal

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from carbon_kernel.exceptions import (
    ImmutabilityViolationError,
    LedgerInvariantViolationError,
)
from carbon_kernel.invariants import LedgerInvariant
from carbon_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _block(entity_type: str, entity_id, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": LedgerInvariant.IMMUTABLE_RECORDS.value,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _violate(entity_type: str, entity_id, invariant: LedgerInvariant, detail: str) -> None:
    logger.error(
        "ledger_invariant_violation_blocked",
        extra={
            "invariant": invariant.value,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "detail": detail,
        },
    )
    raise LedgerInvariantViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        invariant=invariant.value,
        detail=detail,
    )


def _old_value(target, key: str):
    """Value of ``key`` as last loaded from the database (None if unchanged)."""
    hist = get_history(target, key)
    if hist.deleted:
        return hist.deleted[0]
    return None


# =============================================================================
# Append-only records
# =============================================================================


def _check_append_only_update(mapper, connection, target):
    """Refuse any column change on an append-only row."""
    insp = inspect(target)
    for attr in insp.mapper.column_attrs:
        if attr.key in _AUDIT_METADATA_FIELDS:
            continue
        if insp.attrs[attr.key].history.has_changes():
            _block(
                type(target).__name__,
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on an append-only record",
            )


def _check_append_only_delete(mapper, connection, target):
    _block(type(target).__name__, target.id, "DELETE", "Append-only records cannot be deleted")


def _check_ledger_row_delete(mapper, connection, target):
    _block(
        type(target).__name__,
        target.id,
        "DELETE",
        "Wallets and projects are never deleted",
    )


# =============================================================================
# Wallet balances
# =============================================================================


def _check_wallet_balances(mapper, connection, target):
    for field in ("cash_balance", "escrow_balance", "credit_balance"):
        value = getattr(target, field)
        if value is not None and value < 0:
            _violate(
                "Wallet",
                target.id,
                LedgerInvariant.NON_NEGATIVE_BALANCES,
                f"{field} would become {value}",
            )


# =============================================================================
# Project pool and status
# =============================================================================


def _check_project_pool(target) -> None:
    available: Decimal = target.available_credits
    total: Decimal = target.total_credits
    if available < 0:
        _violate(
            "Project",
            target.id,
            LedgerInvariant.NON_NEGATIVE_BALANCES,
            f"available_credits would become {available}",
        )
    if available > total:
        _violate(
            "Project",
            target.id,
            LedgerInvariant.CREDIT_CONSERVATION,
            f"available_credits {available} exceeds total_credits {total}",
        )


def _check_project_insert(mapper, connection, target):
    _check_project_pool(target)
    if target.current_stage != target.status:
        _violate(
            "Project",
            target.id,
            LedgerInvariant.FORWARD_ONLY_CERTIFICATION,
            "current_stage must mirror status",
        )


def _check_project_update(mapper, connection, target):
    from carbon_kernel.domain.certification import can_transition

    if get_history(target, "total_credits").deleted:
        _violate(
            "Project",
            target.id,
            LedgerInvariant.CREDIT_CONSERVATION,
            "total_credits is fixed once issued",
        )

    if get_history(target, "pipeline").deleted:
        _violate(
            "Project",
            target.id,
            LedgerInvariant.FORWARD_ONLY_CERTIFICATION,
            "certification pipeline cannot change",
        )

    previous_available = _old_value(target, "available_credits")
    if previous_available is not None and target.available_credits > previous_available:
        _violate(
            "Project",
            target.id,
            LedgerInvariant.CREDIT_CONSERVATION,
            f"available_credits may not increase ({previous_available} -> "
            f"{target.available_credits})",
        )
    _check_project_pool(target)

    previous_status = _old_value(target, "status")
    if previous_status is not None and previous_status != target.status:
        if not can_transition(target.pipeline, previous_status, target.status):
            _violate(
                "Project",
                target.id,
                LedgerInvariant.FORWARD_ONLY_CERTIFICATION,
                f"illegal status change {getattr(previous_status, 'value', previous_status)}"
                f" -> {getattr(target.status, 'value', target.status)}",
            )

    if target.current_stage != target.status:
        _violate(
            "Project",
            target.id,
            LedgerInvariant.FORWARD_ONLY_CERTIFICATION,
            "current_stage must mirror status",
        )


# =============================================================================
# Registration
# =============================================================================


def _listener_table():
    from carbon_kernel.models.audit_event import AuditEvent
    from carbon_kernel.models.credit_transaction import CreditTransaction
    from carbon_kernel.models.project import Project
    from carbon_kernel.models.retirement_certificate import (
        CertificateCorrection,
        RetirementCertificate,
    )
    from carbon_kernel.models.wallet import Wallet

    table = []
    for model in (CreditTransaction, RetirementCertificate, CertificateCorrection, AuditEvent):
        table.append((model, "before_update", _check_append_only_update))
        table.append((model, "before_delete", _check_append_only_delete))

    table.extend([
        (Wallet, "before_insert", _check_wallet_balances),
        (Wallet, "before_update", _check_wallet_balances),
        (Wallet, "before_delete", _check_ledger_row_delete),
        (Project, "before_insert", _check_project_insert),
        (Project, "before_update", _check_project_update),
        (Project, "before_delete", _check_ledger_row_delete),
    ])
    return table


def register_immutability_listeners():
    """
    Register all immutability and ledger invariant listeners.

    Idempotent: a listener that is already registered is not added twice.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)


def listeners_registered() -> bool:
    return all(
        event.contains(target, event_name, listener_fn)
        for target, event_name, listener_fn in _listener_table()
    )
