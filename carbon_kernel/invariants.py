"""
Kernel Invariants Contract.

These invariants are structural law. They are hardcoded in the ledger
services, ORM listeners and database triggers. No configuration value or
caller-supplied option may override them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across CreditLedgerService, CertificationService,
CertificateIssuer, db/immutability.py and the trigger SQL.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel.

    Each value names one structural guarantee that the kernel provides
    unconditionally.
    """

    CREDIT_CONSERVATION = "credit_conservation"
    """total_credits == available_credits + sum(completed purchase credits)
    for every project. Enforced by CreditLedgerService (single atomic
    unit per purchase) and checked by LedgerSelector."""

    NON_NEGATIVE_BALANCES = "non_negative_balances"
    """Wallet cash, escrow and credit balances and project available
    credits never drop below zero. Enforced by service preconditions,
    ORM listeners and CHECK constraints."""

    FORWARD_ONLY_CERTIFICATION = "forward_only_certification"
    """Project status only moves along an edge of its certification
    workflow. Enforced by CertificationService and the ORM status
    listener."""

    IMMUTABLE_RECORDS = "immutable_records"
    """Transactions, retirement certificates, certificate corrections and
    audit events are append-only. Enforced by ORM listeners and
    PostgreSQL triggers."""

    UNIQUE_SERIALS = "unique_serials"
    """Every retirement certificate carries a globally unique serial
    number. Enforced by the unique constraint plus bounded re-issue in
    CertificateIssuer."""

    NO_LOST_UPDATES = "no_lost_updates"
    """Concurrent mutations of the same wallet or project serialize.
    Enforced by SELECT ... FOR UPDATE and row version compare-and-swap."""


# All invariants as a frozenset for programmatic checks.
ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "carbon_services",
    "carbon_config",
)
