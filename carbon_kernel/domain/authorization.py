"""
carbon_kernel.domain.authorization -- capability tokens and the operation/role map.

Responsibility:
    Declares which roles may invoke each ledger operation and checks an
    immutable ``Capability`` against that map.  The capability is built
    once per request from the role_grants table (AuthorizationService) and
    passed explicitly into every operation; nothing here reads ambient or
    global role state.

Architecture position:
    Kernel > Domain.  Pure.  Role and operation names are plain strings so
    the ORM ``Role`` enum (whose members compare equal to them) stays in
    models/.

Invariants:
    - Fail-closed: an operation missing from OPERATION_ROLES is denied.
    - A capability is frozen; revoking a grant mid-request does not widen
      or narrow it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from carbon_kernel.exceptions import UnauthorizedError

BUYER = "buyer"
PROJECT_OWNER = "project_owner"
ADMIN = "admin"
TRADER = "trader"


class Operation(str, Enum):
    """Every externally invocable ledger operation."""

    PURCHASE = "purchase"
    RETIRE = "retire"
    REGISTER_PROJECT = "register_project"
    SIGN_COMPLIANCE_DECLARATION = "sign_compliance_declaration"
    ADVANCE = "advance"
    REJECT = "reject"
    UPDATE_VERIFICATION_METADATA = "update_verification_metadata"
    RETIRE_PROJECT = "retire_project"
    RECORD_CERTIFICATE_CORRECTION = "record_certificate_correction"
    GRANT_ROLE = "grant_role"
    REVOKE_ROLE = "revoke_role"


OPERATION_ROLES: dict[Operation, frozenset[str]] = {
    Operation.PURCHASE: frozenset({BUYER, TRADER}),
    Operation.RETIRE: frozenset({BUYER, TRADER}),
    Operation.REGISTER_PROJECT: frozenset({PROJECT_OWNER}),
    Operation.SIGN_COMPLIANCE_DECLARATION: frozenset({PROJECT_OWNER}),
    Operation.ADVANCE: frozenset({ADMIN}),
    Operation.REJECT: frozenset({ADMIN}),
    Operation.UPDATE_VERIFICATION_METADATA: frozenset({ADMIN}),
    Operation.RETIRE_PROJECT: frozenset({ADMIN}),
    Operation.RECORD_CERTIFICATE_CORRECTION: frozenset({ADMIN}),
    Operation.GRANT_ROLE: frozenset({ADMIN}),
    Operation.REVOKE_ROLE: frozenset({ADMIN}),
}


@dataclass(frozen=True)
class Capability:
    """Verified identity plus the roles it held when the request began."""

    user_id: UUID
    roles: frozenset[str]
    issued_at: datetime

    def has_role(self, role: str) -> bool:
        return (role.value if isinstance(role, Enum) else role) in self.roles

    def permits(self, operation: Operation) -> bool:
        return bool(self.roles & required_roles(operation))


def required_roles(operation: Operation) -> frozenset[str]:
    return OPERATION_ROLES.get(operation, frozenset())


def check_capability(capability: Capability, operation: Operation) -> tuple[bool, str]:
    """Return (allowed, reason); reason is empty when allowed."""
    needed = required_roles(operation)
    if not needed:
        return (False, f"operation '{operation.value}' has no role mapping")
    if capability.roles & needed:
        return (True, "")
    return (False, f"requires one of {sorted(needed)}")


def authorize(capability: Capability, operation: Operation) -> None:
    """
    Raise UnauthorizedError unless the capability carries a required role.

    Called at the top of every kernel write operation, before any row is
    read or locked.
    """
    allowed, _ = check_capability(capability, operation)
    if not allowed:
        raise UnauthorizedError(
            user_id=str(capability.user_id),
            operation=operation.value,
            required_roles=sorted(required_roles(operation)),
        )
