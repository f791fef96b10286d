"""
Typed Exception Hierarchy for the Carbon Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure in this kernel concerns money or environmental-credit
integrity. Callers (the buyer UI, the admin back-office) must be able to
react to a failure without parsing message text:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        marketplace.purchase(capability, project_id, Decimal("6"))
    except InsufficientCreditsError as e:
        show(f"Only {e.available} credits left")     # Structured data
        api_response(code=e.code)                    # Machine-readable

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CarbonKernelError (base)
    |
    +-- NotFoundError
    |   +-- ProjectNotFoundError
    |   +-- WalletNotFoundError
    |   +-- CertificateNotFoundError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedError
    |
    +-- CertificationError
    |   +-- InvalidTransitionError
    |   +-- RejectionReasonRequiredError
    |   +-- InvalidVerificationFieldError
    |   +-- InvalidProjectDataError
    |
    +-- LedgerError
    |   +-- InvalidQuantityError
    |   +-- ProjectNotPurchasableError
    |   +-- InsufficientCreditsError
    |   +-- InsufficientFundsError
    |   +-- CurrencyMismatchError
    |
    +-- WalletError
    |   +-- WalletAlreadyExistsError
    |
    +-- IssuanceError
    |   +-- SerialCollisionError
    |   +-- IssuanceFailedError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- ConflictRetriesExhaustedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |   +-- LedgerInvariantViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | PROJECT_NOT_FOUND           | Unknown project id
                | WALLET_NOT_FOUND            | User has no provisioned wallet
                | CERTIFICATE_NOT_FOUND       | Unknown or malformed serial number
----------------|-----------------------------|-----------------------------------------
Authorization   | UNAUTHORIZED                | Capability lacks the required role
----------------|-----------------------------|-----------------------------------------
Certification   | INVALID_TRANSITION          | Illegal state-machine move
                | REJECTION_REASON_REQUIRED   | reject() without a reason
                | INVALID_VERIFICATION_FIELD  | Unknown metadata field
                | INVALID_PROJECT_DATA        | Bad totals/price at registration
----------------|-----------------------------|-----------------------------------------
Ledger          | INVALID_QUANTITY            | quantity <= 0, float, > 4 places
                | PROJECT_NOT_PURCHASABLE     | Project not in a sellable state
                | INSUFFICIENT_CREDITS        | Quantity exceeds pool/credit balance
                | INSUFFICIENT_FUNDS          | Cost exceeds cash balance
                | CURRENCY_MISMATCH           | Wallet and project currencies differ
----------------|-----------------------------|-----------------------------------------
Wallet          | WALLET_ALREADY_EXISTS       | Second wallet for one user
----------------|-----------------------------|-----------------------------------------
Issuance        | SERIAL_COLLISION            | Serial already taken (retried)
                | ISSUANCE_FAILED             | Retry budget for serials exhausted
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Row version changed underneath us
                | CONFLICT_RETRIES_EXHAUSTED  | Unit of work kept conflicting
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of an append-only row
                | LEDGER_INVARIANT_VIOLATION  | Flush would break a ledger invariant
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Only SerialCollisionError is retried inside the kernel (by
   CertificateIssuer). ConcurrencyError subclasses are retried by the
   request layer. Everything else is fatal to the request and leaves the
   ledger unchanged.

2. ImmutabilityError means application code tried something the ledger
   forbids. Log it and investigate; never retry it.
"""


class CarbonKernelError(Exception):
    """
    Base exception for all carbon kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CARBON_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(CarbonKernelError):
    """Base exception for unknown entities."""

    code: str = "NOT_FOUND"


class ProjectNotFoundError(NotFoundError):
    """Project with given ID was not found."""

    code: str = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class WalletNotFoundError(NotFoundError):
    """User has no wallet."""

    code: str = "WALLET_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Wallet not found for user: {user_id}")


class CertificateNotFoundError(NotFoundError):
    """No retirement certificate carries the given serial number."""

    code: str = "CERTIFICATE_NOT_FOUND"

    def __init__(self, serial_number: str):
        self.serial_number = serial_number
        super().__init__(f"Retirement certificate not found: {serial_number}")


# Authorization exceptions


class AuthorizationError(CarbonKernelError):
    """Base exception for authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedError(AuthorizationError):
    """The caller's capability does not carry a role the operation requires."""

    code: str = "UNAUTHORIZED"

    def __init__(self, user_id: str, operation: str, required_roles: list[str]):
        self.user_id = user_id
        self.operation = operation
        self.required_roles = required_roles
        super().__init__(
            f"User {user_id} may not {operation}: requires one of "
            f"{', '.join(required_roles)}"
        )


# Certification exceptions


class CertificationError(CarbonKernelError):
    """Base exception for project certification errors."""

    code: str = "CERTIFICATION_ERROR"


class InvalidTransitionError(CertificationError):
    """
    Requested state-machine move is not an edge of the project's workflow.

    Never clamped: the caller decides whether to try a different action.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(self, project_id: str, current_status: str, action: str, reason: str):
        self.project_id = project_id
        self.current_status = current_status
        self.action = action
        self.reason = reason
        super().__init__(
            f"Cannot {action} project {project_id} from '{current_status}': {reason}"
        )


class RejectionReasonRequiredError(CertificationError):
    """reject() was called with an empty reason."""

    code: str = "REJECTION_REASON_REQUIRED"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"A rejection reason is required for project {project_id}")


class InvalidVerificationFieldError(CertificationError):
    """Verification metadata update named fields outside the allowed set."""

    code: str = "INVALID_VERIFICATION_FIELD"

    def __init__(self, project_id: str, fields: list[str]):
        self.project_id = project_id
        self.fields = fields
        super().__init__(
            f"Fields not updatable on project {project_id}: {', '.join(fields)}"
        )


class InvalidProjectDataError(CertificationError):
    """Registration data violates a project invariant."""

    code: str = "INVALID_PROJECT_DATA"

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid project {field} '{value}': {reason}")


# Ledger exceptions


class LedgerError(CarbonKernelError):
    """Base exception for purchase/retirement validation failures."""

    code: str = "LEDGER_ERROR"


class InvalidQuantityError(LedgerError):
    """Credit quantity is not a positive, exact decimal of at most 4 places."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: str, reason: str):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid credit quantity '{quantity}': {reason}")


class ProjectNotPurchasableError(LedgerError):
    """Project is not in a state that allows purchases."""

    code: str = "PROJECT_NOT_PURCHASABLE"

    def __init__(self, project_id: str, status: str):
        self.project_id = project_id
        self.status = status
        super().__init__(
            f"Project {project_id} is not purchasable in status '{status}'"
        )


class InsufficientCreditsError(LedgerError):
    """Requested quantity exceeds the available pool or credit balance."""

    code: str = "INSUFFICIENT_CREDITS"

    def __init__(self, requested: str, available: str):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient credits: requested {requested}, available {available}"
        )


class InsufficientFundsError(LedgerError):
    """Purchase cost exceeds the buyer's cash balance."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, required: str, available: str, currency: str):
        self.required = required
        self.available = available
        self.currency = currency
        super().__init__(
            f"Insufficient funds: required {required} {currency}, "
            f"available {available} {currency}"
        )


class CurrencyMismatchError(LedgerError):
    """Wallet and project are denominated in different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, wallet_currency: str, project_currency: str):
        self.wallet_currency = wallet_currency
        self.project_currency = project_currency
        super().__init__(
            f"Currency mismatch: wallet holds {wallet_currency}, "
            f"project is priced in {project_currency}"
        )


# Wallet exceptions


class WalletError(CarbonKernelError):
    """Base exception for wallet provisioning errors."""

    code: str = "WALLET_ERROR"


class WalletAlreadyExistsError(WalletError):
    """A wallet is already provisioned for this user."""

    code: str = "WALLET_ALREADY_EXISTS"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Wallet already exists for user: {user_id}")


# Issuance exceptions


class IssuanceError(CarbonKernelError):
    """Base exception for certificate issuance errors."""

    code: str = "ISSUANCE_ERROR"


class SerialCollisionError(IssuanceError):
    """
    Generated serial number is already taken.

    The only retryable failure in the kernel. CertificateIssuer retries
    with a fresh serial up to its attempt budget.
    """

    code: str = "SERIAL_COLLISION"

    def __init__(self, serial_number: str):
        self.serial_number = serial_number
        super().__init__(f"Serial number already issued: {serial_number}")


class IssuanceFailedError(IssuanceError):
    """Serial collisions persisted past the retry budget."""

    code: str = "ISSUANCE_FAILED"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Certificate issuance failed after {attempts} serial collisions"
        )


# Concurrency exceptions


class ConcurrencyError(CarbonKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class ConflictRetriesExhaustedError(ConcurrencyError):
    """A unit of work kept losing races past the configured retry limit."""

    code: str = "CONFLICT_RETRIES_EXHAUSTED"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} still conflicting after {attempts} attempts"
        )


# Immutability exceptions


class ImmutabilityError(CarbonKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Transactions, retirement certificates, certificate corrections and
    audit events are immutable from creation; wallets and projects are
    never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class LedgerInvariantViolationError(ImmutabilityError):
    """A pending flush would leave a wallet or project in an illegal state."""

    code: str = "LEDGER_INVARIANT_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, invariant: str, detail: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.invariant = invariant
        self.detail = detail
        super().__init__(
            f"{invariant} violated on {entity_type} {entity_id}: {detail}"
        )


# Audit exceptions


class AuditError(CarbonKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at event {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
