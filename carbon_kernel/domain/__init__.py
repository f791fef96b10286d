"""
Pure domain layer.

Certification pipelines, capability checks, DTOs and the clock, with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (other than SystemClock)
"""

from carbon_kernel.domain.authorization import (
    OPERATION_ROLES,
    Capability,
    Operation,
    authorize,
    check_capability,
)
from carbon_kernel.domain.certification import (
    LEGACY_PIPELINE,
    PIPELINES,
    STAGED_PIPELINE,
    can_transition,
    is_purchasable,
    next_status,
)
from carbon_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from carbon_kernel.domain.dtos import (
    CertificateRecord,
    CertificateVerification,
    ComplianceDeclaration,
    CorrectionRecord,
    ProjectInfo,
    ProjectRegistration,
    PurchaseResult,
    RetirementResult,
    TransactionRecord,
    WalletInfo,
)
from carbon_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Capability",
    "CertificateRecord",
    "CertificateVerification",
    "Clock",
    "ComplianceDeclaration",
    "CorrectionRecord",
    "DeterministicClock",
    "Guard",
    "LEGACY_PIPELINE",
    "OPERATION_ROLES",
    "Operation",
    "PIPELINES",
    "ProjectInfo",
    "ProjectRegistration",
    "PurchaseResult",
    "RetirementResult",
    "STAGED_PIPELINE",
    "SystemClock",
    "TransactionRecord",
    "Transition",
    "WalletInfo",
    "Workflow",
    "authorize",
    "can_transition",
    "check_capability",
    "is_purchasable",
    "next_status",
]
