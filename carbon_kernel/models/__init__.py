"""ORM models for the carbon kernel."""

from carbon_kernel.models.audit_event import AuditAction, AuditEvent
from carbon_kernel.models.credit_transaction import (
    CreditTransaction,
    TransactionStatus,
    TransactionType,
)
from carbon_kernel.models.project import (
    CertificationPipeline,
    Project,
    ProjectStatus,
    ProjectType,
    RegistryType,
)
from carbon_kernel.models.retirement_certificate import (
    CertificateCorrection,
    CorrectionKind,
    RetirementCertificate,
)
from carbon_kernel.models.role_grant import Role, RoleGrant
from carbon_kernel.models.wallet import Wallet

__all__ = [
    "AuditAction",
    "AuditEvent",
    "CertificateCorrection",
    "CertificationPipeline",
    "CorrectionKind",
    "CreditTransaction",
    "Project",
    "ProjectStatus",
    "ProjectType",
    "RegistryType",
    "RetirementCertificate",
    "Role",
    "RoleGrant",
    "TransactionStatus",
    "TransactionType",
    "Wallet",
]
