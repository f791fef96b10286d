"""Services for the carbon kernel (write side)."""

from carbon_kernel.services.auditor_service import AuditorService, AuditTrace, AuditTraceEntry
from carbon_kernel.services.authorization_service import AuthorizationService
from carbon_kernel.services.certificate_issuer import CertificateIssuer
from carbon_kernel.services.certification_service import (
    VERIFICATION_METADATA_FIELDS,
    CertificationService,
)
from carbon_kernel.services.credit_ledger_service import CreditLedgerService
from carbon_kernel.services.project_service import ProjectService
from carbon_kernel.services.sequence_service import SequenceCounter, SequenceService
from carbon_kernel.services.wallet_service import WalletService

__all__ = [
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "AuthorizationService",
    "CertificateIssuer",
    "CertificationService",
    "CreditLedgerService",
    "ProjectService",
    "SequenceCounter",
    "SequenceService",
    "VERIFICATION_METADATA_FIELDS",
    "WalletService",
]
