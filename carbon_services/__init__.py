"""Request-level orchestration for the carbon ledger (sessions, commits, retries)."""

from carbon_services.accounts import AccountProvisioningService
from carbon_services.admin_workflow import AdminWorkflowController
from carbon_services.bootstrap import Application, create_application
from carbon_services.conflict_retry import is_retryable_conflict, run_with_conflict_retry
from carbon_services.marketplace import MarketplaceService
from carbon_services.wiring import KernelServices

__all__ = [
    "AccountProvisioningService",
    "AdminWorkflowController",
    "Application",
    "KernelServices",
    "MarketplaceService",
    "create_application",
    "is_retryable_conflict",
    "run_with_conflict_retry",
]
