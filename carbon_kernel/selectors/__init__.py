"""Selectors for the carbon kernel (read side)."""

from carbon_kernel.selectors.ledger_selector import (
    LedgerSelector,
    PlatformTotals,
    ProjectCreditSummary,
    WalletSummary,
)

__all__ = [
    "LedgerSelector",
    "PlatformTotals",
    "ProjectCreditSummary",
    "WalletSummary",
]
