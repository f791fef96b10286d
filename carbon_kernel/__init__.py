"""
Carbon Kernel - credit lifecycle engine

A ledger for fungible carbon credits with:
- Forward-only project certification state machine
- Atomic purchase and retirement against locked wallet/project rows
- Unique, fingerprinted retirement certificates
- Hash-chained audit trail
- Fixed-point decimal arithmetic throughout
"""

__version__ = "0.1.0"
