"""Utility modules for the carbon kernel."""

from carbon_kernel.utils.hashing import (
    canonicalize_json,
    certificate_fingerprint,
    hash_audit_event,
    hash_payload,
)
from carbon_kernel.utils.serials import SerialNumberGenerator, parse_serial

__all__ = [
    "canonicalize_json",
    "certificate_fingerprint",
    "hash_audit_event",
    "hash_payload",
    "SerialNumberGenerator",
    "parse_serial",
]
