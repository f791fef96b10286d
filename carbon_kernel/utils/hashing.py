"""
Deterministic hashing utilities.

All hashing in the carbon kernel must be deterministic and reproducible.
This module provides the canonical hashing functions for the audit chain
and for retirement certificate fingerprints.
"""

import hashlib
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from carbon_kernel.db.types import round_credits


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Normalize so 20, 20.0000 and 20.000000000 hash identically
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Produces a deterministic JSON representation:
    - Keys are sorted alphabetically
    - No whitespace
    - Consistent handling of special types (Decimal, datetime, UUID)
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Compute SHA-256 hash of a payload (hex, 64 characters)."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute hash for an audit event.

    The hash includes all key fields plus the previous event's hash,
    creating a tamper-evident chain.
    """
    components = [
        entity_type,
        str(entity_id),
        action,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _utc_naive_iso(moment: datetime) -> str:
    # Naive input is taken to be UTC already.
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.isoformat(timespec="microseconds")


def certificate_fingerprint(
    serial_number: str,
    user_id: UUID | str,
    project_id: UUID | str | None,
    credits_retired: Decimal,
    retirement_reason: str | None,
    issued_at: datetime,
) -> str:
    """
    SHA-256 fingerprint over a retirement certificate's canonical content.

    Credits are rendered at exactly 4 places and the issue time as naive
    UTC ISO-8601, so the fingerprint recomputed from a stored row matches
    the one computed at issuance on every backend.
    """
    content = {
        "serial_number": serial_number,
        "user_id": str(user_id),
        "project_id": str(project_id) if project_id is not None else None,
        "credits_retired": format(round_credits(credits_retired), "f"),
        "retirement_reason": retirement_reason,
        "issued_at": _utc_naive_iso(issued_at),
    }
    return hashlib.sha256(canonicalize_json(content).encode("utf-8")).hexdigest()
