"""Database layer - engine, base classes, column types, and immutability."""

from carbon_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from carbon_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from carbon_kernel.db.types import Credits, Currency, ExactDecimal, Money, PayloadHash

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "ExactDecimal",
    "Money",
    "Credits",
    "Currency",
    "PayloadHash",
]
