"""
Module: carbon_kernel.models.role_grant
Responsibility: ORM persistence for server-side role grants.  The request
    layer reads the active grants once per request and hands the engine an
    immutable Capability built from them.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - role is a closed enum (VARCHAR + CHECK).
    - A grant is never deleted; revocation stamps revoked_at/revoked_by.

Audit relevance:
    Grants and revocations each produce an audit event, so the history of
    who could approve projects is reconstructible.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from carbon_kernel.db.base import Base, UTCDateTime, UUIDString
from carbon_kernel.db.types import enum_column


class Role(str, Enum):
    BUYER = "buyer"
    PROJECT_OWNER = "project_owner"
    ADMIN = "admin"
    TRADER = "trader"


class RoleGrant(Base):
    """A role held by a user from granted_at until revoked_at (if ever)."""

    __tablename__ = "role_grants"

    __table_args__ = (
        Index("idx_role_grant_user", "user_id", "revoked_at"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    role: Mapped[Role] = mapped_column(
        enum_column(Role, "role", length=20),
        nullable=False,
    )

    granted_by: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    granted_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    revoked_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    revoked_by: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None
