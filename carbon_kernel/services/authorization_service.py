"""
AuthorizationService -- role grants and per-request capability tokens.

Responsibility:
    Reads a user's active role grants once and returns an immutable
    ``Capability``; grants and revokes roles on behalf of an admin.

Architecture position:
    Kernel > Services.  The request layer calls ``capability_for()`` at the
    start of each request and passes the result into every kernel call.

Invariants enforced:
    - Grant/revoke are admin-only (checked against the *caller's*
      capability, not a global).
    - Grants are never deleted; revocation stamps revoked_at.
    - Granting a role the user already holds is a no-op returning the
      existing grant.

Failure modes:
    - UnauthorizedError if the caller is not an admin.
    - ValueError for an unknown role name.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from carbon_kernel.domain.authorization import Capability, Operation, authorize
from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.logging_config import get_logger
from carbon_kernel.models.role_grant import Role, RoleGrant
from carbon_kernel.services.auditor_service import AuditorService
from carbon_kernel.services.base import BaseService

logger = get_logger("services.authorization")


class AuthorizationService(BaseService[RoleGrant]):
    """Role-grant store and capability factory."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()

    def _active_grants(self, user_id: UUID) -> list[RoleGrant]:
        return list(
            self.session.execute(
                select(RoleGrant).where(
                    RoleGrant.user_id == user_id,
                    RoleGrant.revoked_at.is_(None),
                )
            ).scalars()
        )

    def capability_for(self, user_id: UUID) -> Capability:
        """Snapshot the user's active roles into a capability token."""
        roles = frozenset(grant.role.value for grant in self._active_grants(user_id))
        logger.debug(
            "capability_issued",
            extra={"user_id": str(user_id), "roles": sorted(roles)},
        )
        return Capability(user_id=user_id, roles=roles, issued_at=self._clock.now())

    def role_is_held(self, role: Role | str) -> bool:
        """True if any user currently holds ``role``."""
        return self.session.execute(
            select(RoleGrant.id)
            .where(RoleGrant.role == Role(role), RoleGrant.revoked_at.is_(None))
            .limit(1)
        ).scalar_one_or_none() is not None

    def bootstrap_grant(self, user_id: UUID, role: Role | str) -> RoleGrant:
        """
        Grant a role without an admin capability.

        Only for provisioning the first administrator of an empty
        installation; the grant is still audited with the user as actor.
        """
        return self._grant(user_id, Role(role), granted_by=user_id)

    def grant_role(self, capability: Capability, user_id: UUID, role: Role | str) -> RoleGrant:
        authorize(capability, Operation.GRANT_ROLE)
        return self._grant(user_id, Role(role), granted_by=capability.user_id)

    def _grant(self, user_id: UUID, role: Role, granted_by: UUID) -> RoleGrant:
        for grant in self._active_grants(user_id):
            if grant.role == role:
                return grant

        grant = RoleGrant(
            user_id=user_id,
            role=role,
            granted_by=granted_by,
            granted_at=self._clock.now(),
        )
        self.session.add(grant)
        self.session.flush()

        self._auditor.record_role_granted(grant.id, user_id, role.value, granted_by)
        logger.info(
            "role_granted",
            extra={"user_id": str(user_id), "role": role.value, "granted_by": str(granted_by)},
        )
        return grant

    def revoke_role(self, capability: Capability, user_id: UUID, role: Role | str) -> bool:
        """Revoke an active grant.  Returns False if the user did not hold it."""
        authorize(capability, Operation.REVOKE_ROLE)
        role = Role(role)
        revoked = False
        for grant in self._active_grants(user_id):
            if grant.role != role:
                continue
            grant.revoked_at = self._clock.now()
            grant.revoked_by = capability.user_id
            self.session.flush()
            self._auditor.record_role_revoked(grant.id, user_id, role.value, capability.user_id)
            revoked = True

        if revoked:
            logger.info(
                "role_revoked",
                extra={"user_id": str(user_id), "role": role.value, "revoked_by": str(capability.user_id)},
            )
        return revoked
