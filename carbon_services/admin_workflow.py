"""
carbon_services.admin_workflow -- admin back-office operations.

Responsibility:
    The request boundary for advance, reject, verification metadata
    updates, project retirement, certificate corrections and role
    management.  Each call is one committed unit of work.

Architecture position:
    Services.  Drives CertificationService, CertificateIssuer and
    AuthorizationService; owns sessions and commits.

Invariants enforced:
    - Every operation requires an admin capability (checked in the kernel).
    - ``advance`` is not idempotent.  Conflict retry re-reads the project,
      so a retried advance moves one step from the state it finds, never
      two steps from the state the caller saw.

Failure modes:
    - Kernel errors propagate unchanged after rollback.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from carbon_kernel.domain.authorization import Capability
from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.domain.dtos import CorrectionRecord, ProjectInfo
from carbon_kernel.logging_config import LogContext, get_logger
from carbon_kernel.models.retirement_certificate import CorrectionKind
from carbon_kernel.models.role_grant import Role
from carbon_kernel.services.auditor_service import AuditTrace
from carbon_services.conflict_retry import DEFAULT_MAX_ATTEMPTS, run_with_conflict_retry
from carbon_services.wiring import KernelServices

logger = get_logger("services.admin_workflow")


class AdminWorkflowController:
    """
    Admin facade over the certification workflow.

    Contract:
        Callers gate ``advance`` behind an explicit human action; the
        controller does not deduplicate repeated calls.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        max_conflict_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._max_conflict_attempts = max_conflict_attempts

    def _run(self, operation: str, fn: Callable[[KernelServices], Any]) -> Any:
        return run_with_conflict_retry(
            self._session_factory,
            lambda session: fn(KernelServices(session, clock=self._clock)),
            operation=operation,
            max_attempts=self._max_conflict_attempts,
        )

    def advance(self, capability: Capability, project_id: UUID) -> ProjectInfo:
        with LogContext.bind(actor_id=str(capability.user_id)):
            return self._run(
                "advance",
                lambda s: ProjectInfo.from_model(s.certification.advance(capability, project_id)),
            )

    def reject(self, capability: Capability, project_id: UUID, reason: str) -> ProjectInfo:
        with LogContext.bind(actor_id=str(capability.user_id)):
            return self._run(
                "reject",
                lambda s: ProjectInfo.from_model(
                    s.certification.reject(capability, project_id, reason)
                ),
            )

    def update_verification_metadata(
        self,
        capability: Capability,
        project_id: UUID,
        fields: dict[str, str | date | None],
    ) -> ProjectInfo:
        with LogContext.bind(actor_id=str(capability.user_id)):
            return self._run(
                "update_verification_metadata",
                lambda s: ProjectInfo.from_model(
                    s.certification.update_verification_metadata(capability, project_id, fields)
                ),
            )

    def retire_project(self, capability: Capability, project_id: UUID) -> ProjectInfo:
        with LogContext.bind(actor_id=str(capability.user_id)):
            return self._run(
                "retire_project",
                lambda s: ProjectInfo.from_model(
                    s.certification.retire_project(capability, project_id)
                ),
            )

    def record_certificate_correction(
        self,
        capability: Capability,
        serial_number: str,
        kind: CorrectionKind | str,
        reason: str,
    ) -> CorrectionRecord:
        with LogContext.bind(actor_id=str(capability.user_id), serial_number=serial_number):
            return self._run(
                "record_certificate_correction",
                lambda s: CorrectionRecord.from_model(
                    s.issuer.record_correction(capability, serial_number, kind, reason)
                ),
            )

    def grant_role(self, capability: Capability, user_id: UUID, role: Role | str) -> None:
        self._run(
            "grant_role",
            lambda s: s.authorization.grant_role(capability, user_id, role),
        )

    def revoke_role(self, capability: Capability, user_id: UUID, role: Role | str) -> bool:
        return self._run(
            "revoke_role",
            lambda s: s.authorization.revoke_role(capability, user_id, role),
        )

    def audit_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        return self._run(
            "audit_trace",
            lambda s: s.auditor.get_trace(entity_type, entity_id),
        )

    def validate_audit_chain(self) -> bool:
        return self._run("validate_audit_chain", lambda s: s.auditor.validate_chain())
