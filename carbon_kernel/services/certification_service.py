"""
CertificationService -- drives projects through their certification workflow.

Responsibility:
    Executes the admin operations advance, reject, update verification
    metadata and retire against a locked project row, using the pure
    transition table in ``domain/certification.py`` to decide legality.

Architecture position:
    Kernel > Services.  Called by the admin workflow controller in
    carbon_services.

Invariants enforced:
    - Only edges of the project's pipeline are taken.  Illegal moves raise
      InvalidTransitionError and change nothing; they are never clamped.
    - ``advance`` from the final stage is an error, not a no-op.
    - ``retire_project`` requires an exhausted pool.
    - current_stage is written together with status.
    - Entering validation/audited/verified stamps the verification fields.

Failure modes:
    - UnauthorizedError: caller is not an admin.
    - ProjectNotFoundError: unknown project id.
    - InvalidTransitionError / RejectionReasonRequiredError /
      InvalidVerificationFieldError.
    - OptimisticLockError: version conflict on flush.

Audit relevance:
    Every successful operation appends exactly one audit event naming the
    acting admin.
"""

from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from carbon_kernel.domain.authorization import Capability, Operation, authorize
from carbon_kernel.domain.certification import (
    ADVANCE,
    REJECT,
    RETIRE,
    VALIDATION_STAMP,
    VERIFICATION_STAMP,
    find_transition,
    is_terminal,
    stamp_for,
)
from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.exceptions import (
    InvalidTransitionError,
    InvalidVerificationFieldError,
    RejectionReasonRequiredError,
)
from carbon_kernel.logging_config import LogContext, get_logger
from carbon_kernel.models.audit_event import AuditAction
from carbon_kernel.models.project import Project, ProjectStatus
from carbon_kernel.services.auditor_service import AuditorService
from carbon_kernel.services.base import BaseService
from carbon_kernel.services.project_service import ProjectService

logger = get_logger("services.certification")

VERIFICATION_METADATA_FIELDS: frozenset[str] = frozenset({
    "vvb_name",
    "vvb_accreditation_number",
    "validation_date",
    "verification_date",
    "verification_notes",
    "registry_id",
})

_DATE_FIELDS = ("validation_date", "verification_date")


class CertificationService(BaseService[Project]):
    """
    Admin-driven certification transitions.

    Contract:
        Each method locks the project (SELECT ... FOR UPDATE), checks the
        move against the pipeline, mutates, flushes and audits.  The caller
        commits.

    Non-goals:
        - Deciding *whether* a project deserves to advance.  That is the
          admin's judgement; the engine only checks the move is legal.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._projects = ProjectService(session, auditor, self._clock)

    def _apply_status(self, project: Project, new_status: str, actor_id: UUID) -> None:
        status = ProjectStatus(new_status)
        project.status = status
        project.current_stage = status
        project.updated_by_id = actor_id

        now = self._clock.now()
        stamp = stamp_for(status)
        if stamp == VALIDATION_STAMP:
            project.validated = True
            project.validated_at = now
            if project.validation_date is None:
                project.validation_date = self._clock.today()
        elif stamp == VERIFICATION_STAMP:
            project.verified_at = now
            project.verified_by = actor_id
            if project.verification_date is None:
                project.verification_date = self._clock.today()

    def advance(self, capability: Capability, project_id: UUID) -> Project:
        """
        Move the project to the next stage of its pipeline.

        Not idempotent: each call moves one step.

        Raises:
            InvalidTransitionError: project is terminal or at its final stage.
        """
        authorize(capability, Operation.ADVANCE)
        with LogContext.bind(project_id=str(project_id), actor_id=str(capability.user_id)):
            project = self._projects.lock(project_id)
            from_status = project.status.value

            transition = find_transition(project.pipeline, from_status, ADVANCE)
            if transition is None:
                reason = (
                    "project is in a terminal state"
                    if is_terminal(from_status)
                    else "already at the final stage of its pipeline"
                )
                logger.warning(
                    "transition_rejected",
                    extra={"action": ADVANCE, "from_status": from_status, "reason": reason},
                )
                raise InvalidTransitionError(str(project_id), from_status, ADVANCE, reason)

            self._apply_status(project, transition.to_state, capability.user_id)
            self._flush("Project", project.id)

            self._auditor.record_project_transition(
                project_id=project.id,
                action=AuditAction.PROJECT_ADVANCED,
                from_status=from_status,
                to_status=transition.to_state,
                actor_id=capability.user_id,
            )
            logger.info(
                "project_advanced",
                extra={"from_status": from_status, "to_status": transition.to_state},
            )
            return project

    def reject(self, capability: Capability, project_id: UUID, reason: str) -> Project:
        """
        Move a non-terminal project to ``rejected``.  Irreversible.

        Raises:
            RejectionReasonRequiredError: reason is empty or whitespace.
            InvalidTransitionError: project already rejected or retired.
        """
        authorize(capability, Operation.REJECT)
        if reason is None or not str(reason).strip():
            raise RejectionReasonRequiredError(str(project_id))
        reason = str(reason).strip()

        with LogContext.bind(project_id=str(project_id), actor_id=str(capability.user_id)):
            project = self._projects.lock(project_id)
            from_status = project.status.value

            transition = find_transition(project.pipeline, from_status, REJECT)
            if transition is None:
                raise InvalidTransitionError(
                    str(project_id), from_status, REJECT, "project is in a terminal state"
                )

            self._apply_status(project, transition.to_state, capability.user_id)
            project.rejection_reason = reason
            project.rejected_at = self._clock.now()
            self._flush("Project", project.id)

            self._auditor.record_project_transition(
                project_id=project.id,
                action=AuditAction.PROJECT_REJECTED,
                from_status=from_status,
                to_status=transition.to_state,
                actor_id=capability.user_id,
                reason=reason,
            )
            logger.info("project_rejected", extra={"from_status": from_status})
            return project

    def retire_project(self, capability: Capability, project_id: UUID) -> Project:
        """
        Close out a project whose issued credits have all been sold.

        Raises:
            InvalidTransitionError: not at the final stage, or credits remain.
        """
        authorize(capability, Operation.RETIRE_PROJECT)
        with LogContext.bind(project_id=str(project_id), actor_id=str(capability.user_id)):
            project = self._projects.lock(project_id)
            from_status = project.status.value

            transition = find_transition(project.pipeline, from_status, RETIRE)
            if transition is None:
                raise InvalidTransitionError(
                    str(project_id),
                    from_status,
                    RETIRE,
                    "only a project at the final stage of its pipeline can be retired",
                )
            if project.available_credits != 0:
                raise InvalidTransitionError(
                    str(project_id),
                    from_status,
                    RETIRE,
                    f"{project.available_credits} credits are still available",
                )

            self._apply_status(project, transition.to_state, capability.user_id)
            project.retired_at = self._clock.now()
            self._flush("Project", project.id)

            self._auditor.record_project_transition(
                project_id=project.id,
                action=AuditAction.PROJECT_RETIRED,
                from_status=from_status,
                to_status=transition.to_state,
                actor_id=capability.user_id,
            )
            logger.info("project_retired", extra={"from_status": from_status})
            return project

    def update_verification_metadata(
        self,
        capability: Capability,
        project_id: UUID,
        fields: dict[str, Any],
    ) -> Project:
        """
        Record validation/verification body details on a live project.

        Preconditions:
            - ``fields`` keys are a subset of VERIFICATION_METADATA_FIELDS.
            - Date fields are ``datetime.date`` values (or None to clear).

        Raises:
            InvalidVerificationFieldError: unknown or badly typed field.
            InvalidTransitionError: project is rejected or retired.
        """
        authorize(capability, Operation.UPDATE_VERIFICATION_METADATA)

        unknown = sorted(set(fields) - VERIFICATION_METADATA_FIELDS)
        if unknown:
            raise InvalidVerificationFieldError(str(project_id), unknown)
        badly_typed = sorted(
            name for name in _DATE_FIELDS
            if name in fields and fields[name] is not None and not isinstance(fields[name], date)
        )
        if badly_typed:
            raise InvalidVerificationFieldError(str(project_id), badly_typed)

        with LogContext.bind(project_id=str(project_id), actor_id=str(capability.user_id)):
            project = self._projects.lock(project_id)
            if is_terminal(project.status):
                raise InvalidTransitionError(
                    str(project_id),
                    project.status.value,
                    "update_verification_metadata",
                    "project is in a terminal state",
                )

            changes = {
                name: value for name, value in fields.items()
                if getattr(project, name) != value
            }
            if not changes:
                return project

            for name, value in changes.items():
                setattr(project, name, value)
            project.updated_by_id = capability.user_id
            self._flush("Project", project.id)

            self._auditor.record_verification_metadata_updated(
                project_id=project.id,
                changes=changes,
                actor_id=capability.user_id,
            )
            logger.info(
                "verification_metadata_updated",
                extra={"fields": sorted(changes)},
            )
            return project
