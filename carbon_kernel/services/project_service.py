"""
ProjectService -- project registration and compliance declarations.

Responsibility:
    Turns an owner's ProjectRegistration into a Project row with its full
    credit pool available, at the initial status of the chosen certification
    pipeline, and records the owner's compliance declarations.

Architecture position:
    Kernel > Services.  Called by the marketplace facade.

Invariants enforced:
    - available_credits == total_credits at registration.
    - total_credits > 0 (at most 4 places) and price_per_unit > 0 (at most
      2 places); rejected before any row is written.
    - status == current_stage == initial stage of the pipeline.
    - Only the owning project_owner signs declarations; the first signing
      time of each declaration is kept.

Failure modes:
    - UnauthorizedError: caller lacks project_owner, or is not the owner.
    - InvalidProjectDataError: bad totals, price, pipeline, type or registry.
    - ProjectNotFoundError: unknown project id.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from carbon_kernel.db.types import normalize_credit_quantity, normalize_money
from carbon_kernel.domain.authorization import Capability, Operation, authorize
from carbon_kernel.domain.certification import initial_status
from carbon_kernel.domain.clock import Clock, SystemClock
from carbon_kernel.domain.dtos import ComplianceDeclaration, ProjectRegistration
from carbon_kernel.exceptions import (
    InvalidProjectDataError,
    InvalidQuantityError,
    ProjectNotFoundError,
    UnauthorizedError,
)
from carbon_kernel.logging_config import get_logger
from carbon_kernel.models.project import (
    CertificationPipeline,
    Project,
    ProjectStatus,
    ProjectType,
    RegistryType,
)
from carbon_kernel.services.auditor_service import AuditorService
from carbon_kernel.services.base import BaseService

logger = get_logger("services.project")


def _enum_member(enum_cls, field: str, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidProjectDataError(
            field, str(value), f"must be one of {[m.value for m in enum_cls]}"
        ) from None


class ProjectService(BaseService[Project]):
    """
    Project registration.

    Contract:
        register_project() returns the flushed Project; the caller's
        transaction decides whether it is committed.

    Non-goals:
        - Document uploads.  The *_url fields are stored as given.
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

    def _validate(self, registration: ProjectRegistration) -> tuple[Decimal, Decimal]:
        if not registration.name or not registration.name.strip():
            raise InvalidProjectDataError("name", repr(registration.name), "must not be empty")

        try:
            total = normalize_credit_quantity(registration.total_credits)
        except InvalidQuantityError as exc:
            raise InvalidProjectDataError(
                "total_credits", str(registration.total_credits), exc.reason
            ) from None

        try:
            price = normalize_money(registration.price_per_unit, "price_per_unit")
        except ValueError as exc:
            raise InvalidProjectDataError(
                "price_per_unit", str(registration.price_per_unit), str(exc)
            ) from None
        if price <= 0:
            raise InvalidProjectDataError(
                "price_per_unit", str(registration.price_per_unit), "must be greater than zero"
            )

        currency = registration.currency
        if not isinstance(currency, str) or len(currency) != 3 or not currency.isalpha():
            raise InvalidProjectDataError("currency", repr(currency), "must be a 3-letter code")

        return total, price

    def register_project(
        self,
        capability: Capability,
        registration: ProjectRegistration,
    ) -> Project:
        """
        Create a project owned by the caller.

        Postconditions:
            - A Project row with available == total and the pipeline's
              initial status is flushed, with a PROJECT_REGISTERED event.
        """
        authorize(capability, Operation.REGISTER_PROJECT)
        total, price = self._validate(registration)

        pipeline = _enum_member(CertificationPipeline, "pipeline", registration.pipeline)
        project_type = _enum_member(ProjectType, "project_type", registration.project_type)
        registry_type = _enum_member(RegistryType, "registry_type", registration.registry_type)
        status = ProjectStatus(initial_status(pipeline))

        project = Project(
            owner_id=capability.user_id,
            name=registration.name.strip(),
            description=registration.description,
            project_type=project_type,
            country=registration.country,
            location=registration.location,
            vintage_year=registration.vintage_year,
            pipeline=pipeline,
            status=status,
            current_stage=status,
            total_credits=total,
            available_credits=total,
            price_per_unit=price,
            currency=registration.currency.upper(),
            registry_type=registry_type,
            registry_id=registration.registry_id,
            ownership_proof_url=registration.ownership_proof_url,
            pcn_document_url=registration.pcn_document_url,
            monitoring_plan_url=registration.monitoring_plan_url,
            monitoring_report_url=registration.monitoring_report_url,
            created_by_id=capability.user_id,
        )
        self.session.add(project)
        self.session.flush()

        self._auditor.record_project_registered(
            project_id=project.id,
            owner_id=capability.user_id,
            pipeline=pipeline.value,
            total_credits=total,
            price_per_unit=price,
        )
        logger.info(
            "project_registered",
            extra={
                "project_id": str(project.id),
                "owner_id": str(capability.user_id),
                "pipeline": pipeline.value,
                "total_credits": str(total),
            },
        )
        return project

    def lock(self, project_id: UUID) -> Project:
        """Read a project under a row lock, refreshing cached state."""
        project = self.session.execute(
            select(Project)
            .where(Project.id == project_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def get(self, project_id: UUID) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def sign_compliance_declaration(
        self,
        capability: Capability,
        project_id: UUID,
        declaration: ComplianceDeclaration | str,
    ) -> Project:
        """
        Mark one compliance declaration as signed.

        Signing an already-signed declaration changes nothing and records
        no audit event.
        """
        authorize(capability, Operation.SIGN_COMPLIANCE_DECLARATION)
        try:
            declaration = ComplianceDeclaration(declaration)
        except ValueError:
            raise InvalidProjectDataError(
                "declaration",
                str(declaration),
                f"must be one of {[d.value for d in ComplianceDeclaration]}",
            ) from None

        project = self.lock(project_id)
        if project.owner_id != capability.user_id:
            raise UnauthorizedError(
                user_id=str(capability.user_id),
                operation=Operation.SIGN_COMPLIANCE_DECLARATION.value,
                required_roles=["project owner of record"],
            )

        if getattr(project, declaration.flag_field):
            return project

        signed_at = self._clock.now()
        setattr(project, declaration.flag_field, True)
        setattr(project, declaration.timestamp_field, signed_at)
        project.updated_by_id = capability.user_id
        self._flush("Project", project.id)

        self._auditor.record_compliance_signed(
            project_id=project.id,
            declaration=declaration.value,
            signed_at=signed_at,
            actor_id=capability.user_id,
        )
        logger.info(
            "compliance_declaration_signed",
            extra={"project_id": str(project.id), "declaration": declaration.value},
        )
        return project
