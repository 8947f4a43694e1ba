"""
JobService -- job creation and component management.

Responsibility:
    The one place a Job row is born.  create_job allocates identifiers,
    seeds the component list from the suggestion engine, determines the
    production pathway and inserts everything in the caller's transaction.
    Also appends components and gates the DRAFT -> ACTIVE release on the
    component validator.

Architecture position:
    Kernel > Services.  Uses JobIdentifierAllocator and the pure domain
    functions (derive_job_type_code, suggest_components, determine_pathway,
    validate_components).

Invariants enforced:
    - Identifier allocation and the job insert share one transaction.
    - A job leaves DRAFT only with a component list the validator accepts.

Failure modes:
    - InvalidJobTypeCodeError for an explicit code of the wrong shape.
    - SequenceConflictError when the base_job_id unique constraint fires
      (a counter that was reset or seeded below existing ids).
    - JobNotFoundError, InvalidJobStatusError, ComponentValidationError.
"""

from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from job_kernel.domain.components import (
    ComponentSpec,
    renumber,
    suggest_components,
    validate_components,
)
from job_kernel.domain.dtos import ComponentRecord, JobRecord
from job_kernel.domain.job_identity import (
    DEFAULT_NUMBERING_POLICY,
    JobClassification,
    JobStatus,
    NumberingPolicy,
    derive_job_type_code,
)
from job_kernel.domain.pathway import RoutingType, determine_pathway
from job_kernel.exceptions import (
    ComponentValidationError,
    InvalidJobStatusError,
    JobNotFoundError,
)
from job_kernel.logging_config import get_logger
from job_kernel.models.component import JobComponent
from job_kernel.models.job import Job
from job_kernel.services.base import BaseService, as_sequence_conflict
from job_kernel.services.job_identifier_allocator import JobIdentifierAllocator

logger = get_logger("services.job")

_COMPONENT_EDITABLE_STATUSES = frozenset({JobStatus.DRAFT, JobStatus.ACTIVE})


def _component_row(spec: ComponentSpec, sort_order: int) -> JobComponent:
    return JobComponent(
        type=spec.type.value,
        name=spec.name,
        description=spec.description,
        owner=spec.owner.value,
        vendor_id=spec.vendor_id,
        artwork_required=spec.artwork_required,
        data_required=spec.data_required,
        sort_order=sort_order,
    )


class JobService(BaseService[Job]):
    """
    Write operations on jobs.

    Contract:
        Flush-only; the caller commits.  Returns JobRecord /
        ComponentRecord DTOs.
    """

    def __init__(
        self,
        session: Session,
        numbering_policy: NumberingPolicy = DEFAULT_NUMBERING_POLICY,
    ):
        super().__init__(session)
        self._allocator = JobIdentifierAllocator(session, numbering_policy)

    def _lock_job(self, job_id: UUID) -> Job:
        job = self.session.execute(
            select(Job)
            .where(Job.id == job_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    def create_job(
        self,
        classification: JobClassification,
        *,
        job_type_code: str | None = None,
        routing_type: RoutingType | str | None = None,
        title: str | None = None,
        specs: Mapping[str, Any] | None = None,
        components: Iterable[ComponentSpec] | None = None,
        purchase_order_vendor_ids: Iterable[str] = (),
    ) -> JobRecord:
        """
        Allocate identifiers and insert a DRAFT job with its components.

        Args:
            classification: Mailing/format/type flags; drives the type code
                and the suggested components.
            job_type_code: Overrides the derived code when given.
            routing_type: BRADFORD_JD routes the job to P1.
            title: Free-text job title.
            specs: Opaque spec payload owned by collaborators.
            components: Explicit component list.  When None the suggestion
                engine's output is used.
            purchase_order_vendor_ids: Vendors already targeted by POs;
                counted for the P2/P3 decision.

        Returns:
            JobRecord of the inserted job, components included.
        """
        code = job_type_code or derive_job_type_code(classification)
        routing = RoutingType(routing_type) if routing_type is not None else None

        if components is None:
            seeds = [
                ComponentSpec.from_suggestion(suggestion)
                for suggestion in suggest_components(classification)
            ]
        else:
            seeds = renumber(components)

        pathway = determine_pathway(routing, seeds, purchase_order_vendor_ids)
        identifiers = self._allocator.allocate(code)

        job = Job(
            base_job_id=identifiers.base_job_id,
            master_seq=identifiers.master_seq,
            job_type_code=identifiers.job_type_code,
            status=JobStatus.DRAFT.value,
            pathway=pathway.value,
            routing_type=routing.value if routing is not None else None,
            job_meta_type=(
                classification.job_meta_type.value
                if classification.job_meta_type is not None
                else None
            ),
            mail_format=(
                classification.mail_format.value
                if classification.mail_format is not None
                else None
            ),
            job_type=(
                classification.job_type.value
                if classification.job_type is not None
                else None
            ),
            envelope_components=classification.envelope_components,
            title=title,
            specs=dict(specs or {}),
        )
        job.components = [_component_row(spec, spec.sort_order) for spec in seeds]
        self.session.add(job)
        try:
            self.session.flush()
        except IntegrityError as exc:
            conflict = as_sequence_conflict(exc, self._allocator.policy.counter_key(code))
            if conflict is None:
                raise
            raise conflict from exc

        logger.info(
            "job_created",
            extra={
                "job_id": str(job.id),
                "base_job_id": job.base_job_id,
                "job_type_code": job.job_type_code,
                "pathway": pathway.value,
                "component_count": len(seeds),
            },
        )
        return job.to_dto()

    def add_component(self, job_id: UUID, spec: ComponentSpec) -> ComponentRecord:
        """Append a component after the job's current last one."""
        job = self._lock_job(job_id)
        if JobStatus(job.status) not in _COMPONENT_EDITABLE_STATUSES:
            raise InvalidJobStatusError(str(job_id), job.status, "add a component to")

        last = self.session.execute(
            select(func.max(JobComponent.sort_order)).where(JobComponent.job_id == job_id)
        ).scalar_one()
        component = _component_row(spec, 0 if last is None else last + 1)
        job.components.append(component)
        self.session.flush()

        logger.info(
            "job_component_added",
            extra={
                "job_id": str(job_id),
                "component_type": component.type,
                "sort_order": component.sort_order,
            },
        )
        return component.to_dto()

    def release_from_draft(self, job_id: UUID) -> JobRecord:
        """DRAFT -> ACTIVE, blocked while the validator reports issues."""
        job = self._lock_job(job_id)
        if JobStatus(job.status) != JobStatus.DRAFT:
            raise InvalidJobStatusError(str(job_id), job.status, "release")

        issues = validate_components(job.components)
        if issues:
            logger.info(
                "job_release_blocked",
                extra={
                    "job_id": str(job_id),
                    "issues": [issue.code.value for issue in issues],
                },
            )
            raise ComponentValidationError(
                job.base_job_id, [str(issue) for issue in issues]
            )

        job.status = JobStatus.ACTIVE.value
        self.session.flush()

        logger.info(
            "job_released",
            extra={"job_id": str(job_id), "base_job_id": job.base_job_id},
        )
        return job.to_dto()
