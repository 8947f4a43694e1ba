"""
Module: job_kernel.selectors.change_order_selector
Responsibility: Read access to jobs and their change order history, the
    effective job state derived from approved change orders, and a
    consistency audit over one job's history.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only.
    - Effective state is computed from APPROVED change orders in ascending
      version order, so a later approval always wins a field conflict.

Failure modes:
    - JobNotFoundError / ChangeOrderNotFoundError for unknown ids.
"""

from collections import Counter
from types import MappingProxyType
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from job_kernel.domain.change_order import ChangeOrderStatus
from job_kernel.domain.components import ComponentSpec
from job_kernel.domain.dtos import (
    ChangeOrderRecord,
    EffectiveJobState,
    InvariantViolation,
    JobRecord,
)
from job_kernel.domain.job_identity import NumberingPolicy, format_change_order_no
from job_kernel.exceptions import ChangeOrderNotFoundError, JobNotFoundError
from job_kernel.invariants import KernelInvariant
from job_kernel.models.change_order import ChangeOrder
from job_kernel.models.job import Job
from job_kernel.selectors.base import BaseSelector


class ChangeOrderSelector(BaseSelector[ChangeOrder]):
    """
    Queries over jobs and change orders.

    Contract:
        All public methods return DTOs.  Listing is newest first, matching
        how change orders are shown to users.
    """

    def _job(self, job_id: UUID) -> Job:
        job = self.session.execute(
            select(Job).where(Job.id == job_id).options(selectinload(Job.components))
        ).scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    def _history(self, job_id: UUID) -> list[ChangeOrder]:
        """Change orders of a job in ascending version order."""
        return list(
            self.session.execute(
                select(ChangeOrder)
                .where(ChangeOrder.job_id == job_id)
                .order_by(ChangeOrder.version, ChangeOrder.created_at)
            ).scalars()
        )

    def get_job(self, job_id: UUID) -> JobRecord:
        return self._job(job_id).to_dto()

    def find_job_by_base_id(self, base_job_id: str) -> JobRecord | None:
        job = self.session.execute(
            select(Job).where(Job.base_job_id == base_job_id)
        ).scalar_one_or_none()
        return job.to_dto() if job is not None else None

    def get(self, change_order_id: UUID) -> ChangeOrderRecord:
        change_order = self.session.get(ChangeOrder, change_order_id)
        if change_order is None:
            raise ChangeOrderNotFoundError(str(change_order_id))
        return change_order.to_dto()

    def list_for_job(self, job_id: UUID) -> list[ChangeOrderRecord]:
        """All change orders of a job, newest version first."""
        self._job(job_id)
        return [co.to_dto() for co in reversed(self._history(job_id))]

    def effective_state(self, job_id: UUID) -> EffectiveJobState:
        """
        The job as production should see it.

        effective_specs is the job's specs with the spec changes of every
        APPROVED change order merged over it in version order.
        effective_components is the replacement list of the newest approved
        change order that carries one, else the job's own components,
        as ComponentSpec values either way.
        """
        job = self._job(job_id)
        approved = [
            co
            for co in self._history(job_id)
            if ChangeOrderStatus(co.status) == ChangeOrderStatus.APPROVED
        ]

        specs: dict[str, Any] = dict(job.specs or {})
        components: tuple[ComponentSpec, ...] = tuple(
            c.to_dto().to_spec() for c in job.components
        )
        for co in approved:
            change_set = co.change_set
            specs = change_set.apply_to(specs)
            if change_set.components is not None:
                components = change_set.components

        return EffectiveJobState(
            job_id=job.id,
            base_job_id=job.base_job_id,
            effective_co_version=job.effective_co_version,
            base_specs=MappingProxyType(dict(job.specs or {})),
            effective_specs=MappingProxyType(specs),
            effective_components=components,
            latest_approved=approved[-1].to_dto() if approved else None,
            applied_count=len(approved),
        )

    def verify_invariants(
        self,
        job_id: UUID,
        numbering_policy: NumberingPolicy | None = None,
    ) -> list[InvariantViolation]:
        """
        Audit one job's history against the kernel invariants.

        Returns an empty list when the job is consistent.  Checks version
        contiguity, change_order_no derivation and the effective version
        pointer; with a numbering policy, also that base_job_id matches
        (job_type_code, master_seq).
        """
        job = self._job(job_id)
        history = self._history(job_id)
        violations: list[InvariantViolation] = []

        versions = [co.version for co in history]
        expected = list(range(1, len(history) + 1))
        if versions != expected:
            duplicates = sorted(v for v, n in Counter(versions).items() if n > 1)
            missing = sorted(set(range(1, max(versions, default=0) + 1)) - set(versions))
            violations.append(
                InvariantViolation(
                    invariant=KernelInvariant.VERSION_CONTIGUITY,
                    message=(
                        f"versions {versions} are not 1..{len(history)}"
                        f" (missing={missing}, duplicates={duplicates})"
                    ),
                )
            )

        for co in history:
            expected_no = format_change_order_no(job.base_job_id, co.version)
            if co.change_order_no != expected_no:
                violations.append(
                    InvariantViolation(
                        invariant=KernelInvariant.CHANGE_ORDER_NUMBER_DERIVATION,
                        message=f"{co.change_order_no!r} should be {expected_no!r}",
                        change_order_id=co.id,
                    )
                )

        approved_versions = [
            co.version
            for co in history
            if ChangeOrderStatus(co.status) == ChangeOrderStatus.APPROVED
        ]
        expected_pointer = max(approved_versions) if approved_versions else None
        if job.effective_co_version != expected_pointer:
            violations.append(
                InvariantViolation(
                    invariant=KernelInvariant.EFFECTIVE_VERSION_CONSISTENCY,
                    message=(
                        f"effective_co_version is {job.effective_co_version}, "
                        f"highest approved version is {expected_pointer}"
                    ),
                )
            )

        if numbering_policy is not None:
            expected_id = numbering_policy.format_base_job_id(
                job.job_type_code, job.master_seq
            )
            if job.base_job_id != expected_id:
                violations.append(
                    InvariantViolation(
                        invariant=KernelInvariant.JOB_IDENTITY_STABILITY,
                        message=f"base_job_id {job.base_job_id!r} should be {expected_id!r}",
                    )
                )

        return violations
