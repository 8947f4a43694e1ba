"""
DTOs -- immutable records crossing the kernel boundary.

Responsibility:
    Frozen snapshots of jobs, components and change orders returned by
    services and selectors, plus the result types of allocation, approval
    and the effective-state computation.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ORM models convert themselves into
    these via ``to_dto()``; callers never receive live ORM instances.

Invariants enforced:
    - Records are frozen.  Collections are tuples; JSON payloads are
      read-only mappings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID

from job_kernel.domain.change_order import ChangeOrderStatus, ChangeSet, OPEN_STATUSES, TERMINAL_STATUSES
from job_kernel.domain.components import ComponentOwner, ComponentSpec, ComponentStatus, ComponentType
from job_kernel.domain.job_identity import JobMetaType, JobStatus, JobType, MailFormat
from job_kernel.domain.pathway import Pathway, RoutingType
from job_kernel.invariants import KernelInvariant


@dataclass(frozen=True)
class ComponentRecord:
    id: UUID
    job_id: UUID
    type: ComponentType
    name: str
    description: str | None
    owner: ComponentOwner
    vendor_id: str | None
    artwork_required: bool
    data_required: bool
    sort_order: int
    status: ComponentStatus

    def to_spec(self) -> ComponentSpec:
        return ComponentSpec(
            type=self.type,
            name=self.name,
            description=self.description,
            owner=self.owner,
            vendor_id=self.vendor_id,
            artwork_required=self.artwork_required,
            data_required=self.data_required,
            sort_order=self.sort_order,
        )


@dataclass(frozen=True)
class JobRecord:
    """Snapshot of a job row."""

    id: UUID
    base_job_id: str
    master_seq: int
    job_type_code: str
    effective_co_version: int | None
    status: JobStatus
    pathway: Pathway | None
    routing_type: RoutingType | None
    job_meta_type: JobMetaType | None
    mail_format: MailFormat | None
    job_type: JobType | None
    envelope_components: int | None
    title: str | None
    specs: Mapping[str, Any]
    created_at: datetime
    updated_at: datetime
    components: tuple[ComponentRecord, ...] = ()


@dataclass(frozen=True)
class ChangeOrderRecord:
    """Snapshot of a change order row."""

    id: UUID
    job_id: UUID
    version: int
    change_order_no: str
    summary: str
    changes: ChangeSet
    status: ChangeOrderStatus
    approved_at: datetime | None
    approved_by: str | None
    rejection_reason: str | None
    affects_vendors: tuple[str, ...]
    requires_new_po: bool
    requires_reprice: bool
    submitted_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class AllocatedChangeOrderNumber:
    version: int
    change_order_no: str


@dataclass(frozen=True)
class ApprovalResult:
    """The approved change order together with the job as re-read after approval."""

    change_order: ChangeOrderRecord
    job: JobRecord


@dataclass(frozen=True)
class EffectiveJobState:
    """
    A job as production should see it: base specs with every approved
    change set applied in version order.
    """

    job_id: UUID
    base_job_id: str
    effective_co_version: int | None
    base_specs: Mapping[str, Any]
    effective_specs: Mapping[str, Any]
    effective_components: tuple[ComponentSpec, ...]
    latest_approved: ChangeOrderRecord | None
    applied_count: int


@dataclass(frozen=True)
class InvariantViolation:
    """One inconsistency found by ChangeOrderSelector.verify_invariants."""

    invariant: KernelInvariant
    message: str
    change_order_id: UUID | None = None
