"""
Module: job_kernel.models.job
Responsibility: ORM persistence for jobs -- the anchor of every identifier
    and change order in the kernel.
Architecture position: Kernel > Models.  May import from db/ and the pure
    domain value types.  MUST NOT import from services/, selectors/, or
    outer layers.

Invariants enforced:
    - base_job_id is UNIQUE (uq_job_base_job_id).
    - base_job_id, master_seq and job_type_code never change after insert
      (ORM listeners in db/immutability.py).
    - effective_co_version is null iff the job has no APPROVED change order,
      otherwise the highest APPROVED version.  Written only by
      EffectiveVersionResolver inside the approval transaction.

Failure modes:
    - IntegrityError on duplicate base_job_id.
    - ImmutableRecordError on any change to an identity field.
"""

from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from sqlalchemy import BigInteger, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from job_kernel.db.base import TrackedBase
from job_kernel.db.types import IDENTIFIER_LENGTH, JSONPayload, STATUS_LENGTH, TYPE_CODE_LENGTH
from job_kernel.domain.dtos import JobRecord
from job_kernel.domain.job_identity import JobMetaType, JobStatus, JobType, MailFormat
from job_kernel.domain.pathway import Pathway, RoutingType

if TYPE_CHECKING:
    from job_kernel.models.change_order import ChangeOrder
    from job_kernel.models.component import JobComponent


def _enum_or_none(enum_cls, value):
    return enum_cls(value) if value is not None else None


class Job(TrackedBase):
    """
    A print job.

    Contract:
        Created by JobService.create_job in the same transaction that
        allocated its identifiers.  Identity fields are write-once; the only
        kernel-managed mutable field is effective_co_version.

    Non-goals:
        specs is an opaque payload owned by collaborators.  The kernel only
        merges approved change sets over it when computing effective state.
    """

    __tablename__ = "jobs"

    __table_args__ = (
        UniqueConstraint("base_job_id", name="uq_job_base_job_id"),
        Index("idx_job_status", "status"),
        Index("idx_job_type_code", "job_type_code"),
    )

    base_job_id: Mapped[str] = mapped_column(
        String(IDENTIFIER_LENGTH),
        nullable=False,
    )

    master_seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    job_type_code: Mapped[str] = mapped_column(
        String(TYPE_CODE_LENGTH),
        nullable=False,
    )

    # Highest approved change-order version; null until the first approval
    effective_co_version: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    status: Mapped[JobStatus] = mapped_column(
        String(STATUS_LENGTH),
        default=JobStatus.DRAFT.value,
        nullable=False,
    )

    pathway: Mapped[Pathway | None] = mapped_column(String(STATUS_LENGTH), nullable=True)
    routing_type: Mapped[RoutingType | None] = mapped_column(
        String(STATUS_LENGTH), nullable=True
    )

    # Classification captured at creation time
    job_meta_type: Mapped[JobMetaType | None] = mapped_column(
        String(STATUS_LENGTH), nullable=True
    )
    mail_format: Mapped[MailFormat | None] = mapped_column(
        String(STATUS_LENGTH), nullable=True
    )
    job_type: Mapped[JobType | None] = mapped_column(String(STATUS_LENGTH), nullable=True)
    envelope_components: Mapped[int | None] = mapped_column(Integer, nullable=True)

    title: Mapped[str | None] = mapped_column(String(500), nullable=True)

    specs: Mapped[dict[str, Any]] = mapped_column(
        JSONPayload,
        default=dict,
        nullable=False,
    )

    components: Mapped[list["JobComponent"]] = relationship(
        back_populates="job",
        order_by="JobComponent.sort_order",
        cascade="all, delete-orphan",
    )

    change_orders: Mapped[list["ChangeOrder"]] = relationship(
        order_by="ChangeOrder.version",
        viewonly=True,
    )

    def __repr__(self) -> str:
        return f"<Job {self.base_job_id} status={self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == JobStatus.DRAFT

    def to_dto(self, include_components: bool = True) -> JobRecord:
        return JobRecord(
            id=self.id,
            base_job_id=self.base_job_id,
            master_seq=self.master_seq,
            job_type_code=self.job_type_code,
            effective_co_version=self.effective_co_version,
            status=JobStatus(self.status),
            pathway=_enum_or_none(Pathway, self.pathway),
            routing_type=_enum_or_none(RoutingType, self.routing_type),
            job_meta_type=_enum_or_none(JobMetaType, self.job_meta_type),
            mail_format=_enum_or_none(MailFormat, self.mail_format),
            job_type=_enum_or_none(JobType, self.job_type),
            envelope_components=self.envelope_components,
            title=self.title,
            specs=MappingProxyType(dict(self.specs or {})),
            created_at=self.created_at,
            updated_at=self.updated_at,
            components=(
                tuple(component.to_dto() for component in self.components)
                if include_components
                else ()
            ),
        )
