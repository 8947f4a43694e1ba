"""
Module: job_kernel.models.component
Responsibility: ORM persistence for job components (production steps).
Architecture position: Kernel > Models.

Invariants enforced:
    None at the database level.  "At least one PRINT and one PROOF" and
    "VENDOR-owned components carry a vendor_id" are advisory and checked by
    job_kernel.domain.components.validate_components.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from job_kernel.db.base import TrackedBase, UUIDString
from job_kernel.db.types import LONG_TEXT_LENGTH, STATUS_LENGTH
from job_kernel.domain.components import ComponentOwner, ComponentStatus, ComponentType
from job_kernel.domain.dtos import ComponentRecord

if TYPE_CHECKING:
    from job_kernel.models.job import Job


class JobComponent(TrackedBase):
    """A production step on a job, ordered by sort_order."""

    __tablename__ = "job_components"

    __table_args__ = (Index("idx_job_component_job", "job_id", "sort_order"),)

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("jobs.id"),
        nullable=False,
    )

    type: Mapped[ComponentType] = mapped_column(String(STATUS_LENGTH), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(LONG_TEXT_LENGTH), nullable=True)

    owner: Mapped[ComponentOwner] = mapped_column(
        String(STATUS_LENGTH),
        default=ComponentOwner.INTERNAL.value,
        nullable=False,
    )
    vendor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    artwork_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    data_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[ComponentStatus] = mapped_column(
        String(STATUS_LENGTH),
        default=ComponentStatus.PENDING.value,
        nullable=False,
    )

    job: Mapped["Job"] = relationship(back_populates="components")

    def __repr__(self) -> str:
        return f"<JobComponent {self.type} {self.name!r} order={self.sort_order}>"

    def to_dto(self) -> ComponentRecord:
        return ComponentRecord(
            id=self.id,
            job_id=self.job_id,
            type=ComponentType(self.type),
            name=self.name,
            description=self.description,
            owner=ComponentOwner(self.owner),
            vendor_id=self.vendor_id,
            artwork_required=self.artwork_required,
            data_required=self.data_required,
            sort_order=self.sort_order,
            status=ComponentStatus(self.status),
        )
