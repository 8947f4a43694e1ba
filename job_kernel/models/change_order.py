"""
Module: job_kernel.models.change_order
Responsibility: ORM persistence for change orders -- the append-only,
    versioned history of modifications to a job.
Architecture position: Kernel > Models.  May import from db/ and the pure
    domain value types.  MUST NOT import from services/, selectors/, or
    outer layers.

Invariants enforced:
    - UNIQUE(job_id, version): no duplicate version is ever persisted, even
      if the allocator's lock were bypassed.  A duplicate insert surfaces as
      IntegrityError, which ChangeOrderStateMachine translates into
      SequenceConflictError.
    - UNIQUE(change_order_no).
    - APPROVED / REJECTED rows are immutable and never deleted
      (db/immutability.py).

Failure modes:
    - IntegrityError on duplicate (job_id, version) or change_order_no.
    - ImmutableRecordError on UPDATE/DELETE of a terminal change order.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from job_kernel.db.base import TrackedBase, UUIDString
from job_kernel.db.types import (
    IDENTIFIER_LENGTH,
    JSONPayload,
    LONG_TEXT_LENGTH,
    STATUS_LENGTH,
    UTCDateTime,
)
from job_kernel.domain.change_order import OPEN_STATUSES, TERMINAL_STATUSES, ChangeOrderStatus, ChangeSet
from job_kernel.domain.dtos import ChangeOrderRecord

if TYPE_CHECKING:
    from job_kernel.models.job import Job


class ChangeOrder(TrackedBase):
    """
    One versioned change to a job.

    Contract:
        version and change_order_no are allocated by ChangeOrderAllocator
        under a job row lock and written once.  Status moves only through
        ChangeOrderStateMachine.  changes holds a ChangeSet payload.

    Guarantees:
        - version >= 1, contiguous 1..N per job regardless of final status.
        - approved_at / approved_by are set only on transition into APPROVED.
    """

    __tablename__ = "change_orders"

    __table_args__ = (
        UniqueConstraint("job_id", "version", name="uq_change_order_job_version"),
        UniqueConstraint("change_order_no", name="uq_change_order_no"),
        Index("idx_change_order_job", "job_id"),
        Index("idx_change_order_status", "status"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("jobs.id"),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    change_order_no: Mapped[str] = mapped_column(
        String(IDENTIFIER_LENGTH + 16),
        nullable=False,
    )

    summary: Mapped[str] = mapped_column(
        String(LONG_TEXT_LENGTH),
        nullable=False,
    )

    # ChangeSet.to_payload()
    changes: Mapped[dict[str, Any]] = mapped_column(
        JSONPayload,
        nullable=False,
    )

    status: Mapped[ChangeOrderStatus] = mapped_column(
        String(STATUS_LENGTH),
        default=ChangeOrderStatus.DRAFT.value,
        nullable=False,
    )

    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(
        String(LONG_TEXT_LENGTH), nullable=True
    )

    # Consumed by collaborators (PO regeneration, repricing), not by the kernel
    affects_vendors: Mapped[list[str]] = mapped_column(
        JSONPayload,
        default=list,
        nullable=False,
    )
    requires_new_po: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_reprice: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    job: Mapped["Job"] = relationship()

    def __repr__(self) -> str:
        return f"<ChangeOrder {self.change_order_no} status={self.status}>"

    @property
    def is_open(self) -> bool:
        return ChangeOrderStatus(self.status) in OPEN_STATUSES

    @property
    def is_terminal(self) -> bool:
        return ChangeOrderStatus(self.status) in TERMINAL_STATUSES

    @property
    def change_set(self) -> ChangeSet:
        return ChangeSet.from_payload(self.changes)

    def to_dto(self) -> ChangeOrderRecord:
        return ChangeOrderRecord(
            id=self.id,
            job_id=self.job_id,
            version=self.version,
            change_order_no=self.change_order_no,
            summary=self.summary,
            changes=self.change_set,
            status=ChangeOrderStatus(self.status),
            approved_at=self.approved_at,
            approved_by=self.approved_by,
            rejection_reason=self.rejection_reason,
            affects_vendors=tuple(self.affects_vendors or ()),
            requires_new_po=self.requires_new_po,
            requires_reprice=self.requires_reprice,
            submitted_at=self.submitted_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
