"""
ChangeOrderAllocator -- per-job version and change order number allocation.

Responsibility:
    Computes the next change order version for a job and derives its
    change_order_no ("{base_job_id}-CO{version}").

Architecture position:
    Kernel > Services.  Called by ChangeOrderStateMachine.create, which
    inserts the change order row before the transaction commits.

Invariants enforced:
    - Version contiguity: versions per job are 1..N with no gaps or
      duplicates.  The job row is locked (SELECT ... FOR UPDATE) before
      max(version) is read, so concurrent creators for the same job are
      serialized.  UNIQUE(job_id, version) is the backstop: if the lock is
      ever bypassed the duplicate insert fails and the caller retries.
    - change_order_no is derived, never chosen by the caller.

Failure modes:
    - JobNotFoundError when job_id does not exist.
    - MissingBaseJobIdError when the job has no base_job_id.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from job_kernel.domain.dtos import AllocatedChangeOrderNumber
from job_kernel.domain.job_identity import format_change_order_no
from job_kernel.exceptions import JobNotFoundError, MissingBaseJobIdError
from job_kernel.logging_config import get_logger
from job_kernel.models.change_order import ChangeOrder
from job_kernel.models.job import Job

logger = get_logger("services.change_order_allocator")


class ChangeOrderAllocator:
    """Hands out the next (version, change_order_no) for a job under a job row lock."""

    def __init__(self, session: Session):
        self._session = session

    def lock_job(self, job_id: UUID) -> Job:
        """Load the job with a row lock held until the transaction ends."""
        job = self._session.execute(
            select(Job)
            .where(Job.id == job_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    def allocate_next(self, job_id: UUID) -> AllocatedChangeOrderNumber:
        job = self.lock_job(job_id)
        if not job.base_job_id:
            raise MissingBaseJobIdError(str(job_id))

        current_max = self._session.execute(
            select(func.max(ChangeOrder.version)).where(ChangeOrder.job_id == job_id)
        ).scalar_one()
        version = (current_max or 0) + 1

        allocated = AllocatedChangeOrderNumber(
            version=version,
            change_order_no=format_change_order_no(job.base_job_id, version),
        )
        logger.debug(
            "change_order_version_allocated",
            extra={
                "job_id": str(job_id),
                "version": allocated.version,
                "change_order_no": allocated.change_order_no,
            },
        )
        return allocated
