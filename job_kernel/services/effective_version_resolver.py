"""
EffectiveVersionResolver -- keeps Job.effective_co_version in step with approvals.

Responsibility:
    Moves the job's effective change order pointer when a change order is
    approved.  Internal to ChangeOrderStateMachine.approve; never called on
    its own, so the pointer and the approval always commit together.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - Effective version consistency: effective_co_version equals the
      highest APPROVED version of the job, or null when none is approved.
      Approving an older version after a newer one leaves the pointer on
      the newer version.

Failure modes:
    - ValueError when the change order does not belong to the job or is
      not APPROVED; both indicate a caller bug.
"""

from sqlalchemy.orm import Session

from job_kernel.domain.change_order import ChangeOrderStatus
from job_kernel.logging_config import get_logger
from job_kernel.models.change_order import ChangeOrder
from job_kernel.models.job import Job

logger = get_logger("services.effective_version_resolver")


class EffectiveVersionResolver:
    def __init__(self, session: Session):
        self._session = session

    def on_approved(self, job: Job, change_order: ChangeOrder) -> int:
        """
        Advance the pointer for a just-approved change order.

        ``job`` must already be locked by the caller.  Returns the pointer
        value after the update.
        """
        if change_order.job_id != job.id:
            raise ValueError(
                f"change order {change_order.id} does not belong to job {job.id}"
            )
        if ChangeOrderStatus(change_order.status) != ChangeOrderStatus.APPROVED:
            raise ValueError(
                f"change order {change_order.id} is {change_order.status}, not APPROVED"
            )

        previous = job.effective_co_version
        if previous is not None and previous > change_order.version:
            logger.warning(
                "effective_version_unchanged_out_of_order_approval",
                extra={
                    "job_id": str(job.id),
                    "approved_version": change_order.version,
                    "effective_co_version": previous,
                },
            )
            return previous

        job.effective_co_version = change_order.version
        self._session.flush()

        logger.info(
            "effective_version_updated",
            extra={
                "job_id": str(job.id),
                "previous_version": previous,
                "effective_co_version": change_order.version,
            },
        )
        return change_order.version
