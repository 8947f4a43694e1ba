"""Services for the job kernel (write side)."""

from job_kernel.services.change_order_allocator import ChangeOrderAllocator
from job_kernel.services.change_order_state_machine import ChangeOrderStateMachine
from job_kernel.services.effective_version_resolver import EffectiveVersionResolver
from job_kernel.services.job_identifier_allocator import JobIdentifierAllocator
from job_kernel.services.job_service import JobService
from job_kernel.services.log_capture import LogCapture
from job_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "ChangeOrderAllocator",
    "ChangeOrderStateMachine",
    "EffectiveVersionResolver",
    "JobIdentifierAllocator",
    "JobService",
    "LogCapture",
    "SequenceCounter",
    "SequenceService",
]
