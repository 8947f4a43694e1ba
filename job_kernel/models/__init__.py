"""ORM models for the job kernel."""

from job_kernel.models.change_order import ChangeOrder
from job_kernel.models.component import JobComponent
from job_kernel.models.job import Job

__all__ = [
    "ChangeOrder",
    "Job",
    "JobComponent",
]
