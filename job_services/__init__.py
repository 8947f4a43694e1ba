"""
job_services -- Package init and public API.

Responsibility:
    Transactional orchestration over the job kernel.  This is the only
    layer that opens sessions, commits, and retries.

Architecture position:
    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        job_services/ -> job_kernel/   (allowed)
        job_services/ -> job_config/   (allowed)
        job_kernel/   -> job_services/ (FORBIDDEN)
        job_kernel/   -> job_config/   (FORBIDDEN)
"""

from job_kernel.logging_config import get_logger

logger = get_logger("services")

from job_services.job_workflow import JobWorkflowService, build_job_workflow

__all__ = [
    "JobWorkflowService",
    "build_job_workflow",
]
