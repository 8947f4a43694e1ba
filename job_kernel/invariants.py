"""
Kernel Invariants Contract.

These invariants are structural law. They are hardcoded in the allocators,
the change-order state machine and the ORM immutability listeners. No
configuration set may override them; configuration only chooses identifier
formatting and which optional approval paths are open.

This module exists solely to declare these invariants explicitly.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    MASTER_SEQ_UNIQUENESS = "master_seq_uniqueness"
    """No two jobs receive the same master sequence value and no value is
    skipped. Enforced by SequenceService through a locked counter row."""

    VERSION_CONTIGUITY = "version_contiguity"
    """Change-order versions of a job form 1..N with no gaps or duplicates.
    Enforced by ChangeOrderAllocator under a job row lock and by the
    UNIQUE(job_id, version) constraint."""

    CHANGE_ORDER_NUMBER_DERIVATION = "change_order_number_derivation"
    """change_order_no is always "{base_job_id}-CO{version}". Enforced by
    ChangeOrderAllocator; the column is write-once."""

    TERMINAL_IMMUTABILITY = "terminal_immutability"
    """APPROVED and REJECTED change orders are never modified or deleted.
    Enforced by ChangeOrderStateMachine and job_kernel.db.immutability."""

    EFFECTIVE_VERSION_CONSISTENCY = "effective_version_consistency"
    """Job.effective_co_version is null iff no change order is APPROVED,
    otherwise the highest APPROVED version. Written only by
    EffectiveVersionResolver in the approval transaction."""

    JOB_IDENTITY_STABILITY = "job_identity_stability"
    """base_job_id, master_seq and job_type_code never change after the job
    row is inserted. Enforced by job_kernel.db.immutability."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "job_services",
    "job_config",
)
