"""
JobIdentifierAllocator -- base_job_id / master_seq allocation.

Responsibility:
    Turns a job type code into a fresh (base_job_id, master_seq,
    job_type_code) triple.  master_seq comes from a locked counter row via
    SequenceService; base_job_id is a pure function of the code and the
    sequence under the configured NumberingPolicy.

Architecture position:
    Kernel > Services.  Called by JobService.create_job, which inserts the
    Job row in the same transaction.

Invariants enforced:
    - Master sequence uniqueness: no two jobs ever receive the same
      master_seq from the same counter; values are never skipped by a
      committed transaction.
    - The allocation is only durable if the caller's transaction commits,
      so a job row and its identifiers appear together or not at all.

Failure modes:
    - InvalidJobTypeCodeError when job_type_code is not ``[A-Z]+[0-9]*``.
      Checked before the counter is touched.
"""

from sqlalchemy.orm import Session

from job_kernel.domain.job_identity import (
    DEFAULT_NUMBERING_POLICY,
    AllocatedJobIdentifiers,
    NumberingPolicy,
    validate_job_type_code,
)
from job_kernel.logging_config import get_logger
from job_kernel.services.sequence_service import SequenceService

logger = get_logger("services.job_identifier_allocator")


class JobIdentifierAllocator:
    """
    Allocates job identifiers inside the caller's transaction.

    Contract:
        allocate() must be called within an open transaction and the job row
        inserted before commit.  Under contention, concurrent callers are
        serialized by the counter row lock (BEGIN IMMEDIATE on SQLite).
    """

    def __init__(
        self,
        session: Session,
        policy: NumberingPolicy = DEFAULT_NUMBERING_POLICY,
        sequence_service: SequenceService | None = None,
    ):
        self._session = session
        self._policy = policy
        self._sequences = sequence_service or SequenceService(session)

    @property
    def policy(self) -> NumberingPolicy:
        return self._policy

    def allocate(self, job_type_code: str) -> AllocatedJobIdentifiers:
        validate_job_type_code(job_type_code)

        counter = self._policy.counter_key(job_type_code)
        master_seq = self._sequences.next_value(
            counter, start_value=self._policy.start_value
        )
        base_job_id = self._policy.format_base_job_id(job_type_code, master_seq)

        logger.info(
            "job_identifiers_allocated",
            extra={
                "base_job_id": base_job_id,
                "master_seq": master_seq,
                "job_type_code": job_type_code,
                "counter": counter,
            },
        )
        return AllocatedJobIdentifiers(
            base_job_id=base_job_id,
            master_seq=master_seq,
            job_type_code=job_type_code,
        )
