"""
SequenceService -- monotonic counters backed by locked rows.

Responsibility:
    Hands out strictly increasing integers per named counter.  The job
    identifier allocator draws master_seq from here.  A dedicated
    ``sequence_counters`` table with row-level locking
    (``SELECT ... FOR UPDATE``) guarantees uniqueness and ordering under
    concurrent writers.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by JobIdentifierAllocator.

Invariants enforced:
    - Master sequence uniqueness: the locked counter row is the sole source
      of the next value.  Aggregate max(master_seq)+1 over the jobs table
      is never used.
    - Transactional: the increment becomes visible only when the caller's
      transaction commits.  A rollback returns the value, so no value is
      skipped.

Failure modes:
    - IntegrityError on a concurrent first use of the same counter name.
      Handled here: the savepoint is rolled back and the row re-read
      under lock.
    - On SQLite, writers are serialized by BEGIN IMMEDIATE before any row
      lock is requested; FOR UPDATE is a no-op there.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from job_kernel.db.base import Base
from job_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    One row per named counter: "master_seq", or "master_seq:ME2" when
    numbering is scoped per job type code.  ``current_value`` is the last
    value handed out.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Transactional counter allocation.

    Contract:
        next_value(name) returns a value strictly greater than every value
        previously committed for ``name``.  The first value of a new
        counter is ``start_value + 1``.

    Non-goals:
        - Does NOT commit.  The caller owns the transaction.
    """

    MASTER_SEQ = "master_seq"

    def __init__(self, session: Session):
        self._session = session

    def _locked(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, sequence_name: str, value: int) -> SequenceCounter | None:
        """Insert a counter row in a savepoint.  None if another writer won."""
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=sequence_name, current_value=value)
        self._session.add(counter)
        try:
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race", extra={"sequence_name": sequence_name})
            return None
        savepoint.commit()
        return counter

    def next_value(self, sequence_name: str, start_value: int = 0) -> int:
        """
        Lock the counter row (creating it on first use), increment it and
        return the new value.

        Args:
            sequence_name: Counter name.
            start_value: Value a brand-new counter starts from.  Ignored
                once the row exists.
        """
        if not sequence_name:
            raise ValueError("sequence_name must be non-empty")
        if start_value < 0:
            raise ValueError("start_value must be >= 0")

        counter = self._locked(sequence_name)
        if counter is None:
            counter = self._create(sequence_name, start_value + 1)
            if counter is not None:
                value = counter.current_value
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": value},
                )
                return value
            # The row now exists and is committed by the winner.
            counter = self._locked(sequence_name)

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last value handed out, or None for an unused counter.  No lock."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Set a counter to ``value``.

        Tests and data migrations only.  Lowering a live counter reissues
        identifiers that already exist.
        """
        counter = self._locked(sequence_name)
        if counter is None:
            self._session.add(SequenceCounter(name=sequence_name, current_value=value))
        else:
            counter.current_value = value
        self._session.flush()
