"""
BaseService -- abstract base for all kernel write services.

Responsibility:
    Common constructor and session contract for every service in the
    kernel layer.  Services receive a SQLAlchemy ``Session`` and persist
    through ``session.flush()`` -- never ``session.commit()``.  Also hosts
    the translation of database-level write conflicts into
    SequenceConflictError, which is the only error the workflow layer
    retries.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction.  JobWorkflowService (or a test harness) owns
      commit/rollback, so allocation, insert and pointer update land
      atomically or not at all.

Failure modes:
    - A subclass that commits on its own breaks the atomicity of
      approve + effective-pointer update.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from job_kernel.db.base import Base
from job_kernel.exceptions import SequenceConflictError

ModelType = TypeVar("ModelType", bound=Base)

# PostgreSQL serialization_failure / deadlock_detected
_RETRYABLE_PGCODES = frozenset({"40001", "40P01"})
_UNIQUE_VIOLATION_PGCODE = "23505"

_SQLITE_BUSY_MESSAGES = ("database is locked", "database table is locked")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only queries; those live in
          ``job_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session


def _pgcode(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_write_conflict(exc: BaseException) -> bool:
    """
    True when ``exc`` means "another transaction got there first".

    Covers unique-constraint violations (other integrity errors such as a
    foreign key violation are genuine failures), PostgreSQL serialization failures
    and deadlocks, and SQLite's busy/locked errors.  Any other database
    error is a genuine failure and must not be retried.
    """
    if isinstance(exc, IntegrityError):
        if _pgcode(exc) == _UNIQUE_VIOLATION_PGCODE:
            return True
        return "unique" in str(exc.orig if exc.orig is not None else exc).lower()
    if isinstance(exc, DBAPIError) and _pgcode(exc) in _RETRYABLE_PGCODES:
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
        return any(text in message for text in _SQLITE_BUSY_MESSAGES)
    return False


def as_sequence_conflict(exc: DBAPIError, sequence_name: str) -> SequenceConflictError | None:
    """
    Translate a write conflict into SequenceConflictError.

    Returns None for errors that are not conflicts; the caller re-raises
    the original exception in that case.
    """
    if not is_write_conflict(exc):
        return None
    detail = str(exc.orig) if getattr(exc, "orig", None) is not None else str(exc)
    return SequenceConflictError(sequence_name, detail=detail.splitlines()[0] if detail else "")
