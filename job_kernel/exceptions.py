"""
Typed Exception Hierarchy for the Job Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP controllers, import scripts, webhooks) need to tell a lost
sequence race apart from an illegal approval request without parsing
message strings.  Every error therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (not just a message string)

Example - WRONG:
    try:
        workflow.approve(co_id, approver_id="u1")
    except Exception as e:
        if "status" in str(e):
            ...

Example - RIGHT:
    try:
        workflow.approve(co_id, approver_id="u1")
    except InvalidTransitionError as e:
        api_response(409, code=e.code, current=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    JobKernelError (base)
    |
    +-- NotFoundError
    |   +-- JobNotFoundError
    |   +-- ChangeOrderNotFoundError
    |
    +-- ConcurrencyError
    |   +-- SequenceConflictError
    |
    +-- ChangeOrderError
    |   +-- InvalidTransitionError
    |   +-- OpenChangeOrderExistsError
    |   +-- InvalidChangeOrderFieldError
    |   +-- InvalidChangeSetError
    |
    +-- ImmutabilityError
    |   +-- ImmutableRecordError
    |
    +-- IdentifierError
    |   +-- InvalidJobTypeCodeError
    |   +-- MissingBaseJobIdError
    |
    +-- JobLifecycleError
        +-- InvalidJobStatusError
        +-- ComponentValidationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category       | Code                         | When Raised
---------------|------------------------------|------------------------------------------
Not found      | JOB_NOT_FOUND                | Job id does not exist
               | CHANGE_ORDER_NOT_FOUND       | Change order id does not exist
---------------|------------------------------|------------------------------------------
Concurrency    | SEQUENCE_CONFLICT            | Lost a counter/version race (retry)
---------------|------------------------------|------------------------------------------
Change order   | INVALID_TRANSITION           | Operation not allowed in current status
               | OPEN_CHANGE_ORDER_EXISTS     | Job already has a DRAFT/PENDING CO
               | INVALID_CHANGE_ORDER_FIELD   | Unknown field passed to update_draft
               | INVALID_CHANGE_SET           | Malformed structured changes payload
---------------|------------------------------|------------------------------------------
Immutability   | IMMUTABLE_RECORD             | Mutating an APPROVED/REJECTED CO
---------------|------------------------------|------------------------------------------
Identifier     | INVALID_JOB_TYPE_CODE        | Type code not of the form [A-Z]+[0-9]*
               | MISSING_BASE_JOB_ID          | Job has no base job id to anchor a CO
---------------|------------------------------|------------------------------------------
Job lifecycle  | INVALID_JOB_STATUS           | Job status does not allow the operation
               | COMPONENT_VALIDATION_FAILED  | Caller chose to block on issues

===============================================================================
HANDLING PATTERNS
===============================================================================

1. SequenceConflictError is never a permanent failure.  JobWorkflowService
   rolls back and re-runs the whole transaction; only after the retry budget
   is exhausted does it reach the caller.

2. InvalidTransitionError / ImmutableRecordError are rejected requests.
   They are never retried and never silently ignored.

3. ComponentValidationError carries the full issue list in ``issues`` so
   the caller can render every problem at once.
"""

from __future__ import annotations

from typing import Any


class JobKernelError(Exception):
    """
    Base exception for all job kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "JOB_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(JobKernelError):
    """Base exception for missing referenced records."""

    code: str = "NOT_FOUND"


class JobNotFoundError(NotFoundError):
    """Job with given ID was not found."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class ChangeOrderNotFoundError(NotFoundError):
    """Change order with given ID was not found."""

    code: str = "CHANGE_ORDER_NOT_FOUND"

    def __init__(self, change_order_id: str):
        self.change_order_id = change_order_id
        super().__init__(f"Change order not found: {change_order_id}")


# Concurrency exceptions


class ConcurrencyError(JobKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class SequenceConflictError(ConcurrencyError):
    """
    A concurrent transaction won the race for a counter or version slot.

    Recovered by retrying the entire transaction.
    """

    code: str = "SEQUENCE_CONFLICT"

    def __init__(self, sequence_name: str, detail: str = ""):
        self.sequence_name = sequence_name
        self.detail = detail
        message = f"Sequence conflict on {sequence_name}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# Change-order exceptions


class ChangeOrderError(JobKernelError):
    """Base exception for change-order lifecycle errors."""

    code: str = "CHANGE_ORDER_ERROR"


class InvalidTransitionError(ChangeOrderError):
    """Operation requested against a change order in a status that forbids it."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        change_order_id: str,
        current_status: str,
        operation: str,
        allowed_from: tuple[str, ...] = (),
    ):
        self.change_order_id = change_order_id
        self.current_status = current_status
        self.operation = operation
        self.allowed_from = allowed_from
        allowed = ", ".join(allowed_from) if allowed_from else "none"
        super().__init__(
            f"Cannot {operation} change order {change_order_id} with status "
            f"{current_status} (allowed from: {allowed})"
        )


class OpenChangeOrderExistsError(ChangeOrderError):
    """Job already has a DRAFT or PENDING_APPROVAL change order."""

    code: str = "OPEN_CHANGE_ORDER_EXISTS"

    def __init__(self, job_id: str, open_change_order_no: str):
        self.job_id = job_id
        self.open_change_order_no = open_change_order_no
        super().__init__(
            f"Job {job_id} already has open change order {open_change_order_no}"
        )


class InvalidChangeOrderFieldError(ChangeOrderError):
    """update_draft received a field that is not editable."""

    code: str = "INVALID_CHANGE_ORDER_FIELD"

    def __init__(self, field_names: tuple[str, ...]):
        self.field_names = field_names
        super().__init__(
            f"Unknown change order field(s): {', '.join(field_names)}"
        )


class InvalidChangeSetError(ChangeOrderError):
    """Structured changes payload failed validation."""

    code: str = "INVALID_CHANGE_SET"

    def __init__(self, reason: str, path: str = ""):
        self.reason = reason
        self.path = path
        where = f" at {path}" if path else ""
        super().__init__(f"Invalid change set{where}: {reason}")


# Immutability exceptions


class ImmutabilityError(JobKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutableRecordError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Raised for content changes on APPROVED/REJECTED change orders, for any
    change to allocator-owned fields, and for changes to a job's identity
    fields after insert.
    """

    code: str = "IMMUTABLE_RECORD"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        reason: str,
        field: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        self.field = field
        super().__init__(
            f"Immutable record {entity_type} {entity_id}: {reason}"
        )


# Identifier exceptions


class IdentifierError(JobKernelError):
    """Base exception for identifier allocation and parsing errors."""

    code: str = "IDENTIFIER_ERROR"


class InvalidJobTypeCodeError(IdentifierError):
    """Job type code is not of the form ``[A-Z]+[0-9]*``."""

    code: str = "INVALID_JOB_TYPE_CODE"

    def __init__(self, job_type_code: Any):
        self.job_type_code = job_type_code
        super().__init__(f"Invalid job type code: {job_type_code!r}")


class MissingBaseJobIdError(IdentifierError):
    """Job has no base job id, so change order numbers cannot be derived."""

    code: str = "MISSING_BASE_JOB_ID"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} does not have a base job id")


# Job lifecycle exceptions


class JobLifecycleError(JobKernelError):
    """Base exception for job lifecycle errors."""

    code: str = "JOB_LIFECYCLE_ERROR"


class InvalidJobStatusError(JobLifecycleError):
    """Job status does not allow the requested operation."""

    code: str = "INVALID_JOB_STATUS"

    def __init__(self, job_id: str, current_status: str, operation: str):
        self.job_id = job_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} job {job_id} with status {current_status}"
        )


class ComponentValidationError(JobLifecycleError):
    """Component set has validation issues and the caller chose to block."""

    code: str = "COMPONENT_VALIDATION_FAILED"

    def __init__(self, subject_id: str, issues: list[str]):
        self.subject_id = subject_id
        self.issues = issues
        super().__init__(
            f"Component validation failed for {subject_id}: {'; '.join(issues)}"
        )
