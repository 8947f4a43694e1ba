"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

An approved or rejected change order is the permanent record of what was
agreed for a job.  Production, purchasing and billing all read it later, so
it must not drift.  ChangeOrderStateMachine refuses such edits up front; this
module is the second check, and it catches writes that bypass the state
machine (ad-hoc scripts, a service bug, a stray attribute assignment before
flush).

SQLAlchemy fires mapper events before UPDATE/DELETE SQL is emitted:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutableRecordError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutableRecordError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity       | When Immutable                     | Fields
-------------|------------------------------------|----------------------------------
ChangeOrder  | ALWAYS                             | version, change_order_no, job_id
ChangeOrder  | After status = APPROVED / REJECTED | every content field; no DELETE
Job          | ALWAYS (after insert)              | base_job_id, master_seq, job_type_code

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at may change on any row.  It is row bookkeeping, not content.

2. "WAS terminal", not "IS terminal".  The approval itself writes
   status=APPROVED together with approved_at/approved_by; that flush must
   pass.  The check looks at the status the row had in the database before
   this flush (attribute history), so only writes AFTER the terminal
   transition are blocked.

3. Inline model imports avoid a models <-> db import cycle.

===============================================================================
USAGE
===============================================================================

    from job_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup; idempotent

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from job_kernel.domain.change_order import (
    ALLOCATOR_OWNED_FIELDS,
    CONTENT_FIELDS,
    TERMINAL_STATUSES,
    ChangeOrderStatus,
)
from job_kernel.exceptions import ImmutableRecordError
from job_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

JOB_IDENTITY_FIELDS: tuple[str, ...] = ("base_job_id", "master_seq", "job_type_code")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field=None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
            "field": field,
        },
    )
    return ImmutableRecordError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
        field=field,
    )


def _persisted_status(target) -> ChangeOrderStatus:
    """Status as it was in the database before the pending flush."""
    history = get_history(target, "status")
    if history.deleted:
        return ChangeOrderStatus(history.deleted[0])
    return ChangeOrderStatus(target.status)


def _check_change_order_immutability(mapper, connection, target):
    """
    Block allocator-field edits always, and content edits after a terminal status.
    """
    for field in sorted(ALLOCATOR_OWNED_FIELDS):
        if get_history(target, field).has_changes():
            raise _blocked(
                "ChangeOrder",
                target.id,
                "UPDATE",
                f"{field} is allocated once and cannot change",
                field=field,
            )

    was = _persisted_status(target)
    if was not in TERMINAL_STATUSES:
        return

    for field in sorted(CONTENT_FIELDS):
        if get_history(target, field).has_changes():
            raise _blocked(
                "ChangeOrder",
                target.id,
                "UPDATE",
                f"change order is {was.value}",
                field=field,
            )


def _check_change_order_delete(mapper, connection, target):
    """Terminal change orders form the job's audit trail and are never deleted."""
    status = _persisted_status(target)
    if status in TERMINAL_STATUSES:
        raise _blocked(
            "ChangeOrder",
            target.id,
            "DELETE",
            f"change order is {status.value}",
        )


def _check_job_identity_immutability(mapper, connection, target):
    """base_job_id, master_seq and job_type_code are write-once."""
    for field in JOB_IDENTITY_FIELDS:
        if get_history(target, field).has_changes():
            raise _blocked(
                "Job",
                target.id,
                "UPDATE",
                f"{field} is part of the job identity",
                field=field,
            )


_LISTENERS = (
    ("ChangeOrder", "before_update", _check_change_order_immutability),
    ("ChangeOrder", "before_delete", _check_change_order_delete),
    ("Job", "before_update", _check_job_identity_immutability),
)


def _models() -> dict:
    from job_kernel.models.change_order import ChangeOrder
    from job_kernel.models.job import Job

    return {"ChangeOrder": ChangeOrder, "Job": Job}


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; a listener already registered is skipped.
    """
    models = _models()
    for model_name, event_name, listener_fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to violate immutability on
    purpose to prove the state machine check stands on its own.
    """
    models = _models()
    for model_name, event_name, listener_fn in _LISTENERS:
        _safe_remove_listener(models[model_name], event_name, listener_fn)
