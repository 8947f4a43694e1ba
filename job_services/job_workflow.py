"""
job_services.job_workflow -- the external interface of the engine.

Responsibility:
    One method per user-facing operation (create a job, create / submit /
    approve / reject / edit a change order, suggest and validate
    components).  Each write runs in its own transaction, is retried when
    it loses a sequence or version race, and returns frozen DTOs.

Architecture position:
    Services -- the only layer that owns transaction boundaries.  Kernel
    services are constructed per transaction by ``_KernelServices`` and
    never commit on their own.

Invariants enforced:
    - Atomicity: every operation either commits completely or leaves no
      trace (job + identifiers, change order + version, approval +
      effective pointer).
    - Retry safety: only SequenceConflictError (and the database errors
      that translate into it) is retried, and always by re-running the
      whole transaction from the start.

Failure modes:
    - Every kernel error propagates unchanged after rollback.
    - Retry exhaustion re-raises the last SequenceConflictError.

Usage:
    from job_services import build_job_workflow

    workflow = build_job_workflow("default")
    job = workflow.create_job(JobClassification(job_meta_type="MAILING",
                                                mail_format="ENVELOPE",
                                                envelope_components=2))
    co = workflow.create_change_order(job.id, "Qty 5k -> 6k",
                                      {"spec_changes": {"quantity": 6000}})
    workflow.approve(co.id, approver_id="u-17")
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from job_config.schema import RetryConfig
from job_kernel.db.engine import get_session_factory, session_scope
from job_kernel.db.immutability import register_immutability_listeners
from job_kernel.domain.change_order import (
    DEFAULT_CHANGE_ORDER_POLICY,
    ChangeOrderPolicy,
    ChangeSet,
)
from job_kernel.domain.clock import Clock, SystemClock
from job_kernel.domain.components import (
    ComponentSpec,
    SuggestedComponent,
    ValidationIssue,
    suggest_components,
    validate_components,
)
from job_kernel.domain.dtos import (
    ApprovalResult,
    ChangeOrderRecord,
    ComponentRecord,
    EffectiveJobState,
    InvariantViolation,
    JobRecord,
)
from job_kernel.domain.job_identity import (
    DEFAULT_NUMBERING_POLICY,
    JobClassification,
    NumberingPolicy,
)
from job_kernel.domain.pathway import RoutingType
from job_kernel.exceptions import SequenceConflictError
from job_kernel.logging_config import LogContext, get_logger
from job_kernel.selectors.change_order_selector import ChangeOrderSelector
from job_kernel.services.base import as_sequence_conflict
from job_kernel.services.change_order_state_machine import ChangeOrderStateMachine
from job_kernel.services.job_service import JobService

logger = get_logger("services.job_workflow")

T = TypeVar("T")


class _KernelServices:
    """Kernel services sharing one session for the length of a transaction."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        numbering_policy: NumberingPolicy,
        change_order_policy: ChangeOrderPolicy,
    ):
        self.session = session
        self.jobs = JobService(session, numbering_policy)
        self.change_orders = ChangeOrderStateMachine(session, clock, change_order_policy)
        self.selector = ChangeOrderSelector(session)


class JobWorkflowService:
    """
    Transactional facade over the job kernel.

    Contract:
        Every public write method opens a fresh session, runs one kernel
        operation, commits, and returns DTOs.  Lost races are retried up to
        ``retry.max_attempts`` times with capped exponential backoff.

    Non-goals:
        - Authorization.  approver_id / actor_id are opaque strings.
        - Caching.  Every call reads committed state.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        *,
        clock: Clock | None = None,
        numbering_policy: NumberingPolicy = DEFAULT_NUMBERING_POLICY,
        change_order_policy: ChangeOrderPolicy = DEFAULT_CHANGE_ORDER_POLICY,
        retry: RetryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self._numbering_policy = numbering_policy
        self._change_order_policy = change_order_policy
        self._retry = retry or RetryConfig()
        self._sleep = sleep
        register_immutability_listeners()

    @property
    def numbering_policy(self) -> NumberingPolicy:
        return self._numbering_policy

    @property
    def change_order_policy(self) -> ChangeOrderPolicy:
        return self._change_order_policy

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _services(self, session: Session) -> _KernelServices:
        return _KernelServices(
            session, self._clock, self._numbering_policy, self._change_order_policy
        )

    def _read(self, fn: Callable[[_KernelServices], T]) -> T:
        with session_scope(self._session_factory) as session:
            return fn(self._services(session))

    def _write(
        self,
        operation: str,
        fn: Callable[[_KernelServices], T],
        **context: Any,
    ) -> T:
        """Run ``fn`` in its own transaction, retrying lost races."""
        bound = {key: str(value) for key, value in context.items() if value is not None}
        with LogContext.bind(correlation_id=str(uuid4()), **bound):
            last_conflict: SequenceConflictError | None = None
            for attempt in range(1, self._retry.max_attempts + 1):
                delay = self._retry.delay_for(attempt)
                if delay:
                    self._sleep(delay)
                try:
                    with session_scope(self._session_factory) as session:
                        return fn(self._services(session))
                except SequenceConflictError as exc:
                    last_conflict = exc
                except DBAPIError as exc:
                    conflict = as_sequence_conflict(exc, operation)
                    if conflict is None:
                        raise
                    last_conflict = conflict

                logger.warning(
                    "transaction_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "max_attempts": self._retry.max_attempts,
                        "sequence_name": last_conflict.sequence_name,
                        "detail": last_conflict.detail,
                    },
                )

            logger.error(
                "transaction_retry_exhausted",
                extra={"operation": operation, "attempts": self._retry.max_attempts},
            )
            raise last_conflict

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create_job(
        self,
        classification: JobClassification,
        *,
        job_type_code: str | None = None,
        routing_type: RoutingType | str | None = None,
        title: str | None = None,
        specs: Mapping[str, Any] | None = None,
        components: Iterable[ComponentSpec] | None = None,
        purchase_order_vendor_ids: Iterable[str] = (),
        actor_id: str | None = None,
    ) -> JobRecord:
        """Allocate identifiers and insert a DRAFT job with seeded components."""
        component_list = list(components) if components is not None else None
        vendor_ids = list(purchase_order_vendor_ids)
        return self._write(
            "create_job",
            lambda k: k.jobs.create_job(
                classification,
                job_type_code=job_type_code,
                routing_type=routing_type,
                title=title,
                specs=specs,
                components=component_list,
                purchase_order_vendor_ids=vendor_ids,
            ),
            actor_id=actor_id,
        )

    def add_component(self, job_id: UUID, spec: ComponentSpec) -> ComponentRecord:
        return self._write(
            "add_component", lambda k: k.jobs.add_component(job_id, spec), job_id=job_id
        )

    def release_job(self, job_id: UUID) -> JobRecord:
        """DRAFT -> ACTIVE; raises ComponentValidationError while issues remain."""
        return self._write(
            "release_job", lambda k: k.jobs.release_from_draft(job_id), job_id=job_id
        )

    def get_job(self, job_id: UUID) -> JobRecord:
        return self._read(lambda k: k.selector.get_job(job_id))

    def find_job(self, base_job_id: str) -> JobRecord | None:
        return self._read(lambda k: k.selector.find_job_by_base_id(base_job_id))

    # ------------------------------------------------------------------
    # Change orders
    # ------------------------------------------------------------------

    def create_change_order(
        self,
        job_id: UUID,
        summary: str,
        changes: ChangeSet | Mapping[str, Any] | None = None,
        *,
        affects_vendors: Iterable[str] | None = None,
        requires_new_po: bool = False,
        requires_reprice: bool = False,
        actor_id: str | None = None,
    ) -> ChangeOrderRecord:
        """New DRAFT change order with the job's next contiguous version."""
        vendors = list(affects_vendors) if affects_vendors is not None else None
        return self._write(
            "create_change_order",
            lambda k: k.change_orders.create(
                job_id,
                summary,
                changes,
                affects_vendors=vendors,
                requires_new_po=requires_new_po,
                requires_reprice=requires_reprice,
            ),
            job_id=job_id,
            actor_id=actor_id,
        )

    def submit_for_approval(self, change_order_id: UUID) -> ChangeOrderRecord:
        return self._write(
            "submit_for_approval",
            lambda k: k.change_orders.submit(change_order_id),
            change_order_id=change_order_id,
        )

    def withdraw(self, change_order_id: UUID) -> ChangeOrderRecord:
        return self._write(
            "withdraw",
            lambda k: k.change_orders.withdraw(change_order_id),
            change_order_id=change_order_id,
        )

    def approve(self, change_order_id: UUID, approver_id: str) -> ApprovalResult:
        """Approve and move the job's effective version in one transaction."""
        return self._write(
            "approve",
            lambda k: k.change_orders.approve(change_order_id, approver_id),
            change_order_id=change_order_id,
            actor_id=approver_id,
        )

    def reject(
        self, change_order_id: UUID, reason: str, actor_id: str | None = None
    ) -> ChangeOrderRecord:
        return self._write(
            "reject",
            lambda k: k.change_orders.reject(change_order_id, reason),
            change_order_id=change_order_id,
            actor_id=actor_id,
        )

    def update_draft(
        self, change_order_id: UUID, fields: Mapping[str, Any]
    ) -> ChangeOrderRecord:
        fields = dict(fields)
        return self._write(
            "update_draft",
            lambda k: k.change_orders.update_draft(change_order_id, fields),
            change_order_id=change_order_id,
        )

    def discard_draft(self, change_order_id: UUID) -> None:
        """Delete the job's latest change order while it is still a DRAFT."""
        self._write(
            "discard_draft",
            lambda k: k.change_orders.discard(change_order_id),
            change_order_id=change_order_id,
        )

    def get_change_order(self, change_order_id: UUID) -> ChangeOrderRecord:
        return self._read(lambda k: k.selector.get(change_order_id))

    def list_change_orders(self, job_id: UUID) -> list[ChangeOrderRecord]:
        """Newest version first."""
        return self._read(lambda k: k.selector.list_for_job(job_id))

    def get_effective_state(self, job_id: UUID) -> EffectiveJobState:
        return self._read(lambda k: k.selector.effective_state(job_id))

    def verify_invariants(self, job_id: UUID) -> list[InvariantViolation]:
        return self._read(
            lambda k: k.selector.verify_invariants(job_id, self._numbering_policy)
        )

    # ------------------------------------------------------------------
    # Components (pure; no transaction)
    # ------------------------------------------------------------------

    def suggest_components(self, classification: JobClassification) -> list[SuggestedComponent]:
        return suggest_components(classification)

    def validate_components(self, components: Iterable[Any]) -> list[ValidationIssue]:
        return validate_components(list(components))


def build_job_workflow(
    set_name: str = "default",
    config_dir: Path | None = None,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> JobWorkflowService:
    """Build a JobWorkflowService from a configuration set.

    Loads config via get_active_config(set_name) and wires numbering,
    change order and retry policies from it.
    """
    from job_config import get_active_config
    from job_config.bridges import build_change_order_policy, build_numbering_policy

    config = get_active_config(set_name, config_dir=config_dir)
    return JobWorkflowService(
        session_factory,
        clock=clock,
        numbering_policy=build_numbering_policy(config),
        change_order_policy=build_change_order_policy(config),
        retry=config.retry,
        sleep=sleep,
    )
