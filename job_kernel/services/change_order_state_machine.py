"""
ChangeOrderStateMachine -- the change order lifecycle.

Responsibility:
    Creates change orders and moves them through
    DRAFT -> PENDING_APPROVAL -> APPROVED | REJECTED (with withdraw back to
    DRAFT), edits drafts, and discards the latest draft.  Approval advances
    the job's effective version pointer in the same transaction.

Architecture position:
    Kernel > Services.  Uses ChangeOrderAllocator (versions) and
    EffectiveVersionResolver (pointer).  Reads the transition table and
    field sets from job_kernel.domain.change_order.

Invariants enforced:
    - Version contiguity: versions come only from ChangeOrderAllocator,
      under the job row lock.  A duplicate insert is reported as
      SequenceConflictError so the whole transaction is retried.
    - Terminal immutability: nothing on an APPROVED/REJECTED change order
      is edited here; db/immutability.py blocks any write that bypasses
      this class.
    - Effective version consistency: approve() and the pointer update share
      one flush sequence inside the caller's transaction.

Lock order:
    Job row first, then the change order row, for every operation that
    needs both (create, approve, discard).  Operations touching only one
    change order lock only that row.

Failure modes:
    - ChangeOrderNotFoundError / JobNotFoundError for unknown ids.
    - InvalidTransitionError when the current status forbids the operation.
    - OpenChangeOrderExistsError when the job already has an open change
      order and the policy allows only one.
    - InvalidChangeOrderFieldError for non-editable fields in update_draft.
    - ImmutableRecordError for edits to terminal or allocator-owned data.
    - ComponentValidationError when a replacement component list fails
      validation and the policy blocks on it.
    - SequenceConflictError on a lost version race.
"""

from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from job_kernel.domain.change_order import (
    ALLOCATOR_OWNED_FIELDS,
    DEFAULT_CHANGE_ORDER_POLICY,
    EDITABLE_FIELDS,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    ChangeOrderOperation,
    ChangeOrderPolicy,
    ChangeOrderStatus,
    ChangeSet,
)
from job_kernel.domain.clock import Clock, SystemClock
from job_kernel.domain.components import validate_components
from job_kernel.domain.dtos import ApprovalResult, ChangeOrderRecord
from job_kernel.exceptions import (
    ChangeOrderNotFoundError,
    ComponentValidationError,
    ImmutableRecordError,
    InvalidChangeOrderFieldError,
    InvalidTransitionError,
    OpenChangeOrderExistsError,
)
from job_kernel.logging_config import get_logger
from job_kernel.models.change_order import ChangeOrder
from job_kernel.services.base import BaseService, as_sequence_conflict
from job_kernel.services.change_order_allocator import ChangeOrderAllocator
from job_kernel.services.effective_version_resolver import EffectiveVersionResolver

logger = get_logger("services.change_order_state_machine")


def _require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} must be a non-empty string")
    return value


def _vendor_list(value: Iterable[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        raise ValueError("affects_vendors must be a list of vendor ids, not a string")
    return [str(vendor) for vendor in value]


class ChangeOrderStateMachine(BaseService[ChangeOrder]):
    """
    Lifecycle operations on change orders.

    Contract:
        Every method runs inside the caller's transaction and flushes; the
        caller commits.  Methods return frozen ChangeOrderRecord DTOs (or an
        ApprovalResult), never live ORM rows.

    Non-goals:
        - Authorization.  approver_id is an opaque string.
        - Applying change sets to the job row.  Effective specs are derived
          on read by ChangeOrderSelector.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: ChangeOrderPolicy = DEFAULT_CHANGE_ORDER_POLICY,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy
        self._allocator = ChangeOrderAllocator(session)
        self._resolver = EffectiveVersionResolver(session)

    @property
    def policy(self) -> ChangeOrderPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _get(self, change_order_id: UUID, lock: bool = False) -> ChangeOrder:
        stmt = select(ChangeOrder).where(ChangeOrder.id == change_order_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        change_order = self.session.execute(stmt).scalar_one_or_none()
        if change_order is None:
            raise ChangeOrderNotFoundError(str(change_order_id))
        return change_order

    def _check_transition(
        self, change_order: ChangeOrder, operation: ChangeOrderOperation
    ) -> ChangeOrderStatus:
        current = ChangeOrderStatus(change_order.status)
        allowed = self._policy.allowed_from(operation)
        if current not in allowed:
            raise InvalidTransitionError(
                change_order_id=str(change_order.id),
                current_status=current.value,
                operation=operation.value,
                allowed_from=tuple(sorted(status.value for status in allowed)),
            )
        return current

    def _check_components(self, change_order: ChangeOrder) -> None:
        if not self._policy.block_on_component_issues:
            return
        components = change_order.change_set.components
        if components is None:
            return
        issues = validate_components(components)
        if issues:
            raise ComponentValidationError(
                change_order.change_order_no, [str(issue) for issue in issues]
            )

    def _log(self, event: str, change_order: ChangeOrder, **extra: Any) -> None:
        logger.info(
            event,
            extra={
                "job_id": str(change_order.job_id),
                "change_order_id": str(change_order.id),
                "change_order_no": change_order.change_order_no,
                "version": change_order.version,
                "status": ChangeOrderStatus(change_order.status).value,
                **extra,
            },
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        job_id: UUID,
        summary: str,
        changes: ChangeSet | Mapping[str, Any] | None = None,
        affects_vendors: Iterable[str] | None = None,
        requires_new_po: bool = False,
        requires_reprice: bool = False,
    ) -> ChangeOrderRecord:
        """
        Create a DRAFT change order with the job's next version.

        Preconditions:
            - The job exists and has a base_job_id.
            - With single_open_per_job, the job has no DRAFT or
              PENDING_APPROVAL change order.

        Raises:
            ValueError: empty summary.
            InvalidChangeSetError: malformed changes payload.
            OpenChangeOrderExistsError, JobNotFoundError,
            MissingBaseJobIdError, SequenceConflictError.
        """
        _require_text(summary, "summary")
        change_set = ChangeSet.from_payload(changes)
        vendors = _vendor_list(affects_vendors)

        # Locks the job row; everything below is serialized per job.
        allocated = self._allocator.allocate_next(job_id)

        if self._policy.single_open_per_job:
            open_no = self.session.execute(
                select(ChangeOrder.change_order_no)
                .where(
                    ChangeOrder.job_id == job_id,
                    ChangeOrder.status.in_([status.value for status in OPEN_STATUSES]),
                )
                .order_by(ChangeOrder.version)
                .limit(1)
            ).scalar_one_or_none()
            if open_no is not None:
                raise OpenChangeOrderExistsError(str(job_id), open_no)

        change_order = ChangeOrder(
            job_id=job_id,
            version=allocated.version,
            change_order_no=allocated.change_order_no,
            summary=summary,
            changes=change_set.to_payload(),
            status=ChangeOrderStatus.DRAFT.value,
            affects_vendors=vendors,
            requires_new_po=bool(requires_new_po),
            requires_reprice=bool(requires_reprice),
        )
        self.session.add(change_order)
        try:
            self.session.flush()
        except IntegrityError as exc:
            conflict = as_sequence_conflict(exc, f"change_order_version:{job_id}")
            if conflict is None:
                raise
            logger.warning(
                "change_order_version_conflict",
                extra={"job_id": str(job_id), "version": allocated.version},
            )
            raise conflict from exc

        self._log("change_order_created", change_order)
        return change_order.to_dto()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self, change_order_id: UUID) -> ChangeOrderRecord:
        """DRAFT -> PENDING_APPROVAL."""
        change_order = self._get(change_order_id, lock=True)
        self._check_transition(change_order, ChangeOrderOperation.SUBMIT)
        self._check_components(change_order)

        change_order.status = ChangeOrderStatus.PENDING_APPROVAL.value
        change_order.submitted_at = self._clock.now()
        self.session.flush()

        self._log("change_order_submitted", change_order)
        return change_order.to_dto()

    def withdraw(self, change_order_id: UUID) -> ChangeOrderRecord:
        """PENDING_APPROVAL -> DRAFT, so the draft can be edited again."""
        change_order = self._get(change_order_id, lock=True)
        self._check_transition(change_order, ChangeOrderOperation.WITHDRAW)

        change_order.status = ChangeOrderStatus.DRAFT.value
        change_order.submitted_at = None
        self.session.flush()

        self._log("change_order_withdrawn", change_order)
        return change_order.to_dto()

    def approve(self, change_order_id: UUID, approver_id: str) -> ApprovalResult:
        """
        Approve a change order and advance the job's effective version.

        Starts from PENDING_APPROVAL, or from DRAFT when the policy allows
        direct approval.  approved_at comes from the injected clock.
        """
        _require_text(approver_id, "approver_id")

        job_id = self._get(change_order_id).job_id
        job = self._allocator.lock_job(job_id)
        change_order = self._get(change_order_id, lock=True)
        previous = self._check_transition(change_order, ChangeOrderOperation.APPROVE)
        self._check_components(change_order)

        change_order.status = ChangeOrderStatus.APPROVED.value
        change_order.approved_at = self._clock.now()
        change_order.approved_by = approver_id
        self.session.flush()

        effective = self._resolver.on_approved(job, change_order)

        self._log(
            "change_order_approved",
            change_order,
            previous_status=previous.value,
            approved_by=approver_id,
            effective_co_version=effective,
        )
        return ApprovalResult(change_order=change_order.to_dto(), job=job.to_dto())

    def reject(self, change_order_id: UUID, reason: str) -> ChangeOrderRecord:
        """PENDING_APPROVAL -> REJECTED.  The version slot is kept."""
        _require_text(reason, "reason")

        change_order = self._get(change_order_id, lock=True)
        self._check_transition(change_order, ChangeOrderOperation.REJECT)

        change_order.status = ChangeOrderStatus.REJECTED.value
        change_order.rejection_reason = reason
        self.session.flush()

        self._log("change_order_rejected", change_order, reason=reason)
        return change_order.to_dto()

    # ------------------------------------------------------------------
    # Draft editing
    # ------------------------------------------------------------------

    def update_draft(
        self, change_order_id: UUID, fields: Mapping[str, Any]
    ) -> ChangeOrderRecord:
        """
        Edit a DRAFT change order.

        Accepts only EDITABLE_FIELDS.  Checks, in order:
            1. allocator-owned fields (version, change_order_no, job_id)
               -> ImmutableRecordError, whatever the status;
            2. any other non-editable field -> InvalidChangeOrderFieldError;
            3. APPROVED / REJECTED -> ImmutableRecordError;
            4. PENDING_APPROVAL -> InvalidTransitionError (withdraw first).
        """
        change_order = self._get(change_order_id, lock=True)

        owned = sorted(set(fields) & ALLOCATOR_OWNED_FIELDS)
        if owned:
            raise ImmutableRecordError(
                entity_type="ChangeOrder",
                entity_id=str(change_order.id),
                reason=f"{owned[0]} is allocated once and cannot change",
                field=owned[0],
            )

        unknown = tuple(sorted(set(fields) - EDITABLE_FIELDS))
        if unknown:
            raise InvalidChangeOrderFieldError(unknown)

        current = ChangeOrderStatus(change_order.status)
        if current in TERMINAL_STATUSES:
            field = sorted(fields)[0] if fields else None
            raise ImmutableRecordError(
                entity_type="ChangeOrder",
                entity_id=str(change_order.id),
                reason=f"change order is {current.value}",
                field=field,
            )
        self._check_transition(change_order, ChangeOrderOperation.UPDATE_DRAFT)

        if "summary" in fields:
            change_order.summary = _require_text(fields["summary"], "summary")
        if "changes" in fields:
            change_order.changes = ChangeSet.from_payload(fields["changes"]).to_payload()
        if "affects_vendors" in fields:
            change_order.affects_vendors = _vendor_list(fields["affects_vendors"])
        if "requires_new_po" in fields:
            change_order.requires_new_po = bool(fields["requires_new_po"])
        if "requires_reprice" in fields:
            change_order.requires_reprice = bool(fields["requires_reprice"])
        self.session.flush()

        self._log("change_order_updated", change_order, fields=sorted(fields))
        return change_order.to_dto()

    def discard(self, change_order_id: UUID) -> None:
        """
        Delete a DRAFT change order that holds the job's latest version.

        Deleting any earlier slot would leave a gap, so only the latest
        version may go.
        """
        job_id = self._get(change_order_id).job_id
        self._allocator.lock_job(job_id)
        change_order = self._get(change_order_id, lock=True)
        self._check_transition(change_order, ChangeOrderOperation.DISCARD)

        latest = self.session.execute(
            select(func.max(ChangeOrder.version)).where(ChangeOrder.job_id == job_id)
        ).scalar_one()
        if latest != change_order.version:
            raise ImmutableRecordError(
                entity_type="ChangeOrder",
                entity_id=str(change_order.id),
                reason=(
                    f"version {change_order.version} is followed by version {latest}; "
                    "only the latest draft may be discarded"
                ),
                field="version",
            )

        self._log("change_order_discarded", change_order)
        self.session.delete(change_order)
        self.session.flush()

