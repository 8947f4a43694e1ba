"""
Change orders -- status model, transition table, structured change sets.

Responsibility:
    Declares the change-order lifecycle (statuses, which operation is legal
    from which status, which fields an editor may touch) and the ChangeSet
    value type that carries a change order's structured diff.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The state machine
    service (services/change_order_state_machine.py) applies this table to
    ORM rows; the immutability listeners (db/immutability.py) read the same
    field sets.

Invariants enforced:
    - Lifecycle: DRAFT -> PENDING_APPROVAL -> APPROVED | REJECTED, with
      PENDING_APPROVAL -> DRAFT via withdraw.  APPROVED and REJECTED are
      terminal.
    - Only EDITABLE_FIELDS may be changed by update_draft, and only in DRAFT.
    - ALLOCATOR_OWNED_FIELDS never change after insert.
    - A ChangeSet is valid on construction: spec change keys are non-empty
      strings, values are JSON-compatible, components are ComponentSpecs.

Failure modes:
    - InvalidChangeSetError for malformed change payloads.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from job_kernel.domain.components import ComponentSpec
from job_kernel.exceptions import InvalidChangeSetError


class ChangeOrderStatus(str, Enum):
    """
    Lifecycle status of a change order.

    Contract:
        DRAFT and PENDING_APPROVAL are "open".  APPROVED and REJECTED are
        terminal and immutable; both keep their version slot forever.
    """

    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


OPEN_STATUSES: frozenset[ChangeOrderStatus] = frozenset(
    {ChangeOrderStatus.DRAFT, ChangeOrderStatus.PENDING_APPROVAL}
)

TERMINAL_STATUSES: frozenset[ChangeOrderStatus] = frozenset(
    {ChangeOrderStatus.APPROVED, ChangeOrderStatus.REJECTED}
)


class ChangeOrderOperation(str, Enum):
    SUBMIT = "submit"
    WITHDRAW = "withdraw"
    APPROVE = "approve"
    REJECT = "reject"
    UPDATE_DRAFT = "update_draft"
    DISCARD = "discard"


# operation -> (statuses it may start from, status it lands in)
CHANGE_ORDER_TRANSITIONS: Mapping[
    ChangeOrderOperation, tuple[frozenset[ChangeOrderStatus], ChangeOrderStatus | None]
] = MappingProxyType(
    {
        ChangeOrderOperation.SUBMIT: (
            frozenset({ChangeOrderStatus.DRAFT}),
            ChangeOrderStatus.PENDING_APPROVAL,
        ),
        ChangeOrderOperation.WITHDRAW: (
            frozenset({ChangeOrderStatus.PENDING_APPROVAL}),
            ChangeOrderStatus.DRAFT,
        ),
        ChangeOrderOperation.APPROVE: (
            frozenset({ChangeOrderStatus.PENDING_APPROVAL}),
            ChangeOrderStatus.APPROVED,
        ),
        ChangeOrderOperation.REJECT: (
            frozenset({ChangeOrderStatus.PENDING_APPROVAL}),
            ChangeOrderStatus.REJECTED,
        ),
        ChangeOrderOperation.UPDATE_DRAFT: (
            frozenset({ChangeOrderStatus.DRAFT}),
            ChangeOrderStatus.DRAFT,
        ),
        # Row is deleted; there is no landing status.
        ChangeOrderOperation.DISCARD: (
            frozenset({ChangeOrderStatus.DRAFT}),
            None,
        ),
    }
)

# Fields update_draft accepts.
EDITABLE_FIELDS: frozenset[str] = frozenset(
    {"summary", "changes", "affects_vendors", "requires_new_po", "requires_reprice"}
)

# Fields written once by ChangeOrderAllocator.
ALLOCATOR_OWNED_FIELDS: frozenset[str] = frozenset({"version", "change_order_no", "job_id"})

# Everything on a change order row except bookkeeping timestamps.
CONTENT_FIELDS: frozenset[str] = (
    EDITABLE_FIELDS
    | ALLOCATOR_OWNED_FIELDS
    | frozenset(
        {"status", "approved_at", "approved_by", "rejection_reason", "submitted_at"}
    )
)


@dataclass(frozen=True)
class ChangeOrderPolicy:
    """
    Configurable parts of the approval workflow.

    Contract:
        allow_direct_approval: approve() may start from DRAFT as well as
            PENDING_APPROVAL.
        single_open_per_job: at most one DRAFT/PENDING_APPROVAL change order
            per job; create() raises OpenChangeOrderExistsError otherwise.
        block_on_component_issues: submit/approve raise
            ComponentValidationError when the change set replaces the
            component list with one the validator rejects.

    Non-goals:
        The policy never relaxes version contiguity, immutability of terminal
        records or the effective-version invariant.
    """

    allow_direct_approval: bool = True
    single_open_per_job: bool = True
    block_on_component_issues: bool = True

    def allowed_from(self, operation: ChangeOrderOperation) -> frozenset[ChangeOrderStatus]:
        allowed, _ = CHANGE_ORDER_TRANSITIONS[operation]
        if operation == ChangeOrderOperation.APPROVE and self.allow_direct_approval:
            return allowed | {ChangeOrderStatus.DRAFT}
        return allowed


DEFAULT_CHANGE_ORDER_POLICY = ChangeOrderPolicy()


# ---------------------------------------------------------------------------
# ChangeSet
# ---------------------------------------------------------------------------

_JSON_SCALARS = (str, int, float, bool, type(None))


def _freeze_json(value: Any, path: str) -> Any:
    """Validate a JSON-compatible value and return a read-only copy."""
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidChangeSetError("non-finite number", path=path)
    if isinstance(value, _JSON_SCALARS):
        return value
    if isinstance(value, Mapping):
        frozen = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise InvalidChangeSetError(f"non-string key {key!r}", path=path)
            frozen[key] = _freeze_json(item, f"{path}.{key}")
        return MappingProxyType(frozen)
    if isinstance(value, (list, tuple)):
        return tuple(_freeze_json(item, f"{path}[{i}]") for i, item in enumerate(value))
    raise InvalidChangeSetError(
        f"unsupported value type {type(value).__name__}", path=path
    )


def _thaw_json(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw_json(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw_json(item) for item in value]
    return value


@dataclass(frozen=True, eq=True)
class ChangeSet:
    """
    Structured diff carried by a change order.

    Contract:
        spec_changes maps job spec field names to their new JSON values and
        is merged over the job's specs, in version order, when computing the
        effective job state.  components, when present, replaces the job's
        component list once the change order is approved.

    Guarantees:
        - Validated and deep-frozen on construction.
        - to_payload() / from_payload() round-trip through plain JSON.

    Payload shape:
        {"spec_changes": {"quantity": 5000}, "components": [{...}, ...]}
        Both keys are optional; components may be null.
    """

    spec_changes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    components: tuple[ComponentSpec, ...] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.spec_changes, Mapping):
            raise InvalidChangeSetError("spec_changes must be a mapping", path="spec_changes")
        for key in self.spec_changes:
            if not isinstance(key, str) or not key.strip():
                raise InvalidChangeSetError(
                    f"field name must be a non-empty string, got {key!r}",
                    path="spec_changes",
                )
        object.__setattr__(
            self, "spec_changes", _freeze_json(self.spec_changes, "spec_changes")
        )

        if self.components is not None:
            if isinstance(self.components, (str, bytes, Mapping)):
                raise InvalidChangeSetError("components must be a list", path="components")
            specs = []
            for index, component in enumerate(self.components):
                if not isinstance(component, ComponentSpec):
                    raise InvalidChangeSetError(
                        "expected a ComponentSpec", path=f"components[{index}]"
                    )
                specs.append(component)
            object.__setattr__(self, "components", tuple(specs))

    @classmethod
    def from_payload(cls, payload: ChangeSet | Mapping[str, Any] | None) -> ChangeSet:
        """Build a ChangeSet from its JSON payload (or pass one through)."""
        if payload is None:
            return EMPTY_CHANGE_SET
        if isinstance(payload, ChangeSet):
            return payload
        if not isinstance(payload, Mapping):
            raise InvalidChangeSetError(
                f"expected a mapping, got {type(payload).__name__}"
            )

        unknown = set(payload) - {"spec_changes", "components"}
        if unknown:
            raise InvalidChangeSetError(
                f"unknown key(s): {', '.join(sorted(map(str, unknown)))}"
            )

        raw_components = payload.get("components")
        components = None
        if raw_components is not None:
            if not isinstance(raw_components, (list, tuple)):
                raise InvalidChangeSetError("components must be a list", path="components")
            components = tuple(
                _component_from_payload(item, index)
                for index, item in enumerate(raw_components)
            )

        return cls(
            spec_changes=payload.get("spec_changes") or {},
            components=components,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "spec_changes": _thaw_json(self.spec_changes),
            "components": (
                [component.to_payload() for component in self.components]
                if self.components is not None
                else None
            ),
        }

    @property
    def is_empty(self) -> bool:
        return not self.spec_changes and self.components is None

    def apply_to(self, specs: Mapping[str, Any]) -> dict[str, Any]:
        """Shallow-merge spec_changes over specs and return a new dict."""
        merged = dict(specs)
        merged.update(_thaw_json(self.spec_changes))
        return merged


def _component_from_payload(item: Any, index: int) -> ComponentSpec:
    if isinstance(item, ComponentSpec):
        return item
    if not isinstance(item, Mapping):
        raise InvalidChangeSetError("expected an object", path=f"components[{index}]")
    try:
        return ComponentSpec.from_payload(item)
    except (KeyError, ValueError, TypeError) as exc:
        raise InvalidChangeSetError(str(exc), path=f"components[{index}]") from exc


EMPTY_CHANGE_SET = ChangeSet()
