"""
Components -- suggestion, per-type defaults and validation.

Responsibility:
    Derives the ordered set of production steps a job should carry from its
    classification, supplies per-type artwork/data defaults, and checks a
    component list for the issues that keep a job in DRAFT.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Consumed by
    JobService (seeding and release gating), ChangeSet validation and
    JobWorkflowService.

Invariants enforced:
    - suggest_components() is deterministic: identical input yields an
      identical, identically-ordered list with sort_order 0, 1, 2, ...
    - validate_components() never raises and never mutates its input.

Failure modes:
    - None.  Issues are returned as values; callers decide whether to block.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol, Sequence

from job_kernel.domain.job_identity import JobClassification, JobMetaType, JobType, MailFormat


class ComponentType(str, Enum):
    PRINT = "PRINT"
    DATA = "DATA"
    PROOF = "PROOF"
    MAILING = "MAILING"
    FINISHING = "FINISHING"
    BINDERY = "BINDERY"
    SHIPPING = "SHIPPING"
    SAMPLES = "SAMPLES"
    OTHER = "OTHER"


class ComponentOwner(str, Enum):
    """Who performs the production step."""

    INTERNAL = "INTERNAL"
    VENDOR = "VENDOR"


class ComponentStatus(str, Enum):
    """Production status.  Tracked for collaborators; the kernel only seeds PENDING."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"


@dataclass(frozen=True)
class ComponentDefaults:
    artwork_required: bool
    data_required: bool


_ARTWORK_ONLY = ComponentDefaults(artwork_required=True, data_required=False)
_DATA_ONLY = ComponentDefaults(artwork_required=False, data_required=True)
_NEITHER = ComponentDefaults(artwork_required=False, data_required=False)

_DEFAULTS_BY_TYPE: dict[ComponentType, ComponentDefaults] = {
    ComponentType.PRINT: _ARTWORK_ONLY,
    ComponentType.PROOF: _ARTWORK_ONLY,
    ComponentType.DATA: _DATA_ONLY,
    ComponentType.MAILING: _DATA_ONLY,
}


def component_defaults(component_type: ComponentType | str) -> ComponentDefaults:
    """
    Per-type artwork/data requirements.

    PRINT and PROOF require artwork; DATA and MAILING require data; every
    other type requires neither.
    """
    return _DEFAULTS_BY_TYPE.get(ComponentType(component_type), _NEITHER)


@dataclass(frozen=True)
class SuggestedComponent:
    """One entry of the suggestion engine's output."""

    type: ComponentType
    name: str
    description: str
    owner: ComponentOwner
    artwork_required: bool
    data_required: bool
    sort_order: int

    # Suggestions never name a vendor; present so the validator can read it.
    vendor_id: str | None = None


@dataclass(frozen=True)
class ComponentSpec:
    """
    Caller-supplied component definition.

    Used by JobService.add_component and as an element of a ChangeSet's
    replacement component list.  artwork_required / data_required default
    to component_defaults(type) when left as None.
    """

    type: ComponentType
    name: str
    description: str | None = None
    owner: ComponentOwner = ComponentOwner.INTERNAL
    vendor_id: str | None = None
    artwork_required: bool | None = None
    data_required: bool | None = None
    sort_order: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", ComponentType(self.type))
        object.__setattr__(self, "owner", ComponentOwner(self.owner))
        if not self.name or not self.name.strip():
            raise ValueError("component name must not be empty")
        defaults = component_defaults(self.type)
        if self.artwork_required is None:
            object.__setattr__(self, "artwork_required", defaults.artwork_required)
        if self.data_required is None:
            object.__setattr__(self, "data_required", defaults.data_required)

    @classmethod
    def from_suggestion(cls, suggestion: SuggestedComponent) -> ComponentSpec:
        return cls(
            type=suggestion.type,
            name=suggestion.name,
            description=suggestion.description,
            owner=suggestion.owner,
            artwork_required=suggestion.artwork_required,
            data_required=suggestion.data_required,
            sort_order=suggestion.sort_order,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ComponentSpec:
        return cls(
            type=payload["type"],
            name=payload["name"],
            description=payload.get("description"),
            owner=payload.get("owner", ComponentOwner.INTERNAL),
            vendor_id=payload.get("vendor_id"),
            artwork_required=payload.get("artwork_required"),
            data_required=payload.get("data_required"),
            sort_order=payload.get("sort_order", 0),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "name": self.name,
            "description": self.description,
            "owner": self.owner.value,
            "vendor_id": self.vendor_id,
            "artwork_required": self.artwork_required,
            "data_required": self.data_required,
            "sort_order": self.sort_order,
        }


# ---------------------------------------------------------------------------
# Suggestion engine
# ---------------------------------------------------------------------------


def _suggest(
    component_type: ComponentType, name: str, description: str, sort_order: int
) -> SuggestedComponent:
    defaults = component_defaults(component_type)
    return SuggestedComponent(
        type=component_type,
        name=name,
        description=description,
        owner=ComponentOwner.INTERNAL,
        artwork_required=defaults.artwork_required,
        data_required=defaults.data_required,
        sort_order=sort_order,
    )


def suggest_components(classification: JobClassification) -> list[SuggestedComponent]:
    """
    Suggested production components for a job, in execution order.

    Rules, applied in this order:
        1. PRINT, always first.
        2. DATA: list processing for mailings, variable data when has_data.
        3. FINISHING for envelope mailings (insertion of n pieces).
        4. BINDERY for non-mailing folded jobs and booklets.
        5. PROOF, always.
        6. MAILING for mailings.
        7. SAMPLES when has_samples.
        8. SHIPPING, always last.
    """
    entries: list[tuple[ComponentType, str, str]] = [
        (ComponentType.PRINT, "Print Production", "Primary print production"),
    ]

    if classification.is_mailing:
        entries.append(
            (
                ComponentType.DATA,
                "Data Processing",
                "Mailing list processing and CASS certification",
            )
        )
    elif classification.has_data:
        entries.append((ComponentType.DATA, "Variable Data", "Variable data processing"))

    if classification.mail_format == MailFormat.ENVELOPE:
        count = classification.envelope_component_count
        plural = "s" if count > 1 else ""
        entries.append(
            (
                ComponentType.FINISHING,
                "Insertion/Assembly",
                f"Insert {count} component{plural} into envelope",
            )
        )

    if classification.job_meta_type in (None, JobMetaType.JOB):
        if classification.job_type == JobType.FOLDED:
            entries.append((ComponentType.BINDERY, "Folding", "Folding operation"))
        elif classification.job_type == JobType.BOOKLET_PLUS_COVER:
            entries.append(
                (ComponentType.BINDERY, "Bindery", "Saddle stitch with separate cover")
            )
        elif classification.job_type == JobType.BOOKLET_SELF_COVER:
            entries.append((ComponentType.BINDERY, "Bindery", "Saddle stitch self-cover"))

    entries.append((ComponentType.PROOF, "Proof", "Customer proof for approval"))

    if classification.is_mailing:
        entries.append(
            (ComponentType.MAILING, "Mailing Services", "Postal processing and drop-ship")
        )

    if classification.has_samples:
        entries.append(
            (ComponentType.SAMPLES, "Samples", "Production samples for customer")
        )

    entries.append(
        (
            ComponentType.SHIPPING,
            "Shipping",
            "Delivery to mail facility" if classification.is_mailing else "Delivery to customer",
        )
    )

    return [
        _suggest(component_type, name, description, sort_order)
        for sort_order, (component_type, name, description) in enumerate(entries)
    ]


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class ComponentLike(Protocol):
    """Anything carrying a type, an owner and a vendor id."""

    type: Any
    owner: Any
    vendor_id: str | None


class IssueCode(str, Enum):
    MISSING_PRINT = "MISSING_PRINT"
    MISSING_PROOF = "MISSING_PROOF"
    VENDOR_ID_MISSING = "VENDOR_ID_MISSING"


@dataclass(frozen=True)
class ValidationIssue:
    """A problem found in a component list.  A value, not an exception."""

    code: IssueCode
    message: str
    component_index: int | None = None
    component_name: str | None = None

    def __str__(self) -> str:
        return self.message


def _read(component: Any, name: str) -> Any:
    if isinstance(component, Mapping):
        return component.get(name)
    return getattr(component, name, None)


def validate_components(
    components: Sequence[ComponentLike] | Iterable[Mapping[str, Any]],
) -> list[ValidationIssue]:
    """
    Check a component list.

    Accepts component objects (records, specs, suggestions) or plain mappings
    with ``type`` / ``owner`` / ``vendor_id`` keys.  Reports, independently:
    a missing PRINT, a missing PROOF, and one issue per VENDOR-owned
    component without a vendor id.
    """
    items = list(components)
    issues: list[ValidationIssue] = []

    types = {str(_coerce_value(_read(c, "type"))) for c in items}

    if ComponentType.PRINT.value not in types:
        issues.append(
            ValidationIssue(
                code=IssueCode.MISSING_PRINT,
                message="Missing PRINT component (required for all jobs)",
            )
        )
    if ComponentType.PROOF.value not in types:
        issues.append(
            ValidationIssue(
                code=IssueCode.MISSING_PROOF,
                message="Missing PROOF component (required for all jobs)",
            )
        )

    for index, component in enumerate(items):
        owner = _coerce_value(_read(component, "owner"))
        vendor_id = _read(component, "vendor_id")
        if owner == ComponentOwner.VENDOR.value and not (vendor_id and str(vendor_id).strip()):
            name = _read(component, "name")
            issues.append(
                ValidationIssue(
                    code=IssueCode.VENDOR_ID_MISSING,
                    message=f"Vendor-owned component {name or index!r} missing vendor_id",
                    component_index=index,
                    component_name=name,
                )
            )

    return issues


def _coerce_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


# ---------------------------------------------------------------------------
# Legacy backfill helpers
# ---------------------------------------------------------------------------

_NAME_KEYWORDS: tuple[tuple[ComponentType, tuple[str, ...]], ...] = (
    (ComponentType.PRINT, ("print", "letter", "postcard", "mailer")),
    (ComponentType.DATA, ("data", "list", "cass", "ncoa")),
    (ComponentType.PROOF, ("proof",)),
    (ComponentType.MAILING, ("mail", "postal", "drop")),
    (ComponentType.FINISHING, ("insert", "assembly", "fold", "finish")),
    (ComponentType.BINDERY, ("bind", "stitch", "saddle")),
    (ComponentType.SHIPPING, ("ship", "deliver")),
    (ComponentType.SAMPLES, ("sample",)),
)


def infer_component_type(name: str) -> ComponentType:
    """
    Guess a component type from a free-text legacy name.

    Keyword groups are tried in a fixed order, so "mailer" resolves to PRINT
    before the MAILING keywords are consulted.
    """
    lowered = (name or "").lower()
    for component_type, keywords in _NAME_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return component_type
    return ComponentType.OTHER


_VENDOR_SUPPLIERS = frozenset({"LAHLOUH", "THIRD_PARTY"})


def map_supplier_to_owner(supplier: str | None) -> ComponentOwner:
    """Map a legacy supplier code to an owner.  JD and unknown codes are internal."""
    if supplier and supplier.upper() in _VENDOR_SUPPLIERS:
        return ComponentOwner.VENDOR
    return ComponentOwner.INTERNAL


def renumber(specs: Iterable[ComponentSpec]) -> list[ComponentSpec]:
    """Return specs with sort_order reassigned 0..n-1 in iteration order."""
    return [replace(spec, sort_order=index) for index, spec in enumerate(specs)]
