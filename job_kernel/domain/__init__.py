"""
Pure domain layer.

This package contains value objects, DTOs and pure functions with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (see clock.py)
- I/O

All domain objects are immutable and deterministic.
"""

from job_kernel.domain.change_order import (
    CHANGE_ORDER_TRANSITIONS,
    DEFAULT_CHANGE_ORDER_POLICY,
    EDITABLE_FIELDS,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    ChangeOrderOperation,
    ChangeOrderPolicy,
    ChangeOrderStatus,
    ChangeSet,
)
from job_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from job_kernel.domain.components import (
    ComponentDefaults,
    ComponentOwner,
    ComponentSpec,
    ComponentStatus,
    ComponentType,
    IssueCode,
    SuggestedComponent,
    ValidationIssue,
    component_defaults,
    infer_component_type,
    map_supplier_to_owner,
    suggest_components,
    validate_components,
)
from job_kernel.domain.dtos import (
    AllocatedChangeOrderNumber,
    ApprovalResult,
    ChangeOrderRecord,
    ComponentRecord,
    EffectiveJobState,
    InvariantViolation,
    JobRecord,
)
from job_kernel.domain.job_identity import (
    DEFAULT_NUMBERING_POLICY,
    AllocatedJobIdentifiers,
    CounterScope,
    JobClassification,
    JobMetaType,
    JobStatus,
    JobType,
    MailFormat,
    NumberingPolicy,
    derive_job_type_code,
    format_change_order_no,
    format_execution_id,
    parse_base_job_id,
    parse_change_order_no,
    parse_execution_id,
)
from job_kernel.domain.pathway import Pathway, RoutingType, determine_pathway

__all__ = [
    "AllocatedChangeOrderNumber",
    "AllocatedJobIdentifiers",
    "ApprovalResult",
    "CHANGE_ORDER_TRANSITIONS",
    "ChangeOrderOperation",
    "ChangeOrderPolicy",
    "ChangeOrderRecord",
    "ChangeOrderStatus",
    "ChangeSet",
    "Clock",
    "ComponentDefaults",
    "ComponentOwner",
    "ComponentRecord",
    "ComponentSpec",
    "ComponentStatus",
    "ComponentType",
    "CounterScope",
    "DEFAULT_CHANGE_ORDER_POLICY",
    "DEFAULT_NUMBERING_POLICY",
    "DeterministicClock",
    "EDITABLE_FIELDS",
    "EffectiveJobState",
    "InvariantViolation",
    "IssueCode",
    "JobClassification",
    "JobMetaType",
    "JobRecord",
    "JobStatus",
    "JobType",
    "MailFormat",
    "NumberingPolicy",
    "OPEN_STATUSES",
    "Pathway",
    "RoutingType",
    "SuggestedComponent",
    "SystemClock",
    "TERMINAL_STATUSES",
    "ValidationIssue",
    "component_defaults",
    "derive_job_type_code",
    "determine_pathway",
    "format_change_order_no",
    "format_execution_id",
    "infer_component_type",
    "map_supplier_to_owner",
    "parse_base_job_id",
    "parse_change_order_no",
    "parse_execution_id",
    "suggest_components",
    "validate_components",
]
