"""
Job identity -- classification, type codes and identifier formats.

Responsibility:
    Pure functions and value objects for every human-readable identifier the
    kernel hands out: the job type code derived from classification, the
    base job id built from ``(job_type_code, master_seq)`` under a
    NumberingPolicy, change order numbers and vendor execution ids.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The counter that
    feeds master_seq lives in services/sequence_service.py; this module only
    formats and parses.

Invariants enforced:
    - base_job_id is a deterministic function of (job_type_code, master_seq)
      under a given NumberingPolicy.
    - change_order_no is always "{base_job_id}-CO{version}".
    - Job type codes match ``[A-Z]+[0-9]*``.

Failure modes:
    - InvalidJobTypeCodeError for malformed type codes.
    - ValueError for an unusable NumberingPolicy or a version < 1.
    - Parse functions return None for unparseable input; they never raise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from job_kernel.exceptions import InvalidJobTypeCodeError


class JobMetaType(str, Enum):
    """Top-level job classification."""

    MAILING = "MAILING"
    JOB = "JOB"


class MailFormat(str, Enum):
    """Physical format of a mailing piece."""

    SELF_MAILER = "SELF_MAILER"
    POSTCARD = "POSTCARD"
    ENVELOPE = "ENVELOPE"


class JobType(str, Enum):
    """Product shape of a non-mailing job."""

    FLAT = "FLAT"
    FOLDED = "FOLDED"
    BOOKLET_SELF_COVER = "BOOKLET_SELF_COVER"
    BOOKLET_PLUS_COVER = "BOOKLET_PLUS_COVER"


class JobStatus(str, Enum):
    """
    Job lifecycle status.

    Contract:
        Jobs are created in DRAFT and may leave DRAFT only once the component
        validator reports no issues.  Later statuses belong to collaborators
        outside the kernel.
    """

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    PAID = "PAID"


def _coerce_enum(enum_cls, value):
    if value is None or isinstance(value, enum_cls):
        return value
    return enum_cls(value)


@dataclass(frozen=True)
class JobClassification:
    """
    Classification inputs for type-code derivation and component suggestion.

    Contract:
        All fields are optional.  String values are coerced to their enums,
        so a classification can be built straight from request payloads.
    """

    job_meta_type: JobMetaType | None = None
    mail_format: MailFormat | None = None
    job_type: JobType | None = None
    envelope_components: int | None = None
    has_samples: bool = False
    has_data: bool = False
    has_versions: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "job_meta_type", _coerce_enum(JobMetaType, self.job_meta_type)
        )
        object.__setattr__(
            self, "mail_format", _coerce_enum(MailFormat, self.mail_format)
        )
        object.__setattr__(self, "job_type", _coerce_enum(JobType, self.job_type))
        if self.envelope_components is not None and self.envelope_components < 0:
            raise ValueError(
                f"envelope_components must be >= 0, got {self.envelope_components}"
            )

    @property
    def is_mailing(self) -> bool:
        return self.job_meta_type == JobMetaType.MAILING

    @property
    def envelope_component_count(self) -> int:
        """Pieces inserted into an envelope.  0 or unset counts as 1."""
        return self.envelope_components or 1


# ---------------------------------------------------------------------------
# Job type codes
# ---------------------------------------------------------------------------

JOB_TYPE_CODE_PATTERN = re.compile(r"^[A-Z]+[0-9]*$")


def validate_job_type_code(job_type_code: str) -> str:
    """Return job_type_code unchanged, or raise InvalidJobTypeCodeError."""
    if not isinstance(job_type_code, str) or not JOB_TYPE_CODE_PATTERN.match(
        job_type_code
    ):
        raise InvalidJobTypeCodeError(job_type_code)
    return job_type_code


_NON_MAILING_CODES: dict[JobType, str] = {
    JobType.FLAT: "FJ",
    JobType.FOLDED: "HJ",
    JobType.BOOKLET_SELF_COVER: "BJ",
    JobType.BOOKLET_PLUS_COVER: "BJ",
}


def derive_job_type_code(classification: JobClassification) -> str:
    """
    Derive the job type code from a classification.

    Mailing jobs:  MS (self-mailer, or no format), MP (postcard),
                   ME{n} (envelope with n inserted pieces, default 1).
    Other jobs:    FJ (flat, or no job type), HJ (folded), BJ (booklets).
    """
    if classification.is_mailing:
        if classification.mail_format == MailFormat.POSTCARD:
            return "MP"
        if classification.mail_format == MailFormat.ENVELOPE:
            return f"ME{classification.envelope_component_count}"
        return "MS"

    if classification.job_type is None:
        return "FJ"
    return _NON_MAILING_CODES.get(classification.job_type, "FJ")


# ---------------------------------------------------------------------------
# Numbering policy
# ---------------------------------------------------------------------------


class CounterScope(str, Enum):
    """Which counter row feeds master_seq."""

    GLOBAL = "global"
    PER_TYPE_CODE = "per_type_code"


@dataclass(frozen=True)
class NumberingPolicy:
    """
    How base job ids are built from a type code and a master sequence.

    Contract:
        base_job_id = "{job_type_code}{separator}{master_seq:0{pad_width}d}"
        The first allocated master_seq is ``start_value + 1``.
        GLOBAL scope shares one counter across all type codes;
        PER_TYPE_CODE keeps one counter per code.

    Guarantees:
        - The format is reversible by parse_base_job_id().  With an empty
          separator that holds while master_seq fits in pad_width digits.

    Raises:
        ValueError: negative pad_width/start_value, a separator made of
            letters or digits, or an empty separator with pad_width 0.
    """

    separator: str = ""
    pad_width: int = 6
    start_value: int = 0
    counter_scope: CounterScope = CounterScope.GLOBAL
    counter_name: str = "master_seq"

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "counter_scope", _coerce_enum(CounterScope, self.counter_scope)
        )
        if self.pad_width < 0:
            raise ValueError(f"pad_width must be >= 0, got {self.pad_width}")
        if self.start_value < 0:
            raise ValueError(f"start_value must be >= 0, got {self.start_value}")
        if any(ch.isalnum() for ch in self.separator):
            raise ValueError(
                f"separator must not contain letters or digits: {self.separator!r}"
            )
        if not self.separator and self.pad_width == 0:
            raise ValueError("an empty separator requires pad_width > 0")
        if not self.counter_name:
            raise ValueError("counter_name must not be empty")

    def counter_key(self, job_type_code: str) -> str:
        """Name of the sequence_counters row used for this type code."""
        if self.counter_scope == CounterScope.PER_TYPE_CODE:
            return f"{self.counter_name}:{job_type_code}"
        return self.counter_name

    def format_base_job_id(self, job_type_code: str, master_seq: int) -> str:
        validate_job_type_code(job_type_code)
        if master_seq < 1:
            raise ValueError(f"master_seq must be >= 1, got {master_seq}")
        return f"{job_type_code}{self.separator}{master_seq:0{self.pad_width}d}"


DEFAULT_NUMBERING_POLICY = NumberingPolicy()


@dataclass(frozen=True)
class AllocatedJobIdentifiers:
    """Identifiers handed out for a brand-new job."""

    base_job_id: str
    master_seq: int
    job_type_code: str


@dataclass(frozen=True)
class ParsedBaseJobId:
    job_type_code: str
    master_seq: int


@dataclass(frozen=True)
class ParsedChangeOrderNo:
    base_job_id: str
    version: int


@dataclass(frozen=True)
class ParsedExecutionId:
    base_job_id: str
    vendor_code: str
    vendor_count: int


def parse_base_job_id(
    base_job_id: str,
    policy: NumberingPolicy = DEFAULT_NUMBERING_POLICY,
) -> ParsedBaseJobId | None:
    """
    Split a base job id back into type code and master sequence.

    Returns None when the string does not match the policy's format.
    """
    if not isinstance(base_job_id, str):
        return None

    if policy.separator:
        match = re.match(
            rf"^([A-Z]+[0-9]*){re.escape(policy.separator)}([0-9]+)$",
            base_job_id,
        )
        if not match:
            return None
        code, digits = match.group(1), match.group(2)
    else:
        match = re.match(r"^([A-Z]+)([0-9]+)$", base_job_id)
        if not match or len(match.group(2)) < policy.pad_width:
            return None
        letters, all_digits = match.group(1), match.group(2)
        split = len(all_digits) - policy.pad_width
        code = letters + all_digits[:split]
        digits = all_digits[split:]

    if policy.pad_width and len(digits) < policy.pad_width:
        return None
    master_seq = int(digits)
    if master_seq < 1:
        return None
    return ParsedBaseJobId(job_type_code=code, master_seq=master_seq)


def format_change_order_no(base_job_id: str, version: int) -> str:
    """Change order number anchored to the job: ``{base_job_id}-CO{version}``."""
    if not base_job_id:
        raise ValueError("base_job_id must not be empty")
    if version < 1:
        raise ValueError(f"version must be >= 1, got {version}")
    return f"{base_job_id}-CO{version}"


_CHANGE_ORDER_NO = re.compile(r"^(.+)-CO([1-9][0-9]*)$")


def parse_change_order_no(change_order_no: str) -> ParsedChangeOrderNo | None:
    if not isinstance(change_order_no, str):
        return None
    match = _CHANGE_ORDER_NO.match(change_order_no)
    if not match:
        return None
    return ParsedChangeOrderNo(
        base_job_id=match.group(1),
        version=int(match.group(2)),
    )


def format_execution_id(base_job_id: str, vendor_code: str, vendor_count: int) -> str:
    """Vendor-specific execution id: ``{base_job_id}-{vendor_code}.{vendor_count}``."""
    if not base_job_id:
        raise ValueError("base_job_id must not be empty")
    if not vendor_code or not re.fullmatch(r"\w+", vendor_code):
        raise ValueError(f"vendor_code must be alphanumeric: {vendor_code!r}")
    if vendor_count < 1:
        raise ValueError(f"vendor_count must be >= 1, got {vendor_count}")
    return f"{base_job_id}-{vendor_code}.{vendor_count}"


_EXECUTION_ID = re.compile(r"^(.+)-(\w+)\.([0-9]+)$")


def parse_execution_id(execution_id: str) -> ParsedExecutionId | None:
    if not isinstance(execution_id, str):
        return None
    match = _EXECUTION_ID.match(execution_id)
    if not match:
        return None
    return ParsedExecutionId(
        base_job_id=match.group(1),
        vendor_code=match.group(2),
        vendor_count=int(match.group(3)),
    )
