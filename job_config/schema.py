"""
Configuration schema (``job_config.schema``).

Frozen dataclasses describing one engine configuration set.  Parsed from
YAML by ``job_config.loader`` and converted into kernel policy objects by
``job_config.bridges``.  No I/O here.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class NumberingConfig:
    """How base job ids are formatted and which counter feeds master_seq."""

    separator: str = ""
    pad_width: int = 6
    start_value: int = 0
    counter_scope: str = "global"
    counter_name: str = "master_seq"


@dataclass(frozen=True)
class ChangeOrderConfig:
    """Optional paths of the change order workflow."""

    allow_direct_approval: bool = True
    single_open_per_job: bool = True
    block_on_component_issues: bool = True


@dataclass(frozen=True)
class RetryConfig:
    """
    Retry policy for transactions that lose a sequence or version race.

    Delay before attempt n (n >= 2) is
    min(base_delay_seconds * 2 ** (n - 2), max_delay_seconds).
    """

    max_attempts: int = 5
    base_delay_seconds: float = 0.02
    max_delay_seconds: float = 0.5

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (1-based).  Zero for the first."""
        if attempt <= 1:
            return 0.0
        return min(self.base_delay_seconds * 2 ** (attempt - 2), self.max_delay_seconds)


@dataclass(frozen=True)
class EngineConfig:
    """
    One complete configuration set.

    ``checksum`` is the SHA-256 of the canonical JSON of the source YAML;
    it is logged with every JOB_CONFIG_TRACE entry.
    """

    config_id: str
    version: int
    description: str = ""
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    change_orders: ChangeOrderConfig = field(default_factory=ChangeOrderConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    checksum: str = ""
