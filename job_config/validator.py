"""
Configuration Validator (``job_config.validator``).

Responsibility
--------------
Checks an ``EngineConfig`` before it is handed to the kernel, collecting
every problem instead of stopping at the first.

Invariants enforced
-------------------
* Numbering produces reversible ids: non-negative pad width and start
  value, a separator without letters or digits, and a non-zero pad width
  when there is no separator.
* counter_scope is ``global`` or ``per_type_code``.
* Flags are real booleans; ``"false"`` in YAML is a string, not False.
* Retry attempts >= 1, delays >= 0, base delay <= max delay.

Failure modes
-------------
* Errors  -> ``get_active_config`` raises ``ConfigValidationError``.
* Warnings  -> logged; the configuration is still used.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from job_config.schema import EngineConfig

_COUNTER_SCOPES = ("global", "per_type_code")


class ConfigValidationError(ValueError):
    """A configuration set failed validation."""

    def __init__(self, config_id: str, errors: list[str]):
        self.config_id = config_id
        self.errors = errors
        super().__init__(
            f"Configuration '{config_id}' failed validation:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: EngineConfig) -> ConfigValidationResult:
    """Validate a configuration set.  Never raises."""
    result = ConfigValidationResult()

    if not isinstance(config.config_id, str) or not config.config_id:
        result.add_error("config_id must be a non-empty string")
    if not _is_int(config.version) or config.version < 1:
        result.add_error(f"version must be a positive integer, got {config.version!r}")

    _validate_numbering(config, result)
    _validate_change_orders(config, result)
    _validate_retry(config, result)

    return result


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_numbering(config: EngineConfig, result: ConfigValidationResult) -> None:
    numbering = config.numbering

    if not isinstance(numbering.separator, str):
        result.add_error(f"numbering.separator must be a string, got {numbering.separator!r}")
    elif any(ch.isalnum() for ch in numbering.separator):
        result.add_error(
            f"numbering.separator must not contain letters or digits: {numbering.separator!r}"
        )

    if not _is_int(numbering.pad_width) or numbering.pad_width < 0:
        result.add_error(f"numbering.pad_width must be an integer >= 0, got {numbering.pad_width!r}")
    if not _is_int(numbering.start_value) or numbering.start_value < 0:
        result.add_error(
            f"numbering.start_value must be an integer >= 0, got {numbering.start_value!r}"
        )

    if numbering.separator == "" and numbering.pad_width == 0:
        result.add_error(
            "numbering: an empty separator needs pad_width > 0, "
            "otherwise type code and sequence cannot be told apart"
        )

    if numbering.counter_scope not in _COUNTER_SCOPES:
        result.add_error(
            f"numbering.counter_scope must be one of {', '.join(_COUNTER_SCOPES)}, "
            f"got {numbering.counter_scope!r}"
        )
    if not isinstance(numbering.counter_name, str) or not numbering.counter_name:
        result.add_error("numbering.counter_name must be a non-empty string")

    if (
        numbering.separator == ""
        and _is_int(numbering.pad_width)
        and _is_int(numbering.start_value)
        and numbering.pad_width > 0
        and len(str(numbering.start_value + 1)) > numbering.pad_width
    ):
        result.add_warning(
            "numbering: start_value already exceeds pad_width digits; "
            "ids will not parse back unambiguously"
        )


def _validate_change_orders(config: EngineConfig, result: ConfigValidationResult) -> None:
    for name in ("allow_direct_approval", "single_open_per_job", "block_on_component_issues"):
        value = getattr(config.change_orders, name)
        if not isinstance(value, bool):
            result.add_error(f"change_orders.{name} must be true or false, got {value!r}")

    if config.change_orders.single_open_per_job is False:
        result.add_warning(
            "change_orders.single_open_per_job is off; concurrent drafts on one job "
            "will be approved in whatever order reviewers pick"
        )


def _validate_retry(config: EngineConfig, result: ConfigValidationResult) -> None:
    retry = config.retry
    if not _is_int(retry.max_attempts) or retry.max_attempts < 1:
        result.add_error(f"retry.max_attempts must be an integer >= 1, got {retry.max_attempts!r}")

    delays_ok = True
    for name in ("base_delay_seconds", "max_delay_seconds"):
        value = getattr(retry, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            result.add_error(f"retry.{name} must be a number >= 0, got {value!r}")
            delays_ok = False

    if delays_ok and retry.base_delay_seconds > retry.max_delay_seconds:
        result.add_error("retry.base_delay_seconds must not exceed retry.max_delay_seconds")
