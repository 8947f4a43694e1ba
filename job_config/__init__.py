"""
job_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a validated, frozen ``EngineConfig``.
    YAML loading is internal tooling and never exposed to callers.

Architecture position:
    Configuration -- sits above ``job_kernel`` and below ``job_services``.
    The kernel MUST NEVER import from ``job_config``; ``job_config.bridges``
    translates configuration into kernel policy objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - A configuration with validation errors is never returned.
    - Same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- no set named ``set_name`` in the directory.
    - ``ConfigValidationError`` -- the set failed validation.
    - ``yaml.YAMLError`` / ``KeyError`` / ``ValueError`` -- malformed file.

Audit relevance:
    Every successful call emits a ``JOB_CONFIG_TRACE`` log entry with the
    config id, version and checksum.  Identifiers allocated afterwards can
    be traced back to the numbering policy that produced them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from job_config.loader import load_config_set
from job_config.schema import (
    ChangeOrderConfig,
    EngineConfig,
    NumberingConfig,
    RetryConfig,
)
from job_config.validator import ConfigValidationError, validate_configuration

_logger = logging.getLogger("job_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def available_config_sets(config_dir: Path | None = None) -> list[str]:
    """Names of the configuration sets found in ``config_dir``."""
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    if not sets_dir.is_dir():
        return []
    return sorted(path.stem for path in sets_dir.glob("*.yaml"))


def get_active_config(
    set_name: str = "default",
    config_dir: Path | None = None,
) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        set_name: Name of the set, i.e. ``<config_dir>/<set_name>.yaml``.
        config_dir: Override path to the sets directory.  Defaults to
            job_config/sets/.

    Returns:
        EngineConfig that passed validation.

    Raises:
        FileNotFoundError: If the set does not exist.
        ConfigValidationError: If validation reports errors.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{set_name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(
            f"Configuration set '{set_name}' not found in {sets_dir} "
            f"(available: {', '.join(available_config_sets(sets_dir)) or 'none'})"
        )

    config = load_config_set(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ConfigValidationError(str(config.config_id), validation.errors)
    for warning in validation.warnings:
        _logger.warning(
            "config_validation_warning",
            extra={"config_set_id": config.config_id, "warning": warning},
        )

    _logger.info(
        "JOB_CONFIG_TRACE",
        extra={
            "trace_type": "JOB_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "numbering_separator": config.numbering.separator,
            "numbering_pad_width": config.numbering.pad_width,
            "numbering_counter_scope": config.numbering.counter_scope,
            "single_open_per_job": config.change_orders.single_open_per_job,
        },
    )

    return config


__all__ = [
    "ChangeOrderConfig",
    "ConfigValidationError",
    "EngineConfig",
    "NumberingConfig",
    "RetryConfig",
    "available_config_sets",
    "get_active_config",
]
