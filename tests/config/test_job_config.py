"""
Tests for job_config: loading, validation, the config trace and the
bridges into kernel policy objects.
"""

from dataclasses import replace

import pytest
import yaml

from job_config import available_config_sets, get_active_config
from job_config.bridges import build_change_order_policy, build_numbering_policy
from job_config.loader import compute_checksum, load_config_set, parse_engine_config
from job_config.schema import (
    ChangeOrderConfig,
    EngineConfig,
    NumberingConfig,
    RetryConfig,
)
from job_config.validator import ConfigValidationError, validate_configuration
from job_kernel.domain.job_identity import CounterScope


def _write_set(directory, name, data):
    path = directory / f"{name}.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def _base_data(**sections):
    data = {"config_id": "custom", "version": 1}
    data.update(sections)
    return data


class TestGetActiveConfig:

    def test_default_set(self):
        config = get_active_config()
        assert config.config_id == "default"
        assert config.numbering == NumberingConfig()
        assert config.change_orders == ChangeOrderConfig()
        assert config.retry == RetryConfig()
        assert len(config.checksum) == 64

    def test_legacy_set(self):
        config = get_active_config("legacy")
        assert config.numbering.separator == "-"
        assert config.numbering.pad_width == 0
        assert config.numbering.start_value == 3000
        assert config.change_orders.block_on_component_issues is False

    def test_shipped_sets(self):
        assert available_config_sets() == ["default", "legacy"]

    def test_missing_set(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="nosuch"):
            get_active_config("nosuch", config_dir=tmp_path)

    def test_available_sets_of_missing_directory(self, tmp_path):
        assert available_config_sets(tmp_path / "absent") == []

    def test_custom_directory(self, tmp_path):
        _write_set(tmp_path, "custom", _base_data(numbering={"pad_width": 4}))
        config = get_active_config("custom", config_dir=tmp_path)
        assert config.numbering.pad_width == 4
        assert config.numbering.counter_scope == "global"

    def test_invalid_set_refused(self, tmp_path):
        _write_set(tmp_path, "custom", _base_data(numbering={"separator": "", "pad_width": 0}))
        with pytest.raises(ConfigValidationError) as exc_info:
            get_active_config("custom", config_dir=tmp_path)
        assert exc_info.value.config_id == "custom"
        assert any("pad_width > 0" in e for e in exc_info.value.errors)

    def test_trace_logged(self, captured_logs):
        config = get_active_config()
        trace = captured_logs.events("JOB_CONFIG_TRACE")[-1]
        assert trace["logger"] == "job_kernel.config"
        assert trace["config_set_id"] == "default"
        assert trace["checksum"] == config.checksum
        assert trace["numbering_pad_width"] == 6

    def test_warnings_logged(self, tmp_path, captured_logs):
        _write_set(
            tmp_path, "custom", _base_data(change_orders={"single_open_per_job": False})
        )
        get_active_config("custom", config_dir=tmp_path)
        warnings = captured_logs.events("config_validation_warning")
        assert len(warnings) == 1
        assert "single_open_per_job" in warnings[0]["warning"]


class TestLoader:

    def test_checksum_stable(self, tmp_path):
        data = _base_data(numbering={"pad_width": 5}, retry={"max_attempts": 2})
        first = load_config_set(_write_set(tmp_path, "a", data))
        second = load_config_set(_write_set(tmp_path, "b", dict(reversed(list(data.items())))))
        assert first.checksum == second.checksum == compute_checksum(data)

    def test_checksum_changes_with_content(self):
        assert compute_checksum(_base_data()) != compute_checksum(_base_data(version=2))

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="pad_widht"):
            parse_engine_config(_base_data(numbering={"pad_widht": 4}))

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="mapping"):
            parse_engine_config(_base_data(retry=[1, 2]))

    def test_missing_config_id(self):
        with pytest.raises(KeyError):
            parse_engine_config({"version": 1})

    def test_empty_sections_use_defaults(self):
        config = parse_engine_config(_base_data(numbering=None))
        assert config.numbering == NumberingConfig()


class TestValidator:

    def test_shipped_sets_valid(self):
        for name in available_config_sets():
            result = validate_configuration(get_active_config(name))
            assert result.errors == []

    @pytest.mark.parametrize(
        "numbering, fragment",
        [
            (NumberingConfig(separator="X"), "letters or digits"),
            (NumberingConfig(pad_width=-1), "pad_width"),
            (NumberingConfig(start_value=-5), "start_value"),
            (NumberingConfig(counter_scope="per_customer"), "counter_scope"),
            (NumberingConfig(counter_name=""), "counter_name"),
            (NumberingConfig(separator="", pad_width=0), "pad_width > 0"),
        ],
    )
    def test_numbering_errors(self, numbering, fragment):
        config = EngineConfig(config_id="c", version=1, numbering=numbering)
        result = validate_configuration(config)
        assert not result.is_valid
        assert any(fragment in e for e in result.errors)

    def test_string_flag_rejected(self):
        config = EngineConfig(
            config_id="c", version=1, change_orders=ChangeOrderConfig(allow_direct_approval="false")
        )
        result = validate_configuration(config)
        assert result.errors == [
            "change_orders.allow_direct_approval must be true or false, got 'false'"
        ]

    def test_retry_errors(self):
        config = EngineConfig(
            config_id="c",
            version=1,
            retry=RetryConfig(max_attempts=0, base_delay_seconds=1.0, max_delay_seconds=0.5),
        )
        errors = validate_configuration(config).errors
        assert len(errors) == 2
        assert any("max_attempts" in e for e in errors)
        assert any("must not exceed" in e for e in errors)

    def test_bad_identity(self):
        errors = validate_configuration(EngineConfig(config_id="", version=0)).errors
        assert len(errors) == 2

    def test_overflowing_start_value_warns(self):
        config = EngineConfig(
            config_id="c", version=1, numbering=NumberingConfig(pad_width=3, start_value=999)
        )
        result = validate_configuration(config)
        assert result.is_valid
        assert any("pad_width" in w for w in result.warnings)

    def test_collects_every_error(self):
        config = EngineConfig(
            config_id="c",
            version=1,
            numbering=NumberingConfig(separator="1", counter_scope="x"),
            retry=RetryConfig(max_attempts=0),
        )
        assert len(validate_configuration(config).errors) == 3


class TestRetryConfig:

    @pytest.mark.parametrize(
        "attempt, expected",
        [(0, 0.0), (1, 0.0), (2, 0.02), (3, 0.04), (4, 0.08), (10, 0.5)],
    )
    def test_delay_for(self, attempt, expected):
        assert RetryConfig().delay_for(attempt) == pytest.approx(expected)


class TestBridges:

    def test_numbering_policy(self):
        policy = build_numbering_policy(get_active_config("legacy"))
        assert policy.separator == "-"
        assert policy.start_value == 3000
        assert policy.counter_scope is CounterScope.GLOBAL

    def test_per_type_code_scope(self):
        config = replace(
            get_active_config(), numbering=NumberingConfig(counter_scope="per_type_code")
        )
        assert build_numbering_policy(config).counter_scope is CounterScope.PER_TYPE_CODE

    def test_change_order_policy(self):
        policy = build_change_order_policy(get_active_config("legacy"))
        assert policy.allow_direct_approval is True
        assert policy.single_open_per_job is True
        assert policy.block_on_component_issues is False
