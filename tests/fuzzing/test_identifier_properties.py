"""
Property-based tests for the pure identity and component layer.

Hypothesis generates classifications, numbering inputs and spec change
payloads; each test states a property that must hold for all of them.
"""

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from job_kernel.domain.change_order import ChangeSet
from job_kernel.domain.components import ComponentType, suggest_components, validate_components
from job_kernel.domain.job_identity import (
    JobClassification,
    JobMetaType,
    JobType,
    MailFormat,
    NumberingPolicy,
    derive_job_type_code,
    format_change_order_no,
    parse_base_job_id,
    parse_change_order_no,
    validate_job_type_code,
)

classifications = st.builds(
    JobClassification,
    job_meta_type=st.none() | st.sampled_from(list(JobMetaType)),
    mail_format=st.none() | st.sampled_from(list(MailFormat)),
    job_type=st.none() | st.sampled_from(list(JobType)),
    envelope_components=st.none() | st.integers(min_value=0, max_value=12),
    has_samples=st.booleans(),
    has_data=st.booleans(),
    has_versions=st.booleans(),
)

type_codes = st.from_regex(r"\A[A-Z]{1,3}[0-9]{0,2}\Z", fullmatch=True)

json_scalars = st.none() | st.booleans() | st.integers() | st.text(max_size=20)
json_values = st.recursive(
    json_scalars,
    lambda children: st.lists(children, max_size=4)
    | st.dictionaries(st.text(min_size=1, max_size=8), children, max_size=4),
    max_leaves=10,
)
field_names = st.text(min_size=1, max_size=12).filter(lambda s: s.strip())
spec_dicts = st.dictionaries(field_names, json_values, max_size=6)


class TestSuggestionProperties:

    @given(classification=classifications)
    @settings(max_examples=200)
    def test_suggestions_always_pass_validation(self, classification):
        suggestions = suggest_components(classification)
        assert validate_components(suggestions) == []

    @given(classification=classifications)
    @settings(max_examples=200)
    def test_print_first_shipping_last(self, classification):
        suggestions = suggest_components(classification)
        assert suggestions[0].type is ComponentType.PRINT
        assert suggestions[-1].type is ComponentType.SHIPPING
        assert [s.sort_order for s in suggestions] == list(range(len(suggestions)))
        assert len({s.type for s in suggestions}) == len(suggestions)

    @given(classification=classifications)
    @settings(max_examples=200)
    def test_derived_code_is_well_formed(self, classification):
        code = derive_job_type_code(classification)
        assert validate_job_type_code(code) == code


class TestNumberingProperties:

    @given(code=type_codes, seq=st.integers(min_value=1, max_value=999_999))
    @settings(max_examples=300)
    def test_default_format_parses_back(self, code, seq):
        policy = NumberingPolicy()
        parsed = parse_base_job_id(policy.format_base_job_id(code, seq), policy)
        assert (parsed.job_type_code, parsed.master_seq) == (code, seq)

    @given(
        code=type_codes,
        seq=st.integers(min_value=1, max_value=10**9),
        separator=st.sampled_from(["-", "_", "/", "."]),
        pad_width=st.integers(min_value=0, max_value=8),
    )
    @settings(max_examples=300, suppress_health_check=[HealthCheck.too_slow])
    def test_separated_format_parses_back(self, code, seq, separator, pad_width):
        policy = NumberingPolicy(separator=separator, pad_width=pad_width)
        parsed = parse_base_job_id(policy.format_base_job_id(code, seq), policy)
        assert (parsed.job_type_code, parsed.master_seq) == (code, seq)

    @given(code=type_codes, seq=st.integers(min_value=1, max_value=999_999),
           version=st.integers(min_value=1, max_value=10_000))
    @settings(max_examples=200)
    def test_change_order_no_parses_back(self, code, seq, version):
        base_job_id = NumberingPolicy().format_base_job_id(code, seq)
        parsed = parse_change_order_no(format_change_order_no(base_job_id, version))
        assert (parsed.base_job_id, parsed.version) == (base_job_id, version)


class TestChangeSetProperties:

    @given(base=spec_dicts, changes=spec_dicts)
    @settings(max_examples=200)
    def test_apply_overrides_and_keeps(self, base, changes):
        change_set = ChangeSet.from_payload({"spec_changes": changes})
        merged = change_set.apply_to(base)

        assert set(merged) == set(base) | set(changes)
        for key, value in changes.items():
            assert merged[key] == value
        for key in set(base) - set(changes):
            assert merged[key] == base[key]

    @given(changes=spec_dicts)
    @settings(max_examples=100)
    def test_frozen_payload_is_read_only(self, changes):
        change_set = ChangeSet.from_payload({"spec_changes": changes})
        with pytest.raises(TypeError):
            change_set.spec_changes["new-field"] = 1
        assert change_set.to_payload()["spec_changes"] == changes
