"""
Tests for ChangeOrderSelector -- listing, effective state and the
invariant audit over a job's change order history.
"""

from uuid import uuid4

import pytest

from job_kernel.domain.components import ComponentSpec, ComponentType
from job_kernel.domain.job_identity import DEFAULT_NUMBERING_POLICY, NumberingPolicy
from job_kernel.exceptions import ChangeOrderNotFoundError, JobNotFoundError
from job_kernel.invariants import KernelInvariant
from job_kernel.models.change_order import ChangeOrder
from job_kernel.models.job import Job

APPROVER_ID = "approver-1"


def _approve(state_machine, job_id, summary, changes=None):
    co = state_machine.create(job_id, summary, changes)
    state_machine.submit(co.id)
    return state_machine.approve(co.id, APPROVER_ID).change_order


class TestReads:

    def test_get_job(self, selector, draft_job):
        assert selector.get_job(draft_job.id).base_job_id == draft_job.base_job_id

    def test_get_job_unknown(self, selector):
        with pytest.raises(JobNotFoundError):
            selector.get_job(uuid4())

    def test_find_job_by_base_id(self, selector, draft_job):
        assert selector.find_job_by_base_id(draft_job.base_job_id).id == draft_job.id
        assert selector.find_job_by_base_id("ZZ999999") is None

    def test_get_change_order(self, selector, state_machine, draft_job):
        co = state_machine.create(draft_job.id, "x")
        assert selector.get(co.id).change_order_no == co.change_order_no

    def test_get_change_order_unknown(self, selector):
        with pytest.raises(ChangeOrderNotFoundError):
            selector.get(uuid4())

    def test_list_newest_first(self, selector, state_machine, draft_job):
        _approve(state_machine, draft_job.id, "one")
        _approve(state_machine, draft_job.id, "two")
        state_machine.create(draft_job.id, "three")

        listed = selector.list_for_job(draft_job.id)
        assert [co.version for co in listed] == [3, 2, 1]
        assert [co.summary for co in listed] == ["three", "two", "one"]

    def test_list_for_unknown_job(self, selector):
        with pytest.raises(JobNotFoundError):
            selector.list_for_job(uuid4())

    def test_list_empty(self, selector, draft_job):
        assert selector.list_for_job(draft_job.id) == []


class TestEffectiveState:

    def test_no_change_orders(self, selector, draft_job):
        state = selector.effective_state(draft_job.id)
        assert state.effective_co_version is None
        assert state.effective_specs == draft_job.specs
        assert state.latest_approved is None
        assert state.applied_count == 0
        assert state.effective_components
        assert all(isinstance(c, ComponentSpec) for c in state.effective_components)
        assert [c.type for c in state.effective_components] == [
            c.type for c in draft_job.components
        ]

    def test_approved_changes_applied_in_version_order(self, selector, state_machine, draft_job):
        _approve(state_machine, draft_job.id, "qty", {"spec_changes": {"quantity": 6000}})
        _approve(
            state_machine,
            draft_job.id,
            "qty and stock",
            {"spec_changes": {"quantity": 7000, "stock": "80# text"}},
        )

        state = selector.effective_state(draft_job.id)
        assert state.effective_co_version == 2
        assert state.effective_specs == {"quantity": 7000, "stock": "80# text"}
        assert state.base_specs == {"quantity": 5000, "stock": "70# text"}
        assert state.latest_approved.version == 2
        assert state.applied_count == 2

    def test_rejected_and_open_changes_ignored(self, selector, state_machine, draft_job):
        _approve(state_machine, draft_job.id, "qty", {"spec_changes": {"quantity": 6000}})
        rejected = state_machine.create(draft_job.id, "no", {"spec_changes": {"quantity": 1}})
        state_machine.submit(rejected.id)
        state_machine.reject(rejected.id, "declined")
        state_machine.create(draft_job.id, "pending", {"spec_changes": {"quantity": 2}})

        state = selector.effective_state(draft_job.id)
        assert state.effective_specs["quantity"] == 6000
        assert state.applied_count == 1

    def test_component_replacement(self, selector, state_machine, draft_job):
        _approve(
            state_machine,
            draft_job.id,
            "simplify",
            {
                "components": [
                    {"type": "PRINT", "name": "Print"},
                    {"type": "PROOF", "name": "Proof"},
                ]
            },
        )
        _approve(state_machine, draft_job.id, "qty only", {"spec_changes": {"quantity": 1}})

        state = selector.effective_state(draft_job.id)
        assert all(isinstance(c, ComponentSpec) for c in state.effective_components)
        assert [c.type for c in state.effective_components] == [
            ComponentType.PRINT,
            ComponentType.PROOF,
        ]


class TestVerifyInvariants:

    def test_consistent_history(self, selector, state_machine, draft_job):
        _approve(state_machine, draft_job.id, "one")
        co = state_machine.create(draft_job.id, "two")
        state_machine.submit(co.id)
        state_machine.reject(co.id, "no")

        assert selector.verify_invariants(draft_job.id, DEFAULT_NUMBERING_POLICY) == []

    def test_detects_version_gap(self, session, selector, draft_job):
        session.add(
            ChangeOrder(
                job_id=draft_job.id,
                version=2,
                change_order_no=f"{draft_job.base_job_id}-CO2",
                summary="inserted behind the allocator",
                changes={"spec_changes": {}, "components": None},
                status="DRAFT",
                affects_vendors=[],
            )
        )
        session.flush()

        violations = selector.verify_invariants(draft_job.id)
        assert [v.invariant for v in violations] == [KernelInvariant.VERSION_CONTIGUITY]
        assert "missing=[1]" in violations[0].message

    def test_detects_wrong_change_order_no(self, session, selector, draft_job):
        session.add(
            ChangeOrder(
                job_id=draft_job.id,
                version=1,
                change_order_no="WRONG-CO1",
                summary="bad number",
                changes={"spec_changes": {}, "components": None},
                status="DRAFT",
                affects_vendors=[],
            )
        )
        session.flush()

        violations = selector.verify_invariants(draft_job.id)
        assert [v.invariant for v in violations] == [
            KernelInvariant.CHANGE_ORDER_NUMBER_DERIVATION
        ]
        assert violations[0].change_order_id is not None

    def test_detects_stale_pointer(self, session, selector, state_machine, draft_job):
        _approve(state_machine, draft_job.id, "one")
        session.get(Job, draft_job.id).effective_co_version = None
        session.flush()

        violations = selector.verify_invariants(draft_job.id)
        assert [v.invariant for v in violations] == [
            KernelInvariant.EFFECTIVE_VERSION_CONSISTENCY
        ]

    def test_detects_identity_mismatch_under_other_policy(self, selector, draft_job):
        legacy = NumberingPolicy(separator="-", pad_width=0)
        violations = selector.verify_invariants(draft_job.id, legacy)
        assert [v.invariant for v in violations] == [KernelInvariant.JOB_IDENTITY_STABILITY]
