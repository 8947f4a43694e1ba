"""
End-to-end tests for JobWorkflowService over committing sessions.

Covers:
- The change order walkthrough: create job, CO1 draft -> pending ->
  approved, CO2 approved, edit of an approved CO refused
- Component suggestion scenarios through the external interface
- Atomicity: a failed operation leaves no trace
- Retry of lost races and retry exhaustion
- Correlation ids and context on every log record of a call
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from job_config.schema import RetryConfig
from job_kernel.domain.change_order import ChangeOrderStatus
from job_kernel.domain.components import ComponentSpec, ComponentType, IssueCode
from job_kernel.domain.job_identity import JobClassification, JobStatus
from job_kernel.exceptions import (
    ComponentValidationError,
    ImmutableRecordError,
    InvalidTransitionError,
    JobNotFoundError,
    OpenChangeOrderExistsError,
    SequenceConflictError,
)
from job_kernel.services.change_order_state_machine import ChangeOrderStateMachine
from job_services.job_workflow import JobWorkflowService, build_job_workflow


@pytest.fixture
def bk_job(workflow):
    return workflow.create_job(
        JobClassification(job_meta_type="JOB", job_type="FLAT"),
        job_type_code="BK",
        specs={"quantity": 5000},
    )


class TestChangeOrderWalkthrough:

    def test_create_job_allocates_identifiers(self, bk_job):
        assert bk_job.base_job_id == "BK000001"
        assert bk_job.master_seq == 1
        assert bk_job.effective_co_version is None

    def test_first_change_order_approved(self, workflow, bk_job):
        co1 = workflow.create_change_order(bk_job.id, "Qty 5k -> 6k", {"spec_changes": {"quantity": 6000}})
        assert co1.version == 1
        assert co1.change_order_no == "BK000001-CO1"
        assert co1.status is ChangeOrderStatus.DRAFT

        pending = workflow.submit_for_approval(co1.id)
        assert pending.status is ChangeOrderStatus.PENDING_APPROVAL

        result = workflow.approve(co1.id, approver_id="u1")
        assert result.change_order.status is ChangeOrderStatus.APPROVED
        assert result.change_order.approved_by == "u1"
        assert result.job.effective_co_version == 1
        assert workflow.get_job(bk_job.id).effective_co_version == 1

    def test_second_change_order_moves_pointer(self, workflow, bk_job):
        co1 = workflow.create_change_order(bk_job.id, "first")
        workflow.submit_for_approval(co1.id)
        workflow.approve(co1.id, "u1")

        co2 = workflow.create_change_order(bk_job.id, "second")
        assert co2.version == 2
        assert co2.change_order_no == "BK000001-CO2"

        result = workflow.approve(co2.id, "u1")
        assert result.job.effective_co_version == 2

    def test_approved_change_order_cannot_be_edited(self, workflow, bk_job):
        co1 = workflow.create_change_order(bk_job.id, "original")
        workflow.submit_for_approval(co1.id)
        workflow.approve(co1.id, "u1")

        with pytest.raises(ImmutableRecordError):
            workflow.update_draft(co1.id, {"summary": "edited"})

        assert workflow.get_change_order(co1.id).summary == "original"

    def test_history_and_effective_state(self, workflow, bk_job):
        co1 = workflow.create_change_order(bk_job.id, "qty", {"spec_changes": {"quantity": 6000}})
        workflow.approve(co1.id, "u1")
        co2 = workflow.create_change_order(bk_job.id, "qty again", {"spec_changes": {"quantity": 1}})
        workflow.submit_for_approval(co2.id)
        workflow.reject(co2.id, "customer changed mind", actor_id="u2")
        workflow.create_change_order(bk_job.id, "pending")

        assert [co.version for co in workflow.list_change_orders(bk_job.id)] == [3, 2, 1]
        state = workflow.get_effective_state(bk_job.id)
        assert state.effective_specs == {"quantity": 6000}
        assert state.effective_co_version == 1
        assert workflow.verify_invariants(bk_job.id) == []

    def test_withdraw_edit_resubmit(self, workflow, bk_job):
        co = workflow.create_change_order(bk_job.id, "first try")
        workflow.submit_for_approval(co.id)
        with pytest.raises(InvalidTransitionError):
            workflow.update_draft(co.id, {"summary": "second try"})

        workflow.withdraw(co.id)
        workflow.update_draft(co.id, {"summary": "second try"})
        workflow.submit_for_approval(co.id)
        result = workflow.approve(co.id, "u1")
        assert result.change_order.summary == "second try"
        assert result.change_order.version == 1

    def test_discard_draft(self, workflow, bk_job):
        co = workflow.create_change_order(bk_job.id, "never mind")
        workflow.discard_draft(co.id)
        assert workflow.list_change_orders(bk_job.id) == []
        assert workflow.create_change_order(bk_job.id, "again").version == 1

    def test_find_job(self, workflow, bk_job):
        assert workflow.find_job("BK000001").id == bk_job.id
        assert workflow.find_job("BK999999") is None

    def test_release_job(self, workflow, bk_job):
        assert workflow.release_job(bk_job.id).status is JobStatus.ACTIVE

    def test_add_component_then_release(self, workflow):
        job = workflow.create_job(
            JobClassification(), components=[ComponentSpec(type="PRINT", name="Print")]
        )
        with pytest.raises(ComponentValidationError):
            workflow.release_job(job.id)
        workflow.add_component(job.id, ComponentSpec(type="PROOF", name="Proof"))
        assert workflow.release_job(job.id).status is JobStatus.ACTIVE


class TestComponentOperations:

    def test_envelope_mailing_suggestions(self, workflow):
        suggestions = workflow.suggest_components(
            JobClassification(job_meta_type="MAILING", mail_format="ENVELOPE", envelope_components=3)
        )
        assert [s.type for s in suggestions] == [
            ComponentType.PRINT,
            ComponentType.DATA,
            ComponentType.FINISHING,
            ComponentType.PROOF,
            ComponentType.MAILING,
            ComponentType.SHIPPING,
        ]
        assert "3 components" in suggestions[2].description
        assert "mail facility" in suggestions[-1].description

    def test_booklet_plus_cover_suggestions(self, workflow):
        suggestions = workflow.suggest_components(
            JobClassification(job_meta_type="JOB", job_type="BOOKLET_PLUS_COVER")
        )
        assert [s.type for s in suggestions] == [
            ComponentType.PRINT,
            ComponentType.BINDERY,
            ComponentType.PROOF,
            ComponentType.SHIPPING,
        ]
        assert suggestions[1].description == "Saddle stitch with separate cover"
        assert "customer" in suggestions[-1].description

    def test_validate_components(self, workflow):
        issues = workflow.validate_components([{"type": "PRINT", "owner": "VENDOR"}])
        assert [i.code for i in issues] == [IssueCode.MISSING_PROOF, IssueCode.VENDOR_ID_MISSING]


class TestAtomicity:

    def test_failed_create_leaves_no_change_order(self, workflow, bk_job):
        workflow.create_change_order(bk_job.id, "open")
        with pytest.raises(OpenChangeOrderExistsError):
            workflow.create_change_order(bk_job.id, "second open")
        assert len(workflow.list_change_orders(bk_job.id)) == 1

    def test_failed_approval_leaves_pointer(self, workflow, bk_job):
        co = workflow.create_change_order(
            bk_job.id, "bad components", {"components": [{"type": "PRINT", "name": "Print"}]}
        )
        with pytest.raises(ComponentValidationError):
            workflow.approve(co.id, "u1")
        assert workflow.get_change_order(co.id).status is ChangeOrderStatus.DRAFT
        assert workflow.get_job(bk_job.id).effective_co_version is None

    def test_unknown_job(self, workflow):
        with pytest.raises(JobNotFoundError):
            workflow.create_change_order(uuid4(), "orphan")


class TestRetry:

    def test_lost_race_is_retried(self, workflow, bk_job, monkeypatch, captured_logs):
        original = ChangeOrderStateMachine.create
        calls = {"n": 0}

        def flaky_create(self, *args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise SequenceConflictError(f"change_order_version:{bk_job.id}", "lost race")
            return original(self, *args, **kwargs)

        monkeypatch.setattr(ChangeOrderStateMachine, "create", flaky_create)

        co = workflow.create_change_order(bk_job.id, "retried")

        assert co.version == 1
        assert calls["n"] == 2
        retry = captured_logs.events("transaction_retry")
        assert len(retry) == 1
        assert retry[0]["operation"] == "create_change_order"
        assert retry[0]["attempt"] == 1

    def test_database_lock_is_retried(self, workflow, bk_job, monkeypatch):
        original = ChangeOrderStateMachine.submit
        calls = {"n": 0}

        def locked_submit(self, change_order_id):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("UPDATE change_orders", {}, Exception("database is locked"))
            return original(self, change_order_id)

        co = workflow.create_change_order(bk_job.id, "x")
        monkeypatch.setattr(ChangeOrderStateMachine, "submit", locked_submit)

        assert workflow.submit_for_approval(co.id).status is ChangeOrderStatus.PENDING_APPROVAL
        assert calls["n"] == 2

    def test_non_conflict_database_error_not_retried(self, workflow, bk_job, monkeypatch):
        calls = {"n": 0}

        def broken_submit(self, change_order_id):
            calls["n"] += 1
            raise IntegrityError("UPDATE change_orders", {}, Exception("FOREIGN KEY constraint failed"))

        co = workflow.create_change_order(bk_job.id, "x")
        monkeypatch.setattr(ChangeOrderStateMachine, "submit", broken_submit)

        with pytest.raises(IntegrityError):
            workflow.submit_for_approval(co.id)
        assert calls["n"] == 1

    def test_retry_exhausted(self, session_factory, deterministic_clock, monkeypatch, captured_logs):
        delays = []
        workflow = JobWorkflowService(
            session_factory,
            clock=deterministic_clock,
            retry=RetryConfig(max_attempts=3, base_delay_seconds=0.01, max_delay_seconds=0.015),
            sleep=delays.append,
        )
        job = workflow.create_job(JobClassification())

        def always_conflict(self, *args, **kwargs):
            raise SequenceConflictError("change_order_version", "lost race")

        monkeypatch.setattr(ChangeOrderStateMachine, "create", always_conflict)

        with pytest.raises(SequenceConflictError):
            workflow.create_change_order(job.id, "never lands")

        assert delays == [0.01, 0.015]
        assert len(captured_logs.events("transaction_retry")) == 3
        assert captured_logs.events("transaction_retry_exhausted")
        assert workflow.list_change_orders(job.id) == []


class TestLogContext:

    def test_every_record_of_a_call_shares_a_correlation_id(self, workflow, bk_job, captured_logs):
        captured_logs.clear()
        co = workflow.create_change_order(bk_job.id, "traced", actor_id="u7")

        created = captured_logs.events("change_order_created")[-1]
        correlation_id = created["correlation_id"]
        records = captured_logs.query_by_correlation_id(correlation_id)
        assert {r["message"] for r in records} >= {
            "change_order_version_allocated",
            "change_order_created",
        }
        assert all(r["actor_id"] == "u7" for r in records)
        assert all(r["job_id"] == str(bk_job.id) for r in records)

        workflow.submit_for_approval(co.id)
        submitted = captured_logs.events("change_order_submitted")[-1]
        assert submitted["correlation_id"] != correlation_id
        assert submitted["change_order_id"] == str(co.id)


class TestBuildFromConfig:

    def test_legacy_numbering(self, session_factory, deterministic_clock):
        workflow = build_job_workflow(
            "legacy", session_factory=session_factory, clock=deterministic_clock
        )
        job = workflow.create_job(
            JobClassification(job_meta_type="MAILING", mail_format="ENVELOPE", envelope_components=2)
        )
        assert job.base_job_id == "ME2-3001"
        assert workflow.verify_invariants(job.id) == []

    def test_default_set(self, session_factory):
        workflow = build_job_workflow(session_factory=session_factory)
        assert workflow.numbering_policy.pad_width == 6
        assert workflow.change_order_policy.single_open_per_job is True
