"""
Tests for JobService -- job creation, component seeding and release gating.
"""

from uuid import uuid4

import pytest

from job_kernel.domain.components import ComponentOwner, ComponentSpec, ComponentType
from job_kernel.domain.job_identity import JobClassification, JobStatus, NumberingPolicy
from job_kernel.domain.pathway import Pathway, RoutingType
from job_kernel.exceptions import (
    ComponentValidationError,
    InvalidJobStatusError,
    InvalidJobTypeCodeError,
    JobNotFoundError,
)
from job_kernel.models.job import Job
from job_kernel.services.job_service import JobService


class TestCreateJob:

    def test_envelope_mailing(self, draft_job):
        assert draft_job.base_job_id == "ME2000001"
        assert draft_job.master_seq == 1
        assert draft_job.job_type_code == "ME2"
        assert draft_job.status is JobStatus.DRAFT
        assert draft_job.effective_co_version is None
        assert draft_job.title == "Spring appeal"
        assert draft_job.specs == {"quantity": 5000, "stock": "70# text"}

    def test_seeded_with_suggestions(self, draft_job):
        assert [c.type for c in draft_job.components] == [
            ComponentType.PRINT,
            ComponentType.DATA,
            ComponentType.FINISHING,
            ComponentType.PROOF,
            ComponentType.MAILING,
            ComponentType.SHIPPING,
        ]
        assert [c.sort_order for c in draft_job.components] == list(range(6))
        assert draft_job.components[2].description == "Insert 2 components into envelope"

    def test_master_seq_shared_across_type_codes(self, job_service):
        first = job_service.create_job(JobClassification(job_meta_type="MAILING"))
        second = job_service.create_job(JobClassification(job_meta_type="JOB", job_type="FOLDED"))
        assert (first.base_job_id, second.base_job_id) == ("MS000001", "HJ000002")

    def test_explicit_type_code(self, job_service):
        job = job_service.create_job(JobClassification(), job_type_code="XP")
        assert job.base_job_id == "XP000001"

    def test_invalid_explicit_type_code(self, job_service):
        with pytest.raises(InvalidJobTypeCodeError):
            job_service.create_job(JobClassification(), job_type_code="x-p")

    def test_legacy_numbering(self, session):
        service = JobService(session, NumberingPolicy(separator="-", pad_width=0, start_value=3000))
        job = service.create_job(
            JobClassification(job_meta_type="MAILING", mail_format="ENVELOPE", envelope_components=2)
        )
        assert job.base_job_id == "ME2-3001"

    def test_explicit_components_renumbered(self, job_service):
        job = job_service.create_job(
            JobClassification(),
            components=[
                ComponentSpec(type="PRINT", name="Print", sort_order=5),
                ComponentSpec(type="PROOF", name="Proof", sort_order=9),
            ],
        )
        assert [(c.name, c.sort_order) for c in job.components] == [("Print", 0), ("Proof", 1)]

    def test_empty_component_list_is_kept(self, job_service):
        job = job_service.create_job(JobClassification(), components=[])
        assert job.components == ()

    def test_pathway_p1(self, job_service):
        job = job_service.create_job(JobClassification(), routing_type="BRADFORD_JD")
        assert job.pathway is Pathway.P1
        assert job.routing_type is RoutingType.BRADFORD_JD

    def test_pathway_p2_by_default(self, draft_job):
        assert draft_job.pathway is Pathway.P2

    def test_pathway_p3_from_purchase_orders(self, job_service):
        job = job_service.create_job(
            JobClassification(), purchase_order_vendor_ids=["JD", "LAHLOUH"]
        )
        assert job.pathway is Pathway.P3

    def test_pathway_p3_from_vendor_components(self, job_service):
        job = job_service.create_job(
            JobClassification(),
            components=[
                ComponentSpec(type="PRINT", name="Print", owner="VENDOR", vendor_id="JD"),
                ComponentSpec(type="FINISHING", name="Insert", owner="VENDOR", vendor_id="LAHLOUH"),
                ComponentSpec(type="PROOF", name="Proof"),
            ],
        )
        assert job.pathway is Pathway.P3

    def test_creation_logged(self, job_service, captured_logs):
        job = job_service.create_job(JobClassification(job_meta_type="MAILING", mail_format="POSTCARD"))
        event = captured_logs.events("job_created")[-1]
        assert event["base_job_id"] == job.base_job_id == "MP000001"
        assert event["component_count"] == len(job.components)


class TestAddComponent:

    def test_appended_after_last(self, job_service, draft_job, selector):
        added = job_service.add_component(
            draft_job.id, ComponentSpec(type="SAMPLES", name="Samples")
        )
        assert added.sort_order == 6
        assert added.owner is ComponentOwner.INTERNAL
        assert selector.get_job(draft_job.id).components[-1].id == added.id

    def test_first_component(self, job_service):
        job = job_service.create_job(JobClassification(), components=[])
        added = job_service.add_component(job.id, ComponentSpec(type="PRINT", name="Print"))
        assert added.sort_order == 0
        assert added.artwork_required is True

    def test_unknown_job(self, job_service):
        with pytest.raises(JobNotFoundError):
            job_service.add_component(uuid4(), ComponentSpec(type="PRINT", name="Print"))

    def test_closed_job(self, session, job_service, draft_job):
        session.get(Job, draft_job.id).status = JobStatus.CANCELLED.value
        session.flush()
        with pytest.raises(InvalidJobStatusError):
            job_service.add_component(draft_job.id, ComponentSpec(type="PRINT", name="Print"))


class TestReleaseFromDraft:

    def test_release(self, job_service, draft_job, captured_logs):
        released = job_service.release_from_draft(draft_job.id)
        assert released.status is JobStatus.ACTIVE
        assert captured_logs.events("job_released")

    def test_blocked_without_proof(self, job_service, captured_logs):
        job = job_service.create_job(
            JobClassification(), components=[ComponentSpec(type="PRINT", name="Print")]
        )
        with pytest.raises(ComponentValidationError) as exc_info:
            job_service.release_from_draft(job.id)
        assert exc_info.value.subject_id == job.base_job_id
        blocked = captured_logs.events("job_release_blocked")[-1]
        assert blocked["issues"] == ["MISSING_PROOF"]

    def test_blocked_by_vendor_without_id(self, job_service):
        job = job_service.create_job(
            JobClassification(),
            components=[
                ComponentSpec(type="PRINT", name="Print", owner="VENDOR"),
                ComponentSpec(type="PROOF", name="Proof"),
            ],
        )
        with pytest.raises(ComponentValidationError):
            job_service.release_from_draft(job.id)

    def test_fixed_by_adding_component(self, job_service):
        job = job_service.create_job(
            JobClassification(), components=[ComponentSpec(type="PRINT", name="Print")]
        )
        job_service.add_component(job.id, ComponentSpec(type="PROOF", name="Proof"))
        assert job_service.release_from_draft(job.id).status is JobStatus.ACTIVE

    def test_release_twice(self, job_service, draft_job):
        job_service.release_from_draft(draft_job.id)
        with pytest.raises(InvalidJobStatusError):
            job_service.release_from_draft(draft_job.id)
