"""Tests for mid-job requests and meter reading amendments."""

from uuid import uuid4

import pytest

from jobflow.domain.jobs.entities import HourmeterAmendment, JobRequest
from jobflow.domain.jobs.events import AmendmentProposed, AmendmentResolved, RequestCreated
from jobflow.domain.jobs.value_objects import (
    AmendmentStatus,
    HourmeterFlagReason,
    JobStatus,
    RequestStatus,
    RequestType,
)
from jobflow.domain.shared.exceptions import (
    AuthorizationError,
    ConflictError,
    PreconditionError,
    ValidationError,
)
from jobflow.tests.factories import (
    ACCOUNTANT,
    NOW,
    OTHER_TECHNICIAN,
    SERVICE_ADMIN,
    STORE_ADMIN,
    SUPERVISOR,
    TECHNICIAN,
    JobFactory,
)


def spare_part_request(**kwargs) -> JobRequest:
    request = JobRequest.create(
        uuid4(), RequestType.SPARE_PART, "Need a new lift chain", TECHNICIAN, now=NOW, **kwargs
    )
    request.clear_domain_events()
    return request


class TestJobRequest:
    def test_create_pending_request(self):
        request = JobRequest.create(
            uuid4(), "assistance", "Need a second pair of hands", TECHNICIAN, now=NOW
        )

        assert request.status == RequestStatus.PENDING
        assert request.request_type == RequestType.ASSISTANCE
        assert request.requested_by_id == TECHNICIAN.id
        assert [type(e) for e in request.get_domain_events()] == [RequestCreated]

    def test_description_required(self):
        with pytest.raises(ValidationError):
            JobRequest.create(uuid4(), RequestType.SPARE_PART, "  ", TECHNICIAN)

    def test_approver_roles_depend_on_type(self):
        request = spare_part_request()

        with pytest.raises(AuthorizationError):
            request.approve(SUPERVISOR, now=NOW)

        request.approve(STORE_ADMIN, part_id="P-7", quantity=1, now=NOW)
        assert request.status == RequestStatus.APPROVED
        assert request.response_part_id == "P-7"
        assert request.resolved_by_id == STORE_ADMIN.id

    def test_supervisor_approves_assistance(self):
        request = JobRequest.create(
            uuid4(), RequestType.ASSISTANCE, "Heavy lift", TECHNICIAN, now=NOW
        )
        request.approve(SUPERVISOR, helper_id=OTHER_TECHNICIAN.id, now=NOW)
        assert request.response_helper_id == OTHER_TECHNICIAN.id

    def test_resolution_is_final(self):
        request = spare_part_request()
        request.reject(STORE_ADMIN, "Out of stock", NOW)

        with pytest.raises(ConflictError):
            request.approve(STORE_ADMIN, now=NOW)
        assert request.status == RequestStatus.REJECTED
        assert request.resolution_notes == "Out of stock"

    def test_reject_requires_notes(self):
        request = spare_part_request()
        with pytest.raises(ValidationError):
            request.reject(STORE_ADMIN, "", NOW)
        assert request.status == RequestStatus.PENDING

    def test_only_requester_edits_pending_request(self):
        request = spare_part_request()

        request.update(TECHNICIAN, description="Need two lift chains", now=NOW)
        assert request.description == "Need two lift chains"

        with pytest.raises(AuthorizationError):
            request.update(OTHER_TECHNICIAN, description="Mine now")

    def test_resolved_request_cannot_be_edited(self):
        request = spare_part_request()
        request.approve(STORE_ADMIN, now=NOW)

        with pytest.raises(AuthorizationError):
            request.update(TECHNICIAN, description="Changed my mind")


class TestHourmeterAmendment:
    def test_propose_against_flagged_job(self):
        job = JobFactory.flagged(uuid4(), reading=900, previous=1000)

        amendment = HourmeterAmendment.propose(job, 1009, "Typo on the keypad", TECHNICIAN, NOW)

        assert amendment.status == AmendmentStatus.PENDING
        assert amendment.original_reading == 900
        assert amendment.amended_reading == 1009
        assert amendment.forklift_id == job.forklift_id
        assert amendment.flag_reasons_at_time == [HourmeterFlagReason.LOWER_THAN_PREVIOUS]
        assert isinstance(amendment.get_domain_events()[0], AmendmentProposed)

    def test_unflagged_job_cannot_be_amended(self):
        job = JobFactory.create(JobStatus.IN_PROGRESS)
        with pytest.raises(PreconditionError):
            HourmeterAmendment.propose(job, 10, "Wrong", TECHNICIAN, NOW)

    def test_stranger_cannot_propose(self):
        job = JobFactory.flagged(uuid4())
        with pytest.raises(AuthorizationError):
            HourmeterAmendment.propose(job, 1001, "Wrong", OTHER_TECHNICIAN, NOW)

    def test_negative_amended_reading(self):
        job = JobFactory.flagged(uuid4())
        with pytest.raises(ValidationError):
            HourmeterAmendment.propose(job, -1, "Wrong", TECHNICIAN, NOW)

    def test_review_is_once_only(self):
        job = JobFactory.flagged(uuid4())
        amendment = HourmeterAmendment.propose(job, 1001, "Wrong", TECHNICIAN, NOW)

        amendment.approve(SERVICE_ADMIN, "Checked photo", NOW)

        assert amendment.status == AmendmentStatus.APPROVED
        assert amendment.archived_at == NOW
        resolved = amendment.get_domain_events()[-1]
        assert isinstance(resolved, AmendmentResolved)
        assert resolved.approved is True
        with pytest.raises(ConflictError):
            amendment.reject(SERVICE_ADMIN, "Changed my mind", NOW)

    def test_only_service_admins_review(self):
        job = JobFactory.flagged(uuid4())
        amendment = HourmeterAmendment.propose(job, 1001, "Wrong", TECHNICIAN, NOW)

        for actor in (SUPERVISOR, STORE_ADMIN, ACCOUNTANT, TECHNICIAN):
            with pytest.raises(AuthorizationError):
                amendment.approve(actor, now=NOW)
        assert amendment.status == AmendmentStatus.PENDING

    def test_withdraw_closes_pending_amendment(self):
        job = JobFactory.flagged(uuid4())
        amendment = HourmeterAmendment.propose(job, 1001, "Wrong", TECHNICIAN, NOW)

        amendment.withdraw("Duplicate job", SUPERVISOR, NOW)

        assert amendment.status == AmendmentStatus.REJECTED
        assert amendment.review_notes == "Job cancelled: Duplicate job"
        assert amendment.get_domain_events()[-1].approved is False
        with pytest.raises(ConflictError):
            amendment.approve(SERVICE_ADMIN, now=NOW)

    def test_cancelled_job_cannot_be_amended(self):
        job = JobFactory.flagged(uuid4())
        job.cancel("Duplicate job", SUPERVISOR, NOW)

        with pytest.raises(PreconditionError):
            HourmeterAmendment.propose(job, 1001, "Wrong", TECHNICIAN, NOW)
        with pytest.raises(PreconditionError):
            job.apply_amended_reading(uuid4(), 1001, SERVICE_ADMIN, NOW)
        assert job.hourmeter_reading == 900
