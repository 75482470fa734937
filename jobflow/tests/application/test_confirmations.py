"""Integration tests for the dual confirmation pipeline."""

from decimal import Decimal

import pytest

from jobflow.domain.jobs.value_objects import JobStatus
from jobflow.domain.shared.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    PreconditionError,
)
from jobflow.infrastructure.events import NotificationKind
from jobflow.tests.factories import (
    ADMIN,
    SERVICE_ADMIN,
    STORE_ADMIN,
    SUPERVISOR,
    TECHNICIAN,
)

PARTS = [("P-100", 2, "45.50"), ("P-200", 1, "12.00")]


@pytest.fixture
def job_with_parts(workflow):
    return workflow.awaiting_finalization(parts=PARTS)


class TestPartsGate:
    def test_job_confirmation_waits_for_parts(self, services, job_with_parts):
        with pytest.raises(PreconditionError) as exc_info:
            services.confirmations.confirm_job(job_with_parts.id, SERVICE_ADMIN)

        assert exc_info.value.missing_items == ["parts_confirmation"]
        stored = services.jobs.get_job(job_with_parts.id)
        assert stored.status == JobStatus.AWAITING_FINALIZATION
        assert stored.job_confirmed_at is None

    def test_parts_then_job(self, services, job_with_parts):
        services.confirmations.confirm_parts(job_with_parts.id, STORE_ADMIN, "Issued from van")
        job = services.confirmations.confirm_job(job_with_parts.id, SERVICE_ADMIN)

        assert job.status == JobStatus.COMPLETED
        assert job.parts_total == Decimal("103.00")
        assert job.parts_confirmed_by_id == STORE_ADMIN.id
        assert job.job_confirmed_by_id == SERVICE_ADMIN.id

    def test_admin_may_confirm_both_gates(self, services, job_with_parts):
        services.confirmations.confirm_parts(job_with_parts.id, ADMIN)
        job = services.confirmations.confirm_job(job_with_parts.id, ADMIN)
        assert job.status == JobStatus.COMPLETED

    def test_supervisor_cannot_confirm(self, services, job_with_parts):
        with pytest.raises(AuthorizationError):
            services.confirmations.confirm_parts(job_with_parts.id, SUPERVISOR)
        with pytest.raises(AuthorizationError):
            services.confirmations.confirm_job(job_with_parts.id, SUPERVISOR)

    def test_parts_confirmed_once(self, services, job_with_parts):
        services.confirmations.confirm_parts(job_with_parts.id, STORE_ADMIN)
        with pytest.raises(ConflictError):
            services.confirmations.confirm_parts(job_with_parts.id, STORE_ADMIN)

    def test_skip_requires_no_parts(self, services, job_with_parts):
        with pytest.raises(PreconditionError):
            services.confirmations.skip_parts_confirmation(job_with_parts.id, STORE_ADMIN)

    def test_confirmed_job_is_closed(self, services, workflow):
        job = workflow.awaiting_finalization()
        services.confirmations.confirm_job(job.id, SERVICE_ADMIN)

        with pytest.raises(InvalidTransitionError):
            services.confirmations.confirm_job(job.id, SERVICE_ADMIN)

    def test_gates_require_awaiting_finalization(self, services, workflow):
        job = workflow.in_progress()
        with pytest.raises(PreconditionError):
            services.confirmations.skip_parts_confirmation(job.id, STORE_ADMIN)


class TestRejection:
    def test_rejected_parts_notify_technician(self, services, job_with_parts, gateway):
        job = services.confirmations.reject_parts(
            job_with_parts.id, "Quantity of P-100 is wrong", STORE_ADMIN
        )

        assert job.status == JobStatus.AWAITING_FINALIZATION
        assert job.parts_rejection_reason == "Quantity of P-100 is wrong"
        sent = gateway.for_user(TECHNICIAN.id)
        assert sent[-1].kind == NotificationKind.CONFIRMATION_REJECTED
        assert sent[-1].title == "Parts Confirmation Rejected"

    def test_job_rejection_leaves_parts_gate(self, services, job_with_parts):
        services.confirmations.confirm_parts(job_with_parts.id, STORE_ADMIN)

        job = services.confirmations.reject_job(
            job_with_parts.id, "Report is empty", SERVICE_ADMIN
        )

        assert job.parts_confirmed_at is not None
        assert job.job_rejection_reason == "Report is empty"

    def test_fix_and_resubmit(self, services, job_with_parts):
        services.confirmations.reject_parts(job_with_parts.id, "Wrong part", STORE_ADMIN)
        job = services.jobs.get_job(job_with_parts.id)
        wrong = next(p for p in job.parts_used if p.part_id == "P-200")

        services.jobs.remove_part(job.id, wrong.id, TECHNICIAN)
        job = services.confirmations.resubmit_for_confirmation(
            job.id, TECHNICIAN, "Removed P-200"
        )

        assert not job.has_outstanding_rejection
        assert [p.part_id for p in job.parts_used] == ["P-100"]

    def test_resubmit_without_rejection(self, services, job_with_parts):
        with pytest.raises(PreconditionError):
            services.confirmations.resubmit_for_confirmation(job_with_parts.id, TECHNICIAN)

    def test_cannot_reject_confirmed_parts(self, services, job_with_parts):
        services.confirmations.confirm_parts(job_with_parts.id, STORE_ADMIN)
        with pytest.raises(ConflictError):
            services.confirmations.reject_parts(job_with_parts.id, "Too late", STORE_ADMIN)


class TestQueues:
    def test_queues_follow_gate_state(self, services, workflow, job_with_parts):
        no_parts = workflow.awaiting_finalization(title="Oil change")
        rejected = workflow.awaiting_finalization(parts=[("P-300", 1, "5")], title="Horn")
        services.confirmations.reject_parts(rejected.id, "No such part", STORE_ADMIN)

        parts_queue = {j.id for j in services.confirmations.pending_parts_confirmations()}
        job_queue = {j.id for j in services.confirmations.pending_job_confirmations()}
        rejected_queue = {j.id for j in services.confirmations.rejected_confirmations()}

        assert parts_queue == {job_with_parts.id}
        assert job_queue == {no_parts.id}
        assert rejected_queue == {rejected.id}

    def test_confirmed_parts_move_to_job_queue(self, services, job_with_parts):
        services.confirmations.confirm_parts(job_with_parts.id, STORE_ADMIN)

        assert services.confirmations.pending_parts_confirmations() == []
        assert [j.id for j in services.confirmations.pending_job_confirmations()] == [
            job_with_parts.id
        ]
