"""
Integration tests for the job lifecycle service.

Jobs are driven through the services against an in-memory store, so every
intent goes through the lock, the version check, the commit and post-commit
publishing.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from jobflow.application.services import build_services
from jobflow.domain.jobs.events import JobStatusChanged
from jobflow.domain.jobs.value_objects import (
    MANDATORY_CHECKLIST_ITEMS,
    HourmeterFlagReason,
    JobStatus,
    JobType,
    UserRole,
    VerificationType,
)
from jobflow.domain.shared.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from jobflow.infrastructure.events import NotificationGateway, NotificationKind
from jobflow.infrastructure.persistence import store_uow_factory
from jobflow.tests.factories import (
    FULL_CHECKLIST,
    OTHER_TECHNICIAN,
    SERVICE_ADMIN,
    STORE_ADMIN,
    SUPERVISOR,
    TECHNICIAN,
)


class ExplodingGateway(NotificationGateway):
    def send(self, notification):
        raise RuntimeError("SMTP relay unreachable")


class TestCreateJob:
    def test_create_job(self, services):
        job = services.jobs.create_job(
            "Annual LOLER inspection", SUPERVISOR, job_type="checking", customer_id="cust-7"
        )

        stored = services.jobs.get_job(job.id)
        assert stored.status == JobStatus.NEW
        assert stored.job_type == JobType.CHECKING
        assert stored.version == 1
        assert stored.sla_target_minutes is None

    def test_slot_in_job_gets_configured_sla(self, services):
        job = services.jobs.create_job("Breakdown", SUPERVISOR, job_type=JobType.SLOT_IN)
        assert job.sla_target_minutes == 15

    def test_technician_cannot_create_jobs(self, services):
        with pytest.raises(AuthorizationError):
            services.jobs.create_job("Service", TECHNICIAN)
        assert services.jobs.list_jobs() == []

    def test_unknown_forklift(self, services):
        with pytest.raises(NotFoundError):
            services.jobs.create_job("Service", SUPERVISOR, forklift_id=uuid4())

    def test_unknown_job(self, services):
        with pytest.raises(NotFoundError):
            services.jobs.get_job(uuid4())
        with pytest.raises(NotFoundError):
            services.jobs.assign_job(uuid4(), TECHNICIAN.id, SUPERVISOR)


class TestCompletionGate:
    def test_repeated_attempt_is_idempotent(self, services, workflow):
        job = workflow.accepted()
        job = services.jobs.start_job(job.id, TECHNICIAN)

        attempts = []
        for _ in range(2):
            with pytest.raises(PreconditionError) as exc_info:
                services.jobs.complete_work(job.id, TECHNICIAN)
            attempts.append(exc_info.value.missing_items)

        assert attempts[0] == attempts[1]
        assert attempts[0] == [item.value for item in MANDATORY_CHECKLIST_ITEMS]
        stored = services.jobs.get_job(job.id)
        assert stored.status == JobStatus.IN_PROGRESS
        assert stored.version == job.version


class TestHappyPath:
    def test_full_lifecycle_with_equipment(self, services, workflow, forklift):
        job = workflow.awaiting_finalization(reading=1010, forklift_id=forklift.id)
        assert job.status == JobStatus.AWAITING_FINALIZATION
        assert job.version == 5

        services.confirmations.skip_parts_confirmation(job.id, STORE_ADMIN)
        done = services.confirmations.confirm_job(job.id, SERVICE_ADMIN, notes="Signed off")

        assert done.status == JobStatus.COMPLETED
        assert done.version == 7
        assert done.hourmeter_reading == 1010
        assert services.jobs.get_job(job.id).job_confirmation_notes == "Signed off"

        equipment = services.hourmeter.get_forklift(forklift.id)
        assert equipment.hourmeter == 1010
        assert [entry.job_id for entry in equipment.history] == [job.id]

    def test_each_intent_bumps_version_once(self, services, workflow):
        job = workflow.create()
        assert job.version == 1

        job = services.jobs.assign_job(job.id, TECHNICIAN.id, SUPERVISOR)
        assert job.version == 2
        assert services.jobs.get_job(job.id).version == 2

    def test_assignment_notifies_technician(self, workflow, gateway):
        workflow.assigned()

        sent = gateway.for_user(TECHNICIAN.id)
        assert [n.kind for n in sent] == [NotificationKind.JOB_ASSIGNED]
        assert sent[0].title == "New Job Assigned"

    def test_completion_notifies_both_confirmers(self, workflow, gateway):
        job = workflow.awaiting_finalization()

        for role in (UserRole.ADMIN_STORE, UserRole.ADMIN_SERVICE):
            pending = [
                n
                for n in gateway.for_role(role)
                if n.kind == NotificationKind.JOB_PENDING_CONFIRMATION
            ]
            assert [n.job_id for n in pending] == [job.id]

    def test_list_jobs_by_technician(self, services, workflow):
        mine = workflow.assigned()
        workflow.create()

        assert [j.id for j in services.jobs.list_jobs(technician_id=TECHNICIAN.id)] == [
            mine.id
        ]
        assert len(services.jobs.list_jobs(status=JobStatus.NEW)) == 1


class TestOptimisticVersion:
    def test_stale_expected_version(self, services, workflow):
        job = workflow.create()

        with pytest.raises(ConflictError) as exc_info:
            services.jobs.assign_job(job.id, TECHNICIAN.id, SUPERVISOR, expected_version=0)

        assert exc_info.value.details["actual_version"] == 1
        assert services.jobs.get_job(job.id).status == JobStatus.NEW

    def test_matching_expected_version(self, services, workflow):
        job = workflow.create()
        updated = services.jobs.assign_job(
            job.id, TECHNICIAN.id, SUPERVISOR, expected_version=job.version
        )
        assert updated.status == JobStatus.ASSIGNED

    def test_refused_intent_persists_nothing(self, services, workflow, gateway):
        job = workflow.assigned()
        gateway.clear()

        with pytest.raises(PreconditionError):
            services.jobs.start_job(job.id, TECHNICIAN, checklist=FULL_CHECKLIST)

        stored = services.jobs.get_job(job.id)
        assert stored.version == job.version
        assert stored.status == JobStatus.ASSIGNED
        assert gateway.sent == []


class TestAssignment:
    def test_technician_rejects(self, services, workflow, gateway):
        job = workflow.assigned()

        rejected = services.jobs.reject_job(job.id, "On leave", TECHNICIAN)

        assert rejected.status == JobStatus.NEW
        assert rejected.assigned_technician_id is None
        alerts = gateway.for_role(UserRole.SUPERVISOR)
        assert alerts[-1].kind == NotificationKind.JOB_REJECTED
        assert "On leave" in alerts[-1].message

    def test_accept_notifies_supervisors(self, workflow, gateway):
        workflow.accepted()
        assert gateway.for_role(UserRole.SUPERVISOR)[-1].kind == NotificationKind.JOB_ACCEPTED

    def test_reassign(self, services, workflow, gateway):
        job = workflow.assigned()

        job = services.jobs.reassign_job(job.id, OTHER_TECHNICIAN.id, SUPERVISOR)

        assert job.assigned_technician_id == OTHER_TECHNICIAN.id
        assert gateway.for_user(OTHER_TECHNICIAN.id)[0].title == "Job Reassigned to You"


class TestMeterReadingOnStart:
    def test_missing_reading_on_linked_equipment(self, services, workflow, forklift):
        job = workflow.accepted(forklift_id=forklift.id)

        with pytest.raises(ValidationError):
            services.jobs.start_job(job.id, TECHNICIAN, checklist=FULL_CHECKLIST)

        assert services.jobs.get_job(job.id).status == JobStatus.ASSIGNED
        assert services.hourmeter.get_forklift(forklift.id).history == []

    def test_reading_on_job_without_equipment(self, services, workflow):
        job = workflow.accepted()
        with pytest.raises(PreconditionError):
            services.jobs.start_job(job.id, TECHNICIAN, hourmeter_reading=10)

    def test_flagged_reading_is_stored(self, services, workflow, forklift, gateway):
        job = workflow.in_progress(reading=900, forklift_id=forklift.id)

        assert job.status == JobStatus.IN_PROGRESS
        assert job.hourmeter_flagged
        assert job.hourmeter_flag_reasons == [HourmeterFlagReason.LOWER_THAN_PREVIOUS]

        equipment = services.hourmeter.get_forklift(forklift.id)
        assert equipment.hourmeter == 1000
        assert equipment.history[0].reading == 900

        flagged = [
            n
            for n in gateway.for_role(UserRole.ADMIN_SERVICE)
            if n.kind == NotificationKind.HOURMETER_FLAGGED
        ]
        assert len(flagged) == 1
        assert "lower than previous" in flagged[0].message

    def test_continue_tomorrow_with_closing_reading(self, services, workflow, forklift):
        job = workflow.in_progress(reading=1002, forklift_id=forklift.id)

        paused = services.jobs.continue_tomorrow(
            job.id, "Out of daylight", TECHNICIAN, hourmeter_reading=1006
        )

        assert paused.status == JobStatus.INCOMPLETE_CONTINUING
        assert paused.hourmeter_reading == 1006
        assert services.hourmeter.get_forklift(forklift.id).hourmeter == 1006


class TestCancellation:
    def test_cancel_invalidates_equipment_history(self, services, workflow, forklift):
        job = workflow.in_progress(reading=1010, forklift_id=forklift.id)

        cancelled = services.jobs.cancel_job(job.id, "Booked on the wrong truck", SUPERVISOR)

        assert cancelled.status == JobStatus.CANCELLED
        assert cancelled.hourmeter_before_delete == 1010
        history = services.hourmeter.get_forklift(forklift.id).history
        assert [entry.invalidated for entry in history] == [True]

    def test_cancelled_jobs_hidden_by_default(self, services, workflow):
        job = workflow.create()
        services.jobs.cancel_job(job.id, "Duplicate", SUPERVISOR)

        assert services.jobs.list_jobs() == []
        assert [j.id for j in services.jobs.list_jobs(include_deleted=True)] == [job.id]

    def test_cancelled_job_is_final(self, services, workflow):
        job = workflow.create()
        services.jobs.cancel_job(job.id, "Duplicate", SUPERVISOR)

        with pytest.raises(InvalidTransitionError):
            services.jobs.assign_job(job.id, TECHNICIAN.id, SUPERVISOR)


class TestChangeStatus:
    def test_dispatches_to_assign(self, services, workflow):
        job = workflow.create()

        job = services.jobs.change_status(
            job.id, JobStatus.ASSIGNED, SUPERVISOR, technician_id=TECHNICIAN.id
        )

        assert job.assigned_technician_id == TECHNICIAN.id

    def test_resume_from_continuing(self, services, workflow):
        job = workflow.in_progress()
        services.jobs.continue_tomorrow(job.id, "Waiting on parts", TECHNICIAN)

        job = services.jobs.change_status(job.id, "in_progress", TECHNICIAN)

        assert job.status == JobStatus.IN_PROGRESS

    def test_completed_from_awaiting_finalization_confirms(self, services, workflow):
        job = workflow.awaiting_finalization()

        job = services.jobs.change_status(job.id, JobStatus.COMPLETED, SERVICE_ADMIN)

        assert job.status == JobStatus.COMPLETED
        assert job.job_confirmed_by_id == SERVICE_ADMIN.id

    def test_unreachable_target(self, services, workflow):
        job = workflow.create()
        with pytest.raises(InvalidTransitionError):
            services.jobs.change_status(job.id, JobStatus.COMPLETED, SUPERVISOR)

    def test_reason_required_for_pause(self, services, workflow):
        job = workflow.in_progress()
        with pytest.raises(ValidationError):
            services.jobs.change_status(job.id, JobStatus.INCOMPLETE_CONTINUING, TECHNICIAN)


class TestDeferredAcknowledgement:
    def _deferred(self, services, workflow):
        job = workflow.awaiting_finalization()
        services.confirmations.skip_parts_confirmation(job.id, STORE_ADMIN)
        return services.jobs.defer_completion(job.id, "Customer off site", TECHNICIAN)

    def test_acknowledge_then_confirm(self, services, workflow):
        job = self._deferred(services, workflow)
        assert job.verification_type == VerificationType.DEFERRED

        services.jobs.acknowledge_completion(job.id, SUPERVISOR)
        done = services.confirmations.confirm_job(job.id, SERVICE_ADMIN)

        assert done.status == JobStatus.COMPLETED

    def test_dispute_and_resolve(self, services, workflow):
        job = self._deferred(services, workflow)

        services.jobs.dispute_completion(job.id, "Forks still bent", SUPERVISOR)
        job = services.jobs.resolve_dispute(job.id, "Forks replaced", SUPERVISOR)

        assert job.status == JobStatus.COMPLETED_AWAITING_ACK
        assert job.dispute_resolution == "Forks replaced"


class TestSlotIn:
    def test_acknowledged_in_time(self, services, workflow, clock):
        job = workflow.create(job_type=JobType.SLOT_IN)
        clock.advance(minutes=10)

        job = services.jobs.acknowledge_slot_in(job.id, SUPERVISOR)

        assert job.sla_met is True
        assert job.acknowledged_at == clock()

    def test_acknowledged_late(self, services, workflow, clock):
        job = workflow.create(job_type=JobType.SLOT_IN)
        clock.advance(minutes=15, seconds=1)

        assert services.jobs.acknowledge_slot_in(job.id, SUPERVISOR).sla_met is False

    def test_per_job_target(self, services, clock):
        job = services.jobs.create_job(
            "Mast jammed", SUPERVISOR, job_type=JobType.SLOT_IN, sla_target_minutes=30
        )
        assert job.sla_target_minutes == 30
        clock.advance(minutes=20)

        assert services.jobs.acknowledge_slot_in(job.id, SUPERVISOR).sla_met is True
        state = services.sla.slot_in_status(job.id)
        assert state.deadline == job.created_at + timedelta(minutes=30)

    def test_target_falls_back_to_configured_default(self, services, settings):
        job = services.jobs.create_job("Mast jammed", SUPERVISOR, job_type=JobType.SLOT_IN)
        assert job.sla_target_minutes == settings.SLOT_IN_SLA_MINUTES

    def test_invalid_target_is_rejected(self, services):
        with pytest.raises(ValidationError):
            services.jobs.create_job(
                "Mast jammed", SUPERVISOR, job_type=JobType.SLOT_IN, sla_target_minutes=0
            )


class TestRecordEdits:
    def test_notes_and_charges(self, services, workflow):
        job = workflow.in_progress()

        note = services.jobs.append_note(job.id, "Customer asked for a quote", TECHNICIAN)
        charge = services.jobs.add_extra_charge(job.id, "Call-out fee", "35.00", SUPERVISOR)

        stored = services.jobs.get_job(job.id)
        assert stored.notes[-1] == note
        assert stored.extra_charges == [charge]

    def test_mutate_job(self, services, workflow):
        job = workflow.create()

        job = services.jobs.mutate_job(job.id, {"description": "Check mast chains"}, SUPERVISOR)

        assert services.jobs.get_job(job.id).description == "Check mast chains"

    def test_mutate_forklift_must_exist(self, services, workflow):
        job = workflow.create()
        with pytest.raises(NotFoundError):
            services.jobs.mutate_job(job.id, {"forklift_id": str(uuid4())}, SUPERVISOR)

    def test_checklist_and_signatures(self, services, workflow):
        job = workflow.in_progress()

        checklist = services.jobs.update_checklist(
            job.id, {"tyres_front": "not_ok"}, TECHNICIAN
        )
        services.jobs.record_signature(job.id, "customer", "Carla Customer", TECHNICIAN)

        assert [item.value for item in checklist.not_ok_items] == ["tyres_front"]
        done = services.jobs.complete_work(job.id, TECHNICIAN)
        assert done.verification_type == VerificationType.SIGNED_ONSITE


class TestPublishing:
    def test_events_published_after_commit(self, services, workflow):
        seen = []

        def check_committed(event: JobStatusChanged) -> None:
            seen.append((event.new_status, services.jobs.get_job(event.job_id).status))

        services.event_bus.subscribe(JobStatusChanged, check_committed)
        workflow.in_progress()

        assert [new for new, _ in seen] == [JobStatus.ASSIGNED, JobStatus.IN_PROGRESS]
        assert all(new == stored for new, stored in seen)

    def test_gateway_failure_does_not_roll_back(self, store, settings, clock):
        services = build_services(
            store_uow_factory(store),
            config=settings,
            notification_gateway=ExplodingGateway(),
            clock=clock,
        )
        job = services.jobs.create_job("Service", SUPERVISOR)

        job = services.jobs.assign_job(job.id, TECHNICIAN.id, SUPERVISOR)

        assert services.jobs.get_job(job.id).status == JobStatus.ASSIGNED
