"""Integration tests for the SLA queries and sweeps."""

from datetime import timedelta

from jobflow.domain.jobs.value_objects import JobStatus, JobType, SLAStatus, UrgencyBand
from jobflow.infrastructure.events import NotificationKind
from jobflow.tests.factories import NOW, SUPERVISOR, TECHNICIAN


class TestResponseWindows:
    def test_pending_responses_most_urgent_first(self, services, workflow, clock):
        first = workflow.assigned(title="Brake check")
        clock.advance(minutes=4)
        second = workflow.assigned(title="Mast inspection")
        clock.advance(minutes=3)

        pending = services.sla.pending_responses()

        assert [s.job_id for s in pending] == [first.id, second.id]
        assert pending[0].remaining == timedelta(minutes=8)
        assert pending[0].urgency == UrgencyBand.WARNING
        assert pending[1].urgency == UrgencyBand.OK

    def test_accepted_jobs_leave_the_queue(self, services, workflow):
        workflow.accepted()
        assert services.sla.pending_responses() == []

    def test_expired_window_alerts_once(self, services, workflow, clock, gateway):
        job = workflow.assigned()
        clock.advance(minutes=16)

        assert services.sla.handle_expired_responses() == [job.id]
        assert services.sla.handle_expired_responses() == []

        stored = services.jobs.get_job(job.id)
        assert stored.status == JobStatus.ASSIGNED
        assert stored.no_response_alerted_at == NOW + timedelta(minutes=16)
        alerts = [n for n in gateway.sent if n.kind == NotificationKind.NO_RESPONSE]
        assert len(alerts) == 1

        window = services.sla.response_window(job.id)
        assert window.urgency == UrgencyBand.CRITICAL
        assert window.is_expired and window.alerted

    def test_open_window_is_left_alone(self, services, workflow, clock):
        workflow.assigned()
        clock.advance(minutes=14)
        assert services.sla.handle_expired_responses() == []

    def test_late_acceptance_still_counts(self, services, workflow, clock):
        job = workflow.assigned()
        clock.advance(minutes=20)
        services.sla.handle_expired_responses()

        job = services.jobs.accept_job(job.id, TECHNICIAN)

        assert job.technician_accepted_at == NOW + timedelta(minutes=20)
        assert services.sla.response_window(job.id) is None


class TestSlotIn:
    def test_status_follows_the_clock(self, services, workflow, clock):
        job = workflow.create(job_type=JobType.SLOT_IN)

        assert services.sla.slot_in_status(job.id).status == SLAStatus.ON_TRACK
        clock.advance(minutes=11)
        assert services.sla.slot_in_status(job.id).status == SLAStatus.CRITICAL
        clock.advance(minutes=5)
        assert services.sla.slot_in_status(job.id).status == SLAStatus.BREACHED

    def test_acknowledged_job_leaves_urgent_queue(self, services, workflow, clock):
        late = workflow.create(job_type=JobType.SLOT_IN, title="Forklift down")
        clock.advance(minutes=5)
        fresh = workflow.create(job_type=JobType.SLOT_IN, title="Horn fault")
        workflow.create(title="Routine service")

        assert [s.job_id for s in services.sla.urgent_queue()] == [late.id, fresh.id]

        clock.advance(minutes=2)
        services.jobs.acknowledge_slot_in(late.id, SUPERVISOR)

        assert [s.job_id for s in services.sla.urgent_queue()] == [fresh.id]
        state = services.sla.slot_in_status(late.id)
        assert state.status == SLAStatus.MET
        assert state.acknowledged_at == NOW + timedelta(minutes=7)

    def test_regular_jobs_have_no_slot_in_state(self, services, workflow):
        job = workflow.create()
        assert services.sla.slot_in_status(job.id) is None


class TestEscalation:
    def test_long_running_job_escalates_once(self, services, workflow, clock, gateway):
        job = workflow.in_progress()
        clock.advance(hours=25)

        overdue = services.sla.find_overdue_in_progress()
        assert [o.job_id for o in overdue] == [job.id]
        assert overdue[0].hours_elapsed == 25.0

        assert services.sla.escalate_overdue_jobs() == [job.id]
        assert services.sla.escalate_overdue_jobs() == []
        assert services.jobs.get_job(job.id).escalation_triggered_at == clock()
        escalations = [n for n in gateway.sent if n.kind == NotificationKind.JOB_ESCALATED]
        assert len(escalations) == 1

    def test_paused_work_still_counts(self, services, workflow, clock):
        job = workflow.in_progress()
        services.jobs.continue_tomorrow(job.id, "Waiting on parts", TECHNICIAN)
        clock.advance(hours=30)

        assert services.sla.escalate_overdue_jobs() == [job.id]

    def test_completed_work_is_not_escalated(self, services, workflow, clock):
        workflow.awaiting_finalization()
        clock.advance(hours=48)
        assert services.sla.escalate_overdue_jobs() == []
