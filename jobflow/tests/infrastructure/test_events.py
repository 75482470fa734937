"""Tests for the event bus, publisher and notification dispatcher."""

from uuid import uuid4

import pytest

from jobflow.domain.jobs.events import (
    ConfirmationRejected,
    JobAssigned,
    JobCreated,
    JobEvent,
    JobStatusChanged,
    RequestCreated,
)
from jobflow.domain.jobs.value_objects import (
    ConfirmationGate,
    JobPriority,
    JobStatus,
    JobType,
    RequestType,
    UserRole,
)
from jobflow.infrastructure.events import (
    DomainEventPublisher,
    InMemoryEventBus,
    InMemoryNotificationGateway,
    Notification,
    NotificationDispatcher,
    NotificationKind,
)


def job_created(job_id=None) -> JobCreated:
    job_id = job_id or uuid4()
    return JobCreated(
        aggregate_id=job_id,
        job_id=job_id,
        job_type=JobType.SERVICE,
        priority=JobPriority.MEDIUM,
    )


def status_changed(new_status: JobStatus) -> JobStatusChanged:
    job_id = uuid4()
    return JobStatusChanged(
        aggregate_id=job_id,
        job_id=job_id,
        old_status=JobStatus.IN_PROGRESS,
        new_status=new_status,
    )


class TestInMemoryEventBus:
    def test_handlers_receive_subclasses(self):
        bus = InMemoryEventBus()
        seen = []
        bus.subscribe(JobEvent, seen.append)

        event = job_created()
        bus.publish(event)

        assert seen == [event]

    def test_duplicate_subscription_is_ignored(self):
        bus = InMemoryEventBus()
        seen = []
        bus.subscribe(JobCreated, seen.append)
        bus.subscribe(JobCreated, seen.append)

        bus.publish(job_created())

        assert len(seen) == 1

    def test_failing_handler_does_not_stop_others(self):
        bus = InMemoryEventBus()
        seen = []

        def explode(event):
            raise RuntimeError("handler down")

        bus.subscribe(JobCreated, explode)
        bus.subscribe(JobCreated, seen.append)

        bus.publish(job_created())

        assert len(seen) == 1

    def test_unsubscribe(self):
        bus = InMemoryEventBus()
        seen = []
        bus.subscribe(JobCreated, seen.append)
        bus.unsubscribe(JobCreated, seen.append)

        bus.publish(job_created())

        assert seen == []

    def test_history_is_bounded(self):
        bus = InMemoryEventBus(max_history_size=2)
        events = [job_created() for _ in range(3)]
        for event in events:
            bus.publish(event)

        assert bus.get_event_history() == events[1:]
        bus.clear_history()
        assert bus.get_event_history() == []


class TestDomainEventPublisher:
    def test_publish_all_in_order(self):
        bus = InMemoryEventBus()
        seen = []
        bus.subscribe(JobEvent, seen.append)
        events = [job_created(), status_changed(JobStatus.AWAITING_FINALIZATION)]

        DomainEventPublisher(bus).publish_all(events)

        assert seen == events

    def test_bus_failure_is_contained(self):
        class BrokenBus(InMemoryEventBus):
            def publish(self, event):
                raise RuntimeError("bus down")

        DomainEventPublisher(BrokenBus()).publish_all([job_created()])


class TestNotificationDispatcher:
    @pytest.fixture
    def gateway(self):
        return InMemoryNotificationGateway()

    @pytest.fixture
    def bus(self, gateway):
        bus = InMemoryEventBus()
        NotificationDispatcher(gateway).register(bus)
        return bus

    def test_assignment_and_reassignment_titles(self, bus, gateway):
        job_id = uuid4()
        bus.publish(JobAssigned(aggregate_id=job_id, job_id=job_id, technician_id="tech-1"))
        bus.publish(
            JobAssigned(
                aggregate_id=job_id,
                job_id=job_id,
                technician_id="tech-2",
                previous_technician_id="tech-1",
            )
        )

        assert gateway.for_user("tech-1")[0].title == "New Job Assigned"
        assert gateway.for_user("tech-2")[0].title == "Job Reassigned to You"

    def test_pending_confirmation_goes_to_both_confirmers(self, bus, gateway):
        bus.publish(status_changed(JobStatus.AWAITING_FINALIZATION))
        bus.publish(status_changed(JobStatus.INCOMPLETE_CONTINUING))

        [notification] = gateway.sent
        assert notification.kind == NotificationKind.JOB_PENDING_CONFIRMATION
        assert set(notification.recipient_roles) == {
            UserRole.ADMIN,
            UserRole.ADMIN_STORE,
            UserRole.ADMIN_SERVICE,
        }

    def test_rejection_without_technician_is_dropped(self, bus, gateway):
        job_id = uuid4()
        bus.publish(
            ConfirmationRejected(
                aggregate_id=job_id,
                job_id=job_id,
                gate=ConfirmationGate.JOB,
                reason="Report missing",
            )
        )
        assert gateway.sent == []

    def test_request_description_is_truncated(self, bus, gateway):
        job_id = uuid4()
        bus.publish(
            RequestCreated(
                aggregate_id=job_id,
                job_id=job_id,
                actor_id="tech-1",
                request_id=uuid4(),
                request_type=RequestType.SKILLFUL_TECHNICIAN,
                description="y" * 101,
            )
        )

        [notification] = gateway.sent
        assert notification.title == "Skillful Technician Request"
        assert notification.message.endswith("y" * 100 + "...")
        assert UserRole.SUPERVISOR in notification.recipient_roles

    def test_gateway_failure_is_contained(self):
        class FailingGateway(InMemoryNotificationGateway):
            def send(self, notification):
                raise ConnectionError("push service down")

        dispatcher = NotificationDispatcher(FailingGateway())
        dispatcher.handle(status_changed(JobStatus.AWAITING_FINALIZATION))

    def test_notification_needs_recipient(self):
        with pytest.raises(ValueError):
            Notification(kind=NotificationKind.JOB_ACCEPTED, title="t", message="m")
