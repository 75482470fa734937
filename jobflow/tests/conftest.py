from collections.abc import Iterator
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from jobflow.api.main import create_app
from jobflow.application.services import Services, build_services
from jobflow.core.config import Settings
from jobflow.domain.jobs.entities import Forklift
from jobflow.infrastructure.events import InMemoryNotificationGateway
from jobflow.infrastructure.persistence import InMemoryStore, store_uow_factory
from jobflow.tests.factories import NOW, SUPERVISOR, Workflow


class Clock:
    """Settable clock handed to the services."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        TECHNICIAN_RESPONSE_MINUTES=15,
        SLOT_IN_SLA_MINUTES=15,
        ESCALATION_HOURS=24,
        HOURMETER_JUMP_WINDOW_DAYS=30,
        JOB_LOCK_TIMEOUT_SECONDS=5.0,
        REQUIRE_SIGNATURES_FOR_COMPLETION=False,
        STORAGE_BACKEND="memory",
    )


@pytest.fixture
def clock() -> Clock:
    return Clock(NOW)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def gateway() -> InMemoryNotificationGateway:
    return InMemoryNotificationGateway()


@pytest.fixture
def services(
    store: InMemoryStore,
    settings: Settings,
    gateway: InMemoryNotificationGateway,
    clock: Clock,
) -> Services:
    return build_services(
        store_uow_factory(store),
        config=settings,
        notification_gateway=gateway,
        clock=clock,
    )


@pytest.fixture
def workflow(services: Services) -> Workflow:
    return Workflow(services)


@pytest.fixture
def forklift(services: Services) -> Forklift:
    return services.hourmeter.register_forklift(
        "FL-0042",
        SUPERVISOR,
        customer_id="cust-7",
        hourmeter=1000,
        avg_daily_usage_hours=8.0,
    )


@pytest.fixture
def client(services: Services, settings: Settings) -> Iterator[TestClient]:
    with TestClient(create_app(services=services, config=settings)) as c:
        yield c
