"""
Store-backed repositories and unit of work.

Every unit of work keeps an identity map of the records it loaded, stages
``add``/``save`` calls, and hands the whole batch to ``RecordStore.apply`` at
commit. Stored version = loaded version + 1; the store refuses the batch if
any record moved in the meantime.
"""

import logging
from collections.abc import Callable
from typing import Generic, TypeVar
from uuid import UUID

from jobflow.domain.jobs.entities import Forklift, HourmeterAmendment, Job, JobRequest
from jobflow.domain.jobs.repositories import (
    AmendmentRepository,
    ForkliftRepository,
    JobRepository,
    JobRequestRepository,
    UnitOfWork,
)
from jobflow.domain.jobs.value_objects import AmendmentStatus, JobStatus, RequestStatus
from jobflow.domain.shared.base import AggregateRoot
from jobflow.domain.shared.exceptions import ConflictError, RepositoryError

from .record_store import (
    AMENDMENTS,
    FORKLIFTS,
    JOB_REQUESTS,
    JOBS,
    RecordStore,
    StagedWrite,
    StoredRecord,
)

logger = logging.getLogger(__name__)

EntityType = TypeVar("EntityType", bound=AggregateRoot)


class StoreRepository(Generic[EntityType]):
    """Generic repository over one table of a ``RecordStore``."""

    table: str
    entity_class: type[EntityType]

    def __init__(self, uow: "StoreUnitOfWork") -> None:
        self._uow = uow

    def get(self, record_id: UUID) -> EntityType | None:
        cached = self._uow.identity_map.get((self.table, record_id))
        if cached is not None:
            return cached
        record = self._uow.store.read(self.table, record_id)
        if record is None:
            return None
        return self._load(record)

    def add(self, entity: EntityType) -> None:
        self._uow.stage(self.table, entity, insert=True, index=self.index_of(entity))

    def save(self, entity: EntityType) -> None:
        self._uow.stage(self.table, entity, insert=False, index=self.index_of(entity))

    def index_of(self, entity: EntityType) -> dict:
        return {}

    def _load(self, record: StoredRecord) -> EntityType:
        try:
            entity = self.entity_class.model_validate_json(record.payload)
        except ValueError as e:
            raise RepositoryError(
                f"Corrupt {self.table} record {record.record_id}: {e}"
            ) from e
        entity.version = record.version
        self._uow.identity_map[(self.table, entity.id)] = entity
        return entity

    def _scan(self, status: str | None = None, job_id: UUID | None = None) -> list[EntityType]:
        entities: dict[UUID, EntityType] = {}
        for record in self._uow.store.scan(self.table, status=status, job_id=job_id):
            cached = self._uow.identity_map.get((self.table, record.record_id))
            entities[record.record_id] = cached if cached is not None else self._load(record)
        for (table, record_id), entity in self._uow.identity_map.items():
            if table == self.table and record_id not in entities:
                entities[record_id] = entity
        return sorted(entities.values(), key=lambda e: (e.created_at, str(e.id)))


class StoreJobRepository(StoreRepository[Job], JobRepository):
    table = JOBS
    entity_class = Job

    def index_of(self, entity: Job) -> dict:
        return {"status": entity.status.value}

    def find(
        self,
        status: JobStatus | None = None,
        technician_id: str | None = None,
        include_deleted: bool = False,
    ) -> list[Job]:
        jobs = self._scan(status=status.value if status else None)
        return [
            job
            for job in jobs
            if (status is None or job.status == status)
            and (technician_id is None or job.assigned_technician_id == technician_id)
            and (include_deleted or not job.is_deleted)
        ]


class StoreJobRequestRepository(StoreRepository[JobRequest], JobRequestRepository):
    table = JOB_REQUESTS
    entity_class = JobRequest

    def index_of(self, entity: JobRequest) -> dict:
        return {"status": entity.status.value, "job_id": entity.job_id}

    def find(
        self, job_id: UUID | None = None, status: RequestStatus | None = None
    ) -> list[JobRequest]:
        return [
            r
            for r in self._scan(status=status.value if status else None, job_id=job_id)
            if (job_id is None or r.job_id == job_id)
            and (status is None or r.status == status)
        ]


class StoreAmendmentRepository(StoreRepository[HourmeterAmendment], AmendmentRepository):
    table = AMENDMENTS
    entity_class = HourmeterAmendment

    def index_of(self, entity: HourmeterAmendment) -> dict:
        return {"status": entity.status.value, "job_id": entity.job_id}

    def find(
        self, job_id: UUID | None = None, status: AmendmentStatus | None = None
    ) -> list[HourmeterAmendment]:
        return [
            a
            for a in self._scan(status=status.value if status else None, job_id=job_id)
            if (job_id is None or a.job_id == job_id)
            and (status is None or a.status == status)
        ]


class StoreForkliftRepository(StoreRepository[Forklift], ForkliftRepository):
    table = FORKLIFTS
    entity_class = Forklift


class StoreUnitOfWork(UnitOfWork):
    """Unit of work over any ``RecordStore``."""

    def __init__(self, store: RecordStore) -> None:
        super().__init__()
        self.store = store
        self.identity_map: dict[tuple[str, UUID], AggregateRoot] = {}
        self._staged: dict[tuple[str, UUID], tuple[AggregateRoot, bool, dict]] = {}
        self.jobs = StoreJobRepository(self)
        self.requests = StoreJobRequestRepository(self)
        self.amendments = StoreAmendmentRepository(self)
        self.forklifts = StoreForkliftRepository(self)

    def stage(
        self, table: str, entity: AggregateRoot, insert: bool, index: dict
    ) -> None:
        key = (table, entity.id)
        previous = self._staged.get(key)
        if previous is not None and previous[1]:
            insert = True
        self._staged[key] = (entity, insert, index)
        self.identity_map[key] = entity

    def commit(self) -> None:
        if not self._staged:
            return
        staged = list(self._staged.items())
        writes = [
            StagedWrite(
                table=table,
                record_id=record_id,
                payload=entity.model_dump_json(),
                new_version=entity.version + 1,
                expected_version=None if insert else entity.version,
                status=index.get("status"),
                job_id=index.get("job_id"),
            )
            for (table, record_id), (entity, insert, index) in staged
        ]
        try:
            self.store.apply(writes)
        except ConflictError:
            logger.info(f"Commit of {len(writes)} records lost a version race")
            self.rollback()
            raise

        for _, (entity, _insert, _index) in staged:
            entity.version = entity.version + 1
            self.collected_events.extend(entity.get_domain_events())
            entity.clear_domain_events()
        self._staged.clear()

    def rollback(self) -> None:
        self._staged.clear()
        self.identity_map.clear()


def store_uow_factory(store: RecordStore) -> Callable[[], StoreUnitOfWork]:
    """Return a factory producing fresh units of work over ``store``."""

    def factory() -> StoreUnitOfWork:
        return StoreUnitOfWork(store)

    return factory
