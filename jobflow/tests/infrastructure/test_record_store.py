"""Contract tests run against both record store backends."""

from uuid import uuid4

import pytest

from jobflow.domain.shared.exceptions import ConflictError, RepositoryError
from jobflow.infrastructure.persistence import (
    InMemoryStore,
    SQLModelStore,
    StagedWrite,
    build_engine,
)
from jobflow.infrastructure.persistence.record_store import JOB_REQUESTS, JOBS


@pytest.fixture(params=["memory", "sql"])
def record_store(request):
    if request.param == "memory":
        return InMemoryStore()
    return SQLModelStore(build_engine("sqlite://"))


def insert(table, record_id, payload='{"n": 1}', **index):
    return StagedWrite(table, record_id, payload, new_version=1, **index)


def update(table, record_id, expected, payload='{"n": 2}', **index):
    return StagedWrite(
        table,
        record_id,
        payload,
        new_version=expected + 1,
        expected_version=expected,
        **index,
    )


class TestRecordStore:
    def test_insert_then_read(self, record_store):
        record_id = uuid4()
        record_store.apply([insert(JOBS, record_id, status="new")])

        record = record_store.read(JOBS, record_id)

        assert record.version == 1
        assert record.payload == '{"n": 1}'
        assert record.status == "new"

    def test_missing_record(self, record_store):
        assert record_store.read(JOBS, uuid4()) is None

    def test_update_advances_version(self, record_store):
        record_id = uuid4()
        record_store.apply([insert(JOBS, record_id)])

        record_store.apply([update(JOBS, record_id, expected=1, status="assigned")])

        record = record_store.read(JOBS, record_id)
        assert record.version == 2
        assert record.status == "assigned"

    def test_stale_update_is_refused(self, record_store):
        record_id = uuid4()
        record_store.apply([insert(JOBS, record_id)])
        record_store.apply([update(JOBS, record_id, expected=1)])

        with pytest.raises(ConflictError):
            record_store.apply([update(JOBS, record_id, expected=1, payload='{"n": 9}')])

        assert record_store.read(JOBS, record_id).payload == '{"n": 2}'

    def test_batch_is_all_or_nothing(self, record_store):
        job_id, stale_id, request_id = uuid4(), uuid4(), uuid4()
        record_store.apply([insert(JOBS, job_id), insert(JOBS, stale_id)])

        with pytest.raises(ConflictError):
            record_store.apply(
                [
                    update(JOBS, job_id, expected=1),
                    insert(JOB_REQUESTS, request_id, job_id=job_id),
                    update(JOBS, stale_id, expected=5),
                ]
            )

        assert record_store.read(JOBS, job_id).version == 1
        assert record_store.read(JOB_REQUESTS, request_id) is None

    def test_duplicate_insert(self, record_store):
        record_id = uuid4()
        record_store.apply([insert(JOBS, record_id)])

        with pytest.raises(ConflictError):
            record_store.apply([insert(JOBS, record_id)])

    def test_scan_filters_on_indexed_columns(self, record_store):
        job_a, job_b = uuid4(), uuid4()
        pending_a, approved_a, pending_b = uuid4(), uuid4(), uuid4()
        record_store.apply(
            [
                insert(JOB_REQUESTS, pending_a, status="pending", job_id=job_a),
                insert(JOB_REQUESTS, approved_a, status="approved", job_id=job_a),
                insert(JOB_REQUESTS, pending_b, status="pending", job_id=job_b),
            ]
        )

        def ids(**filters):
            return {r.record_id for r in record_store.scan(JOB_REQUESTS, **filters)}

        assert ids() == {pending_a, approved_a, pending_b}
        assert ids(status="pending") == {pending_a, pending_b}
        assert ids(job_id=job_a) == {pending_a, approved_a}
        assert ids(status="pending", job_id=job_a) == {pending_a}

    def test_unknown_table(self, record_store):
        with pytest.raises(RepositoryError):
            record_store.read("invoices", uuid4())


def test_in_memory_clear():
    store = InMemoryStore()
    record_id = uuid4()
    store.apply([insert(JOBS, record_id)])

    store.clear()

    assert store.read(JOBS, record_id) is None
