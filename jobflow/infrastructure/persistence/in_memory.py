"""Process-local record store used by default and in tests."""

import logging
import threading
from collections.abc import Sequence
from uuid import UUID

from jobflow.domain.shared.exceptions import ConflictError, RepositoryError

from .record_store import TABLES, RecordStore, StagedWrite, StoredRecord

logger = logging.getLogger(__name__)


class InMemoryStore(RecordStore):
    """
    Dictionary-backed store.

    Payloads are JSON strings, so callers never share mutable state with the
    store. The lock only covers the short read/verify/write sections.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[UUID, StoredRecord]] = {t: {} for t in TABLES}
        self._lock = threading.Lock()

    def _table(self, table: str) -> dict[UUID, StoredRecord]:
        try:
            return self._tables[table]
        except KeyError:
            raise RepositoryError(f"Unknown table: {table}")

    def read(self, table: str, record_id: UUID) -> StoredRecord | None:
        with self._lock:
            return self._table(table).get(record_id)

    def scan(
        self, table: str, status: str | None = None, job_id: UUID | None = None
    ) -> list[StoredRecord]:
        with self._lock:
            records = list(self._table(table).values())
        if status is not None:
            records = [r for r in records if r.status == status]
        if job_id is not None:
            records = [r for r in records if r.job_id == job_id]
        return records

    def apply(self, writes: Sequence[StagedWrite]) -> None:
        with self._lock:
            for write in writes:
                current = self._table(write.table).get(write.record_id)
                if write.is_insert and current is not None:
                    raise ConflictError(
                        f"Record {write.record_id} already exists in {write.table}",
                        {"record_id": str(write.record_id), "table": write.table},
                    )
                if not write.is_insert and (
                    current is None or current.version != write.expected_version
                ):
                    raise ConflictError(
                        f"Record {write.record_id} in {write.table} was modified "
                        "concurrently",
                        {
                            "record_id": str(write.record_id),
                            "table": write.table,
                            "expected_version": write.expected_version,
                            "actual_version": current.version if current else None,
                        },
                    )

            for write in writes:
                self._tables[write.table][write.record_id] = StoredRecord(
                    record_id=write.record_id,
                    version=write.new_version,
                    payload=write.payload,
                    status=write.status,
                    job_id=write.job_id,
                )
        logger.debug(f"Applied {len(writes)} writes")

    def clear(self) -> None:
        with self._lock:
            for table in self._tables.values():
                table.clear()
