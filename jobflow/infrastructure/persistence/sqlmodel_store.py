"""
SQLModel table definitions and the SQL-backed record store.

Each record is a JSON document with indexed ``status``/``job_id`` columns and a
``version`` column. Updates are conditional on the expected version so a lost
race surfaces as ``ConflictError`` instead of a silent overwrite.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import Text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from jobflow.domain.shared.base import utcnow
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


class RecordRow(SQLModel):
    """Base model with the shared record columns."""

    id: UUID = Field(primary_key=True)
    version: int = Field(default=1, ge=0)
    status: str | None = Field(default=None, index=True)
    job_id: UUID | None = Field(default=None, index=True)
    payload: str = Field(sa_type=Text)
    updated_at: datetime | None = None


class JobRow(RecordRow, table=True):
    __tablename__ = JOBS


class JobRequestRow(RecordRow, table=True):
    __tablename__ = JOB_REQUESTS


class AmendmentRow(RecordRow, table=True):
    __tablename__ = AMENDMENTS


class ForkliftRow(RecordRow, table=True):
    __tablename__ = FORKLIFTS


ROW_TYPES: dict[str, type[RecordRow]] = {
    JOBS: JobRow,
    JOB_REQUESTS: JobRequestRow,
    AMENDMENTS: AmendmentRow,
    FORKLIFTS: ForkliftRow,
}


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def _row_type(table: str) -> type[RecordRow]:
    try:
        return ROW_TYPES[table]
    except KeyError:
        raise RepositoryError(f"Unknown table: {table}")


def _to_record(row: RecordRow) -> StoredRecord:
    return StoredRecord(
        record_id=row.id,
        version=row.version,
        payload=row.payload,
        status=row.status,
        job_id=row.job_id,
    )


class SQLModelStore(RecordStore):
    """Record store backed by a SQLAlchemy engine through SQLModel sessions."""

    def __init__(self, engine: Engine, create_tables: bool = True) -> None:
        self._engine = engine
        if create_tables:
            SQLModel.metadata.create_all(engine)

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SQLModelStore":
        return cls(build_engine(database_url, echo=echo))

    def read(self, table: str, record_id: UUID) -> StoredRecord | None:
        row_type = _row_type(table)
        try:
            with Session(self._engine) as session:
                row = session.get(row_type, record_id)
                return _to_record(row) if row is not None else None
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error during read: {str(e)}") from e

    def scan(
        self, table: str, status: str | None = None, job_id: UUID | None = None
    ) -> list[StoredRecord]:
        row_type = _row_type(table)
        statement = select(row_type)
        if status is not None:
            statement = statement.where(row_type.status == status)
        if job_id is not None:
            statement = statement.where(row_type.job_id == job_id)
        try:
            with Session(self._engine) as session:
                return [_to_record(row) for row in session.exec(statement).all()]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Database error during scan: {str(e)}") from e

    def apply(self, writes: Sequence[StagedWrite]) -> None:
        now = utcnow()
        with Session(self._engine) as session:
            try:
                for write in writes:
                    row_type = _row_type(write.table)
                    if write.is_insert:
                        session.add(
                            row_type(
                                id=write.record_id,
                                version=write.new_version,
                                status=write.status,
                                job_id=write.job_id,
                                payload=write.payload,
                                updated_at=now,
                            )
                        )
                        session.flush()
                        continue

                    result = session.execute(
                        update(row_type)
                        .where(
                            row_type.id == write.record_id,
                            row_type.version == write.expected_version,
                        )
                        .values(
                            version=write.new_version,
                            status=write.status,
                            job_id=write.job_id,
                            payload=write.payload,
                            updated_at=now,
                        )
                    )
                    if result.rowcount != 1:
                        raise ConflictError(
                            f"Record {write.record_id} in {write.table} was modified "
                            "concurrently",
                            {
                                "record_id": str(write.record_id),
                                "table": write.table,
                                "expected_version": write.expected_version,
                            },
                        )
                session.commit()
            except ConflictError:
                session.rollback()
                raise
            except IntegrityError as e:
                session.rollback()
                raise ConflictError(f"Record already exists: {str(e.orig)}") from e
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Database error during commit: {str(e)}")
                raise RepositoryError(f"Database error during commit: {str(e)}") from e
