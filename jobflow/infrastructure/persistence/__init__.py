"""Record stores, repositories and units of work."""

from .in_memory import InMemoryStore
from .record_store import RecordStore, StagedWrite, StoredRecord
from .repositories import StoreUnitOfWork, store_uow_factory
from .sqlmodel_store import SQLModelStore, build_engine

__all__ = [
    "InMemoryStore",
    "RecordStore",
    "SQLModelStore",
    "StagedWrite",
    "StoreUnitOfWork",
    "StoredRecord",
    "build_engine",
    "store_uow_factory",
]
