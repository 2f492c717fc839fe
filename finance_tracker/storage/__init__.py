"""
Storage Package

Provides the abstract record store interface and its two backends:
SQLite for native persistence and an in-memory store as a fallback.
"""

from finance_tracker.storage.interface import (
    ConstraintViolationError,
    NotFoundError,
    OrderBy,
    RangeFilter,
    RecordQuery,
    RecordStore,
    StorageError,
    StorageUnavailableError,
    UnsupportedOperationError,
)
from finance_tracker.storage.memory import InMemoryRecordStore
from finance_tracker.storage.schema import (
    CATEGORIES_TABLE,
    DEFAULT_CATEGORIES,
    TRANSACTIONS_TABLE,
)
from finance_tracker.storage.sqlite import SQLiteRecordStore

__all__ = [
    # Interface
    "OrderBy",
    "RangeFilter",
    "RecordQuery",
    "RecordStore",
    # Exceptions
    "ConstraintViolationError",
    "NotFoundError",
    "StorageError",
    "StorageUnavailableError",
    "UnsupportedOperationError",
    # Schema
    "CATEGORIES_TABLE",
    "DEFAULT_CATEGORIES",
    "TRANSACTIONS_TABLE",
    # Implementations
    "InMemoryRecordStore",
    "SQLiteRecordStore",
]
