"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from finance_tracker.repository import TransactionRepository
from finance_tracker.state import TransactionCache
from finance_tracker.storage import (
    InMemoryRecordStore,
    SQLiteRecordStore,
    StorageUnavailableError,
)


class StepClock:
    """Deterministic clock: every call is one step later than the last."""

    def __init__(
        self,
        start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        step: timedelta = timedelta(seconds=1),
    ):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


class FlakyStore(InMemoryRecordStore):
    """In-memory store whose operations can be switched to fail."""

    def __init__(self):
        super().__init__()
        self.failing: set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failing:
            raise StorageUnavailableError(f"{operation} unavailable")

    async def insert(self, table, row):
        self._maybe_fail("insert")
        return await super().insert(table, row)

    async def query(self, table, query=None):
        self._maybe_fail("query")
        return await super().query(table, query)

    async def update(self, table, values, where):
        self._maybe_fail("update")
        return await super().update(table, values, where)

    async def delete(self, table, where=None):
        self._maybe_fail("delete")
        return await super().delete(table, where)

    async def aggregate(self, table, field, where=None):
        self._maybe_fail("aggregate")
        return await super().aggregate(table, field, where)


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    """An open record store; every test using it runs against both backends."""
    if request.param == "memory":
        record_store = InMemoryRecordStore()
    else:
        record_store = SQLiteRecordStore(tmp_path / "test.db", open_retry_attempts=1)

    await record_store.open()
    yield record_store
    await record_store.close()


@pytest.fixture
async def flaky_store():
    record_store = FlakyStore()
    await record_store.open()
    yield record_store
    await record_store.close()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def repository(store, clock):
    return TransactionRepository(store, clock=clock)


@pytest.fixture
def cache(repository):
    return TransactionCache(repository, "local_user_001")


@pytest.fixture
def flaky_cache(flaky_store, clock):
    return TransactionCache(
        TransactionRepository(flaky_store, clock=clock),
        "local_user_001",
    )
