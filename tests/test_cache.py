"""
Tests for the transaction cache and its change notifications.
"""

import asyncio
import pytest
from datetime import datetime
from decimal import Decimal

from finance_tracker.models import (
    CacheSnapshot,
    CacheStatus,
    ChangeEvent,
    ChangeEventType,
    TransactionFilter,
)
from finance_tracker.repository import (
    TransactionNotFoundError,
    TransactionRepository,
    ValidationError,
)
from finance_tracker.state import ChangeNotifier, TransactionCache
from finance_tracker.storage import StorageUnavailableError


async def add(cache, title="Salary", amount="5000.00", is_expense=False,
              when=datetime(2024, 1, 15), category=None):
    return await cache.add(
        title=title,
        amount=Decimal(amount),
        category=category or ("Food" if is_expense else "Income"),
        date=when,
        is_expense=is_expense,
    )


@pytest.fixture
def events(cache):
    """Collect every event the cache publishes."""
    received = []
    cache.subscribe(received.append)
    return received


class TestLoad:
    """Tests for TransactionCache.load()."""

    async def test_initial_state(self, cache):
        """Test that a new cache is idle and empty."""
        assert cache.transactions == []
        assert cache.total_balance == Decimal("0.00")
        assert cache.status == CacheStatus.IDLE
        assert cache.error is None

    async def test_load_reads_store(self, cache, repository):
        """Test that load() fills the list and totals from the store."""
        await repository.create(
            cache.user_id, title="Salary", amount=Decimal("5000.00"),
            category="Income", date=datetime(2024, 1, 15), is_expense=False,
        )
        snapshot = await cache.load()

        assert len(snapshot.transactions) == 1
        assert cache.total_income == Decimal("5000.00")
        assert cache.is_loading is False

    async def test_load_publishes_started_then_loaded(self, cache, events):
        """Test the event sequence of a successful load."""
        await cache.load()
        assert [e.event_type for e in events] == [
            ChangeEventType.LOAD_STARTED,
            ChangeEventType.LOADED,
        ]
        assert events[0].snapshot.is_loading is True
        assert events[1].snapshot.is_loading is False

    async def test_load_failure_sets_error_without_raising(self, flaky_cache, flaky_store):
        """Test that a failed load is captured in the error slot."""
        flaky_store.failing.add("query")
        snapshot = await flaky_cache.load()

        assert snapshot.error.startswith("Failed to load transactions:")
        assert flaky_cache.status == CacheStatus.ERROR
        assert flaky_cache.is_loading is False

    async def test_load_failure_keeps_previous_data(self, flaky_cache, flaky_store):
        """Test that a failed reload leaves the last good list in place."""
        await add(flaky_cache)
        flaky_store.failing.add("aggregate")

        await flaky_cache.load()

        assert len(flaky_cache.transactions) == 1
        assert flaky_cache.total_income == Decimal("5000.00")

    async def test_load_clears_previous_error(self, flaky_cache, flaky_store):
        """Test that a successful load clears the error slot."""
        flaky_store.failing.add("query")
        await flaky_cache.load()
        flaky_store.failing.clear()

        await flaky_cache.load()
        assert flaky_cache.error is None


class TestMutations:
    """Tests for add(), edit() and remove()."""

    async def test_add_puts_newest_at_head(self, cache):
        """Test that an added transaction appears first."""
        first = await add(cache, title="First")
        second = await add(cache, title="Second")
        assert [t.id for t in cache.transactions] == [second.id, first.id]

    async def test_add_refreshes_totals(self, cache):
        """Test the salary and groceries scenario through the cache."""
        await add(cache)
        await add(cache, title="Groceries", amount="125.50", is_expense=True)

        assert cache.total_income == Decimal("5000.00")
        assert cache.total_expense == Decimal("125.50")
        assert cache.total_balance == Decimal("4874.50")

    async def test_add_event_has_consistent_snapshot(self, cache, events):
        """Test that the published snapshot holds the new row and its totals."""
        transaction = await add(cache)
        event = events[-1]

        assert event.event_type == ChangeEventType.TRANSACTION_ADDED
        assert event.entity_id == transaction.id
        assert event.snapshot.transactions[0].id == transaction.id
        assert event.snapshot.totals.balance == Decimal("5000.00")

    async def test_add_validation_error_is_raised_and_recorded(self, cache, events):
        """Test that a rejected add re-raises and fills the error slot."""
        with pytest.raises(ValidationError):
            await add(cache, amount="0")

        assert cache.error.startswith("Failed to add transaction:")
        assert cache.transactions == []
        assert events[-1].event_type == ChangeEventType.MUTATION_FAILED

    async def test_failed_add_leaves_state_unchanged(self, flaky_cache, flaky_store):
        """Test that a store failure does not touch the cached list."""
        await add(flaky_cache)
        flaky_store.failing.add("insert")

        with pytest.raises(StorageUnavailableError):
            await add(flaky_cache, title="Lost")

        assert len(flaky_cache.transactions) == 1
        assert flaky_cache.total_income == Decimal("5000.00")
        assert flaky_cache.is_loading is False

    async def test_add_keeps_list_in_step_when_totals_fail(self, flaky_cache, flaky_store):
        """Test that a stored row shows in the list even if the totals refresh fails."""
        flaky_store.failing.add("aggregate")

        with pytest.raises(StorageUnavailableError):
            await add(flaky_cache)

        stored = await TransactionRepository(flaky_store).get_all(flaky_cache.user_id)
        assert [t.id for t in flaky_cache.transactions] == [t.id for t in stored]
        assert len(stored) == 1
        assert flaky_cache.error.startswith("Failed to add transaction:")

    async def test_remove_keeps_list_in_step_when_totals_fail(self, flaky_cache, flaky_store):
        """Test that a deleted row leaves the list even if the totals refresh fails."""
        transaction = await add(flaky_cache)
        flaky_store.failing.add("aggregate")

        with pytest.raises(StorageUnavailableError):
            await flaky_cache.remove(transaction.id)

        assert await TransactionRepository(flaky_store).get_all(flaky_cache.user_id) == []
        assert flaky_cache.transactions == []
        assert flaky_cache.error.startswith("Failed to delete transaction:")

    async def test_edit_keeps_list_in_step_when_totals_fail(self, flaky_cache, flaky_store):
        """Test that an edited row is replaced even if the totals refresh fails."""
        lunch = await add(flaky_cache, title="Lunch", amount="50.00", is_expense=True)
        flaky_store.failing.add("aggregate")

        with pytest.raises(StorageUnavailableError):
            await flaky_cache.edit(lunch.model_copy(update={"amount": Decimal("75.00")}))

        assert flaky_cache.transactions[0].amount == Decimal("75.00")
        assert flaky_cache.status == CacheStatus.ERROR

    async def test_reload_after_totals_failure_matches_cache(self, flaky_cache, flaky_store):
        """Test that the cache needs no reload to match the store after a totals failure."""
        flaky_store.failing.add("aggregate")
        with pytest.raises(StorageUnavailableError):
            await add(flaky_cache)
        before = flaky_cache.transactions

        flaky_store.failing.clear()
        await flaky_cache.load()
        assert flaky_cache.transactions == before
        assert flaky_cache.total_income == Decimal("5000.00")

    async def test_edit_replaces_in_place(self, cache):
        """Test the 50 -> 75 edit through the cache."""
        salary = await add(cache)
        lunch = await add(cache, title="Lunch", amount="50.00", is_expense=True)

        updated = await cache.edit(lunch.model_copy(update={"amount": Decimal("75.00")}))

        assert [t.id for t in cache.transactions] == [lunch.id, salary.id]
        assert cache.transactions[0].amount == Decimal("75.00")
        assert cache.total_expense == Decimal("75.00")
        assert updated.updated_at > lunch.updated_at

    async def test_edit_missing_records_update_error(self, cache):
        """Test that editing a deleted transaction raises and sets the error."""
        transaction = await add(cache)
        await cache.remove(transaction.id)

        with pytest.raises(TransactionNotFoundError):
            await cache.edit(transaction)
        assert cache.error.startswith("Failed to update transaction:")

    async def test_remove(self, cache, events):
        """Test that remove drops the row and refreshes totals."""
        salary = await add(cache)
        await add(cache, title="Groceries", amount="125.50", is_expense=True)

        assert await cache.remove(salary.id) == 1
        assert salary.id not in [t.id for t in cache.transactions]
        assert cache.total_balance == Decimal("-125.50")
        assert events[-1].event_type == ChangeEventType.TRANSACTION_DELETED

    async def test_remove_missing_is_not_an_error(self, cache):
        """Test that removing an unknown id succeeds with 0."""
        assert await cache.remove("missing") == 0
        assert cache.error is None

    async def test_failed_remove_records_delete_error(self, flaky_cache, flaky_store):
        """Test the delete failure message."""
        transaction = await add(flaky_cache)
        flaky_store.failing.add("delete")

        with pytest.raises(StorageUnavailableError):
            await flaky_cache.remove(transaction.id)
        assert flaky_cache.error == "Failed to delete transaction: delete unavailable"
        assert len(flaky_cache.transactions) == 1

    async def test_next_mutation_clears_error(self, cache):
        """Test that a successful mutation clears a previous error."""
        with pytest.raises(ValidationError):
            await add(cache, amount="-1")
        await add(cache)
        assert cache.error is None

    async def test_clear_error(self, cache, events):
        """Test that clear_error empties the slot and notifies."""
        with pytest.raises(ValidationError):
            await add(cache, amount="-1")

        await cache.clear_error()
        assert cache.error is None
        assert cache.status == CacheStatus.IDLE
        assert events[-1].event_type == ChangeEventType.ERROR_CLEARED

    async def test_concurrent_adds_are_serialized(self, cache):
        """Test that concurrent adds all land and totals stay consistent."""
        await asyncio.gather(*(
            add(cache, title=f"Item {i}", amount="1.25", is_expense=True)
            for i in range(10)
        ))

        assert len(cache.transactions) == 10
        assert cache.total_expense == Decimal("12.50")
        assert len({t.id for t in cache.transactions}) == 10

    async def test_cache_matches_reload(self, cache, repository):
        """Test that the cache after mutations equals a fresh load."""
        a = await add(cache, title="A", when=datetime(2024, 1, 1))
        await add(cache, title="B", amount="20.00", is_expense=True, when=datetime(2024, 1, 2))
        await cache.edit(a.model_copy(update={"title": "A2"}))

        expected = await repository.get_all(cache.user_id)
        await cache.load()
        assert cache.transactions == expected


class TestViews:
    """Tests for filter_by_type(), search(), view() and recent()."""

    @pytest.fixture
    async def populated(self, cache):
        await add(cache, title="Salary", when=datetime(2024, 1, 1))
        await add(cache, title="Groceries", amount="125.50", is_expense=True,
                  when=datetime(2024, 1, 2))
        await add(cache, title="Bus ticket", amount="2.75", is_expense=True,
                  category="Transport", when=datetime(2024, 1, 3))
        return cache

    async def test_filter_all(self, populated):
        """Test that All returns every transaction."""
        assert populated.filter_by_type(TransactionFilter.ALL) == populated.transactions

    async def test_filter_partition(self, populated):
        """Test that Income and Expense split the list."""
        income = populated.filter_by_type("Income")
        expense = populated.filter_by_type("Expense")
        assert [t.title for t in income] == ["Salary"]
        assert [t.title for t in expense] == ["Bus ticket", "Groceries"]
        assert len(income) + len(expense) == len(populated.transactions)

    async def test_filter_unknown_returns_all(self, populated):
        """Test that an unknown filter value returns the full list."""
        assert populated.filter_by_type("Transfers") == populated.transactions

    async def test_search_title_and_category(self, populated):
        """Test case-insensitive matching on title or category."""
        assert [t.title for t in populated.search("GROC")] == ["Groceries"]
        assert [t.title for t in populated.search("transport")] == ["Bus ticket"]

    async def test_search_empty_returns_all(self, populated):
        """Test that an empty query returns the full list."""
        assert populated.search("") == populated.transactions

    async def test_search_no_match(self, populated):
        """Test that a query with no match returns nothing."""
        assert populated.search("rent") == []

    async def test_view_combines_search_and_filter(self, populated):
        """Test that view() searches then narrows by type."""
        assert [t.title for t in populated.view("Expense", "s")] == ["Bus ticket", "Groceries"]
        assert [t.title for t in populated.view("Income", "groc")] == []

    async def test_recent(self, populated):
        """Test that recent returns the head of the list."""
        assert [t.title for t in populated.recent(2)] == ["Bus ticket", "Groceries"]
        assert len(populated.recent()) == 3
        assert populated.recent(0) == []

    async def test_recent_default_limit(self, repository):
        """Test that recent() defaults to the configured limit."""
        cache = TransactionCache(repository, "local_user_001", recent_limit=2)
        for i in range(4):
            await add(cache, title=f"T{i}")
        assert [t.title for t in cache.recent()] == ["T3", "T2"]

    async def test_views_do_not_mutate(self, populated):
        """Test that a returned view is a copy."""
        populated.search("").clear()
        assert len(populated.transactions) == 3


class TestNotifier:
    """Tests for ChangeNotifier delivery."""

    async def test_unsubscribe(self, cache):
        """Test that an unsubscribed listener receives nothing."""
        received = []
        unsubscribe = cache.subscribe(received.append)
        unsubscribe()
        unsubscribe()

        await add(cache)
        assert received == []

    async def test_async_listener(self, cache):
        """Test that coroutine listeners are awaited."""
        received = []

        async def listener(event):
            received.append(event.event_type)

        cache.subscribe(listener)
        await add(cache)
        assert received == [ChangeEventType.TRANSACTION_ADDED]

    async def test_failing_listener_does_not_block_others(self, cache):
        """Test that a raising listener neither fails the add nor stops delivery."""
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        cache.subscribe(broken)
        cache.subscribe(received.append)

        transaction = await add(cache)
        assert transaction in cache.transactions
        assert len(received) == 1

    async def test_publish_returns_delivered_count(self):
        """Test the count of listeners that handled an event."""
        notifier = ChangeNotifier()
        notifier.subscribe(lambda event: None)
        notifier.subscribe(lambda event: 1 / 0)

        delivered = await notifier.publish(
            ChangeEvent(event_type=ChangeEventType.LOADED, snapshot=CacheSnapshot())
        )
        assert delivered == 1
        assert notifier.listener_count == 2

    async def test_listener_may_schedule_follow_up(self, cache):
        """Test that a listener can schedule another cache operation."""
        scheduled = []

        def listener(event):
            if event.event_type == ChangeEventType.TRANSACTION_ADDED:
                scheduled.append(asyncio.create_task(cache.load()))

        cache.subscribe(listener)
        await add(cache)
        await asyncio.gather(*scheduled)

        assert cache.status == CacheStatus.IDLE
        assert len(cache.transactions) == 1
