"""
Transaction Cache

In-memory view of one user's transactions and totals, kept consistent
with the record store after every mutation.

CONSISTENCY RULES:
1. Totals are re-queried from the repository after every mutation,
   never adjusted with local arithmetic
2. The cached list follows the store: it changes as soon as the store
   write succeeded, even if the totals refresh after it fails
3. Subscribers are notified once list and totals are both refreshed,
   with a full snapshot; a failed refresh publishes the error instead
4. load(), add(), edit() and remove() run one at a time behind a
   single-writer lock, so concurrent UI triggers never interleave

Listeners run while the write lock is held. A listener that wants to
start another cache operation must schedule it (asyncio.create_task)
rather than await it.
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional, Union

from finance_tracker.models.events import (
    CacheSnapshot,
    CacheStatus,
    ChangeEvent,
    ChangeEventType,
)
from finance_tracker.models.transaction import Totals, Transaction, TransactionFilter
from finance_tracker.repository.transactions import TransactionRepository
from finance_tracker.state.notifier import ChangeNotifier, Listener


class TransactionCache:
    """
    Reactive state for the active user.

    State machine: idle -> loading -> {idle, error}. The error state is
    left by the next load() or mutation, or by clear_error().
    """

    def __init__(
        self,
        repository: TransactionRepository,
        user_id: str,
        notifier: Optional[ChangeNotifier] = None,
        recent_limit: int = 5,
    ):
        self._repository = repository
        self._user_id = user_id
        self._notifier = notifier or ChangeNotifier()
        self._recent_limit = recent_limit

        self._transactions: list[Transaction] = []
        self._totals = Totals()
        self._is_loading = False
        self._error: Optional[str] = None
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # State accessors
    # -------------------------------------------------------------------------

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def transactions(self) -> list[Transaction]:
        return list(self._transactions)

    @property
    def totals(self) -> Totals:
        return self._totals

    @property
    def total_balance(self) -> Decimal:
        return self._totals.balance

    @property
    def total_income(self) -> Decimal:
        return self._totals.income

    @property
    def total_expense(self) -> Decimal:
        return self._totals.expense

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def status(self) -> CacheStatus:
        return self.snapshot().status

    def snapshot(self) -> CacheSnapshot:
        return CacheSnapshot(
            transactions=tuple(self._transactions),
            totals=self._totals,
            is_loading=self._is_loading,
            error=self._error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Receive a ChangeEvent after every state change. Returns an unsubscribe callable."""
        return self._notifier.subscribe(listener)

    async def _publish(
        self,
        event_type: ChangeEventType,
        entity_id: Optional[str] = None,
    ) -> None:
        await self._notifier.publish(
            ChangeEvent(
                event_type=event_type,
                snapshot=self.snapshot(),
                entity_id=entity_id,
                error_message=self._error,
            )
        )

    async def _fail(self, verb: str, error: Exception, entity_id: Optional[str] = None) -> None:
        self._error = f"Failed to {verb} transaction: {error}"
        self._is_loading = False
        await self._publish(ChangeEventType.MUTATION_FAILED, entity_id)

    async def _refresh_totals(self, verb: str, entity_id: str) -> None:
        """
        Re-query totals after a write that already reached the store.

        The list has been updated to match the store at this point, so a
        failure here only leaves the totals stale; it is reported like a
        failed mutation and re-raised.
        """
        try:
            self._totals = await self._repository.get_totals(self._user_id)
        except Exception as e:
            await self._fail(verb, e, entity_id)
            raise

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    async def load(self) -> CacheSnapshot:
        """
        Reload the list and totals from the store.

        Failures are captured in the error slot and never raised: this
        runs at startup where no caller is there to catch them.
        """
        async with self._lock:
            self._is_loading = True
            self._error = None
            await self._publish(ChangeEventType.LOAD_STARTED)

            try:
                transactions = await self._repository.get_all(self._user_id)
                totals = await self._repository.get_totals(self._user_id)
            except Exception as e:
                self._error = f"Failed to load transactions: {e}"
                self._is_loading = False
                await self._publish(ChangeEventType.LOAD_FAILED)
                return self.snapshot()

            self._transactions = transactions
            self._totals = totals
            self._is_loading = False
            await self._publish(ChangeEventType.LOADED)
            return self.snapshot()

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def add(
        self,
        *,
        title: str,
        amount: Union[Decimal, float, int, str],
        category: str,
        date: Union[datetime, date],
        is_expense: bool,
        notes: Optional[str] = None,
    ) -> Transaction:
        """Create a transaction and put it at the head of the list (newest first)."""
        async with self._lock:
            self._error = None
            try:
                transaction = await self._repository.create(
                    self._user_id,
                    title=title,
                    amount=amount,
                    category=category,
                    date=date,
                    is_expense=is_expense,
                    notes=notes,
                )
            except Exception as e:
                await self._fail("add", e)
                raise

            self._transactions.insert(0, transaction)
            await self._refresh_totals("add", transaction.id)
            await self._publish(ChangeEventType.TRANSACTION_ADDED, transaction.id)
            return transaction

    async def edit(self, transaction: Transaction) -> Transaction:
        """Update a transaction and replace it in place."""
        async with self._lock:
            self._error = None
            try:
                updated = await self._repository.update(transaction)
            except Exception as e:
                await self._fail("update", e, transaction.id)
                raise

            for index, existing in enumerate(self._transactions):
                if existing.id == updated.id:
                    self._transactions[index] = updated
                    break
            await self._refresh_totals("update", updated.id)
            await self._publish(ChangeEventType.TRANSACTION_UPDATED, updated.id)
            return updated

    async def remove(self, transaction_id: str) -> int:
        """Delete a transaction. Returns the number of rows removed."""
        async with self._lock:
            self._error = None
            try:
                removed = await self._repository.delete(transaction_id)
            except Exception as e:
                await self._fail("delete", e, transaction_id)
                raise

            self._transactions = [t for t in self._transactions if t.id != transaction_id]
            await self._refresh_totals("delete", transaction_id)
            await self._publish(ChangeEventType.TRANSACTION_DELETED, transaction_id)
            return removed

    async def clear_error(self) -> None:
        async with self._lock:
            self._error = None
            await self._publish(ChangeEventType.ERROR_CLEARED)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def filter_by_type(self, kind: Union[TransactionFilter, str]) -> list[Transaction]:
        """All, Income or Expense. Anything unrecognized returns the full list."""
        try:
            selected = TransactionFilter(kind)
        except ValueError:
            return list(self._transactions)

        if selected is TransactionFilter.INCOME:
            return [t for t in self._transactions if not t.is_expense]
        if selected is TransactionFilter.EXPENSE:
            return [t for t in self._transactions if t.is_expense]
        return list(self._transactions)

    def search(self, query: str) -> list[Transaction]:
        """Case-insensitive substring match on title or category."""
        if not query:
            return list(self._transactions)
        needle = query.lower()
        return [
            t for t in self._transactions
            if needle in t.title.lower() or needle in t.category.lower()
        ]

    def view(
        self,
        kind: Union[TransactionFilter, str] = TransactionFilter.ALL,
        query: str = "",
    ) -> list[Transaction]:
        """Search, then narrow by type; what the transaction list shows."""
        matches = {t.id for t in self.filter_by_type(kind)}
        return [t for t in self.search(query) if t.id in matches]

    def recent(self, n: Optional[int] = None) -> list[Transaction]:
        """The first n transactions of the current list (default: recent_limit)."""
        limit = self._recent_limit if n is None else n
        if limit <= 0:
            return []
        return self._transactions[:limit]
