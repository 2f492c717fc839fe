"""
Transaction Repository

The only reader and writer of transaction rows. It enforces the data
model invariants the record store does not know about:

- ids and timestamps are assigned here, never by the caller
- amounts must be positive and titles non-empty, checked before any
  store call
- every update refreshes updated_at and resets is_synced
- totals are always recomputed from the store with aggregate queries;
  there is no running counter that could drift from the rows
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from finance_tracker.models.transaction import (
    Totals,
    Transaction,
    as_datetime,
    end_of_day,
    new_transaction_id,
    to_money,
    to_utc,
    utcnow,
)
from finance_tracker.repository.errors import TransactionNotFoundError, ValidationError
from finance_tracker.storage.interface import (
    OrderBy,
    RangeFilter,
    RecordQuery,
    RecordStore,
)
from finance_tracker.storage.schema import TRANSACTIONS_TABLE


logger = structlog.get_logger(__name__)

NEWEST_FIRST = OrderBy(field="date", descending=True)


def _describe(error: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'transaction'}: {err['msg']}"
        for err in error.errors()
    )


def _check_title_and_amount(title: Any, amount: Any) -> None:
    if title is None or not str(title).strip():
        raise ValidationError("title is required")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationError(f"amount invalid: {amount!r}") from e
    if not value.is_finite() or value <= 0:
        raise ValidationError("amount must be greater than zero")


class TransactionRepository:
    """
    Typed CRUD facade over a RecordStore.

    The store is injected and owned by the caller, who opens and
    closes it. clock and id_factory are injectable for tests.
    """

    def __init__(
        self,
        store: RecordStore,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self._store = store
        self._clock = clock or utcnow
        self._id_factory = id_factory or new_transaction_id

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now

    @staticmethod
    def _build(**fields: Any) -> Transaction:
        try:
            return Transaction(**fields)
        except PydanticValidationError as e:
            raise ValidationError(_describe(e)) from e

    # -------------------------------------------------------------------------
    # Create / read
    # -------------------------------------------------------------------------

    async def create(
        self,
        user_id: str,
        *,
        title: str,
        amount: Union[Decimal, float, int, str],
        category: str,
        date: Union[datetime, date],
        is_expense: bool,
        notes: Optional[str] = None,
    ) -> Transaction:
        """
        Create and persist a new transaction.

        Returns:
            The fully populated transaction

        Raises:
            ValidationError: If amount <= 0 or title is empty
            ConstraintViolationError: If the store rejects the row
        """
        _check_title_and_amount(title, amount)

        now = self._now()
        transaction = self._build(
            id=self._id_factory(),
            user_id=user_id,
            title=title,
            amount=amount,
            category=category,
            notes=notes,
            date=date,
            is_expense=is_expense,
            is_synced=False,
            created_at=now,
            updated_at=now,
        )

        await self._store.insert(TRANSACTIONS_TABLE, transaction.to_row())
        logger.info(
            "transaction_created",
            transaction_id=transaction.id,
            user_id=user_id,
            is_expense=transaction.is_expense,
        )
        return transaction

    async def get_all(self, user_id: str) -> list[Transaction]:
        """All transactions for a user, newest date first (ties keep insertion order)."""
        rows = await self._store.query(
            TRANSACTIONS_TABLE,
            RecordQuery(where={"user_id": user_id}, order_by=NEWEST_FIRST),
        )
        return [Transaction.from_row(row) for row in rows]

    async def get_by_date_range(
        self,
        user_id: str,
        start: Union[datetime, date],
        end: Union[datetime, date],
    ) -> list[Transaction]:
        """
        Transactions with start <= date <= end, newest first.

        A plain date as end covers that whole day. Aware bounds are
        compared in UTC, the form aware dates are stored in.

        Raises:
            ValidationError: If start is after end
        """
        start_at = as_datetime(start)
        end_at = end if isinstance(end, datetime) else end_of_day(end)
        try:
            if start_at > end_at:
                raise ValidationError("start must not be after end")
        except TypeError as e:
            raise ValidationError(
                "start and end must both be naive or both be timezone-aware"
            ) from e

        rows = await self._store.query(
            TRANSACTIONS_TABLE,
            RecordQuery(
                where={"user_id": user_id},
                between=RangeFilter(
                    field="date",
                    start=to_utc(start_at).isoformat(),
                    end=to_utc(end_at).isoformat(),
                ),
                order_by=NEWEST_FIRST,
            ),
        )
        return [Transaction.from_row(row) for row in rows]

    async def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        """The transaction, or None when the id does not exist."""
        rows = await self._store.query(
            TRANSACTIONS_TABLE,
            RecordQuery(where={"id": transaction_id}, limit=1),
        )
        if not rows:
            return None
        return Transaction.from_row(rows[0])

    async def get_unsynced(self, user_id: str) -> list[Transaction]:
        """Transactions not yet pushed to the remote backend."""
        rows = await self._store.query(
            TRANSACTIONS_TABLE,
            RecordQuery(where={"user_id": user_id, "is_synced": 0}),
        )
        return [Transaction.from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # Update / delete
    # -------------------------------------------------------------------------

    async def update(self, transaction: Transaction) -> Transaction:
        """
        Replace a stored transaction by id.

        updated_at is set to now (always later than the stored value),
        is_synced is reset and the stored created_at is kept.

        Raises:
            TransactionNotFoundError: If the id does not exist
            ValidationError: If the new values are invalid
        """
        _check_title_and_amount(transaction.title, transaction.amount)

        existing = await self.get_by_id(transaction.id)
        if existing is None:
            raise TransactionNotFoundError(transaction.id)

        now = self._now()
        if now <= existing.updated_at:
            now = existing.updated_at + timedelta(microseconds=1)

        updated = self._build(
            **{
                **transaction.model_dump(),
                "created_at": existing.created_at,
                "updated_at": now,
                "is_synced": False,
            }
        )

        row = updated.to_row()
        del row["id"]
        count = await self._store.update(TRANSACTIONS_TABLE, row, {"id": updated.id})
        if count == 0:
            # Deleted between the lookup and the write
            raise TransactionNotFoundError(transaction.id)

        logger.info("transaction_updated", transaction_id=updated.id, user_id=updated.user_id)
        return updated

    async def delete(self, transaction_id: str) -> int:
        """
        Hard-delete a transaction. Deleting a missing id is not an error.

        Returns:
            Number of rows removed (0 or 1)
        """
        removed = await self._store.delete(TRANSACTIONS_TABLE, {"id": transaction_id})
        logger.info("transaction_deleted", transaction_id=transaction_id, removed=removed)
        return removed

    async def mark_synced(self, transaction_ids: Iterable[str]) -> int:
        """
        Flag transactions as synced. Missing ids are skipped.

        Returns:
            Number of transactions marked
        """
        unique_ids = list(dict.fromkeys(transaction_ids))
        marked = 0
        for transaction_id in unique_ids:
            marked += await self._store.update(
                TRANSACTIONS_TABLE,
                {"is_synced": 1},
                {"id": transaction_id},
            )

        logger.info(
            "transactions_marked_synced",
            requested=len(unique_ids),
            marked=marked,
            skipped=len(unique_ids) - marked,
        )
        return marked

    async def clear_all(self, user_id: Optional[str] = None) -> int:
        """Delete a user's transactions, or every transaction when user_id is None."""
        where = {"user_id": user_id} if user_id is not None else None
        removed = await self._store.delete(TRANSACTIONS_TABLE, where)
        logger.warning("transactions_cleared", user_id=user_id, removed=removed)
        return removed

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    async def _sum_amount(self, user_id: str, is_expense: bool) -> Decimal:
        total = await self._store.aggregate(
            TRANSACTIONS_TABLE,
            "amount",
            {"user_id": user_id, "is_expense": 1 if is_expense else 0},
        )
        return to_money(total)

    async def get_total_income(self, user_id: str) -> Decimal:
        return await self._sum_amount(user_id, is_expense=False)

    async def get_total_expense(self, user_id: str) -> Decimal:
        return await self._sum_amount(user_id, is_expense=True)

    async def get_total_balance(self, user_id: str) -> Decimal:
        """Income minus expense, from two aggregate queries."""
        income = await self.get_total_income(user_id)
        expense = await self.get_total_expense(user_id)
        return income - expense

    async def get_totals(self, user_id: str) -> Totals:
        income = await self.get_total_income(user_id)
        expense = await self.get_total_expense(user_id)
        return Totals.from_sums(income, expense)
