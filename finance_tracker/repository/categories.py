"""Read access to the seeded category table."""

from typing import Optional

from finance_tracker.models.category import Category
from finance_tracker.storage.interface import RecordQuery, RecordStore
from finance_tracker.storage.schema import CATEGORIES_TABLE


class CategoryRepository:
    """
    Lists the category menu: the defaults plus a user's own categories.

    Transactions store the category name as free text, so nothing here
    is consulted when a transaction is written.
    """

    def __init__(self, store: RecordStore):
        self._store = store

    async def list_categories(
        self,
        user_id: Optional[str] = None,
        is_expense: Optional[bool] = None,
    ) -> list[Category]:
        where = {} if is_expense is None else {"is_expense": 1 if is_expense else 0}
        rows = await self._store.query(CATEGORIES_TABLE, RecordQuery(where=where))
        return [
            Category.from_row(row)
            for row in rows
            if row["user_id"] is None or row["user_id"] == user_id
        ]

    async def get_by_name(
        self,
        name: str,
        user_id: Optional[str] = None,
    ) -> Optional[Category]:
        wanted = name.strip().lower()
        for category in await self.list_categories(user_id=user_id):
            if category.name.lower() == wanted:
                return category
        return None
