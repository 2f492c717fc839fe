"""
Persisted Schema

Table layout shared by every store backend. SQLite gets it as DDL; the
in-memory store uses the same column lists, primary keys and required
columns to enforce identical constraints.

Only identifiers listed here are ever interpolated into SQL.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from finance_tracker.storage.interface import (
    ConstraintViolationError,
    UnsupportedOperationError,
)


TRANSACTIONS_TABLE = "transactions"
CATEGORIES_TABLE = "categories"


@dataclass(frozen=True)
class TableSpec:
    name: str
    columns: tuple[str, ...]
    primary_key: str
    required: frozenset[str]


TABLES: dict[str, TableSpec] = {
    TRANSACTIONS_TABLE: TableSpec(
        name=TRANSACTIONS_TABLE,
        columns=(
            "id",
            "user_id",
            "title",
            "amount",
            "category",
            "notes",
            "date",
            "is_expense",
            "is_synced",
            "created_at",
            "updated_at",
        ),
        primary_key="id",
        required=frozenset({
            "id",
            "user_id",
            "title",
            "amount",
            "category",
            "date",
            "is_expense",
            "is_synced",
            "created_at",
            "updated_at",
        }),
    ),
    CATEGORIES_TABLE: TableSpec(
        name=CATEGORIES_TABLE,
        columns=(
            "id",
            "name",
            "icon",
            "color",
            "is_expense",
            "user_id",
            "is_default",
        ),
        primary_key="id",
        required=frozenset({"id", "name", "icon", "is_expense", "is_default"}),
    ),
}


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS transactions (
  id TEXT PRIMARY KEY,
  user_id TEXT NOT NULL,
  title TEXT NOT NULL,
  amount REAL NOT NULL,
  category TEXT NOT NULL,
  notes TEXT,
  date TEXT NOT NULL,
  is_expense INTEGER NOT NULL CHECK(is_expense IN (0, 1)),
  is_synced INTEGER NOT NULL CHECK(is_synced IN (0, 1)),
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS categories (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  icon TEXT NOT NULL,
  color TEXT,
  is_expense INTEGER NOT NULL,
  user_id TEXT,
  is_default INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transactions_user_id ON transactions(user_id);
CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
"""


def _category(id: str, name: str, icon: str, is_expense: bool) -> dict[str, Any]:
    return {
        "id": id,
        "name": name,
        "icon": icon,
        "color": None,
        "is_expense": 1 if is_expense else 0,
        "user_id": None,
        "is_default": 1,
    }


DEFAULT_CATEGORIES: tuple[dict[str, Any], ...] = (
    # Expense categories
    _category("cat_food", "Food", "restaurant", True),
    _category("cat_transport", "Transport", "directions_car", True),
    _category("cat_shopping", "Shopping", "shopping_bag", True),
    _category("cat_entertainment", "Entertainment", "movie", True),
    _category("cat_utilities", "Utilities", "flash_on", True),
    _category("cat_health", "Health", "medical_services", True),
    # Income categories
    _category("cat_income", "Income", "work", False),
    _category("cat_investment", "Investment", "trending_up", False),
    # Catch-all
    _category("cat_other", "Other", "category", True),
)


def get_table(name: str) -> TableSpec:
    try:
        return TABLES[name]
    except KeyError:
        raise UnsupportedOperationError(f"Unknown table: {name}") from None


def check_columns(spec: TableSpec, columns: Iterable[str]) -> None:
    """Reject any column the table does not declare."""
    unknown = sorted(set(columns) - set(spec.columns))
    if unknown:
        raise UnsupportedOperationError(
            f"Unknown column(s) for {spec.name}: {', '.join(unknown)}"
        )


def check_required(spec: TableSpec, row: Mapping[str, Any], partial: bool = False) -> None:
    """
    Reject a row that leaves a required column empty.

    With partial=True only the columns present in row are checked
    (the update case).
    """
    if partial:
        missing = [c for c in row if c in spec.required and row[c] is None]
    else:
        missing = [c for c in spec.columns if c in spec.required and row.get(c) is None]
    if missing:
        raise ConstraintViolationError(
            f"Required column(s) missing for {spec.name}: {', '.join(missing)}"
        )
