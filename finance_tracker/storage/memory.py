"""
In-Memory Record Store

Fallback backend for platforms without native persistence. Rows live in
a dict of table name -> ordered list of row dicts, so data is lost when
the process ends.

It implements the whole RecordStore contract, not an approximation:
equality filters, the inclusive range, stable ordering, limits, update
and delete counts, and sums. It enforces the same primary-key and
required-column constraints as the SQLite schema. Anything outside the
schema raises UnsupportedOperationError instead of returning an empty
result.
"""

from typing import Any, Mapping, Optional

import structlog

from finance_tracker.storage.interface import (
    ConstraintViolationError,
    RecordQuery,
    RecordStore,
    Row,
    StorageUnavailableError,
)
from finance_tracker.storage.schema import (
    CATEGORIES_TABLE,
    DEFAULT_CATEGORIES,
    TABLES,
    TableSpec,
    check_columns,
    check_required,
    get_table,
)


logger = structlog.get_logger(__name__)


def _matches(row: Row, where: Optional[Mapping[str, Any]]) -> bool:
    if not where:
        return True
    return all(row.get(column) == value for column, value in where.items())


def _in_range(row: Row, query: RecordQuery) -> bool:
    if query.between is None:
        return True
    value = row.get(query.between.field)
    # NULL never satisfies a range, as in SQL
    if value is None:
        return False
    return query.between.start <= value <= query.between.end


def _sort_key(field: str):
    # NULLs sort first ascending and last descending, as in SQLite
    def key(row: Row) -> tuple:
        value = row.get(field)
        return (value is not None, value)
    return key


class InMemoryRecordStore(RecordStore):
    """In-process implementation of the record store."""

    def __init__(self):
        self._tables: dict[str, list[Row]] = {name: [] for name in TABLES}
        self._is_open = False
        self._seeded = False

    @property
    def is_open(self) -> bool:
        return self._is_open

    async def open(self) -> None:
        if self._is_open:
            return
        self._is_open = True
        if not self._seeded:
            existing = {row["id"] for row in self._tables[CATEGORIES_TABLE]}
            for category in DEFAULT_CATEGORIES:
                if category["id"] not in existing:
                    self._tables[CATEGORIES_TABLE].append(dict(category))
            self._seeded = True
        logger.info("store_opened", backend="memory")

    async def close(self) -> None:
        if self._is_open:
            self._is_open = False
            logger.info("store_closed", backend="memory")

    def _rows(self, table: str) -> tuple[TableSpec, list[Row]]:
        if not self._is_open:
            raise StorageUnavailableError("Store is not open")
        spec = get_table(table)
        return spec, self._tables[spec.name]

    async def insert(self, table: str, row: Mapping[str, Any]) -> None:
        spec, rows = self._rows(table)
        check_columns(spec, row.keys())
        check_required(spec, row)

        key = row[spec.primary_key]
        if any(existing[spec.primary_key] == key for existing in rows):
            raise ConstraintViolationError(
                f"insert on {spec.name} violates a constraint: "
                f"duplicate {spec.primary_key} {key!r}"
            )

        # Unset optional columns are stored as NULL, like SQLite does
        rows.append({column: row.get(column) for column in spec.columns})

    async def query(
        self,
        table: str,
        query: Optional[RecordQuery] = None,
    ) -> list[Row]:
        spec, rows = self._rows(table)
        query = query or RecordQuery()
        check_columns(spec, query.where.keys())
        if query.between is not None:
            check_columns(spec, [query.between.field])

        results = [
            row for row in rows
            if _matches(row, query.where) and _in_range(row, query)
        ]

        if query.order_by is not None:
            check_columns(spec, [query.order_by.field])
            # list.sort is stable, also with reverse=True
            results.sort(
                key=_sort_key(query.order_by.field),
                reverse=query.order_by.descending,
            )

        if query.limit is not None:
            results = results[:query.limit]

        return [dict(row) for row in results]

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        where: Mapping[str, Any],
    ) -> int:
        spec, rows = self._rows(table)
        if not values:
            return 0
        check_columns(spec, values.keys())
        check_columns(spec, where.keys())
        check_required(spec, values, partial=True)

        targets = [i for i, row in enumerate(rows) if _matches(row, where)]

        new_key = values.get(spec.primary_key)
        if new_key is not None:
            clashes = [
                i for i, row in enumerate(rows)
                if row[spec.primary_key] == new_key and i not in targets
            ]
            if targets and (clashes or len(targets) > 1):
                raise ConstraintViolationError(
                    f"update on {spec.name} violates a constraint: "
                    f"duplicate {spec.primary_key} {new_key!r}"
                )

        for i in targets:
            rows[i] = {**rows[i], **values}
        return len(targets)

    async def delete(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
    ) -> int:
        spec, rows = self._rows(table)
        if where:
            check_columns(spec, where.keys())

        kept = [row for row in rows if not _matches(row, where)]
        removed = len(rows) - len(kept)
        self._tables[spec.name] = kept
        return removed

    async def aggregate(
        self,
        table: str,
        field: str,
        where: Optional[Mapping[str, Any]] = None,
    ) -> float:
        spec, rows = self._rows(table)
        check_columns(spec, [field])
        if where:
            check_columns(spec, where.keys())

        return float(sum(
            row[field] for row in rows
            if _matches(row, where) and row.get(field) is not None
        ))
