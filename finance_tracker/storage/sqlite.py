"""
SQLite Record Store

Native persistence backend built on aiosqlite.

- One connection per store, opened explicitly by open() and released
  by close(); nothing is opened lazily behind the caller's back
- WAL journal mode and a busy timeout for reliability
- Opening is retried with exponential back-off (tenacity)
- Every write runs inside transaction(): commit on success, rollback
  on error, so a failed write never leaves partial rows behind
- Driver errors are translated into the StorageError family
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Iterator, Mapping, Optional, Union

import aiosqlite
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

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
    SCHEMA_SQL,
    TableSpec,
    check_columns,
    check_required,
    get_table,
)


logger = structlog.get_logger(__name__)

MEMORY_PATH = ":memory:"


class SQLiteRecordStore(RecordStore):
    """SQLite implementation of the record store."""

    def __init__(
        self,
        path: Union[str, Path],
        busy_timeout_ms: int = 5000,
        open_retry_attempts: int = 3,
    ):
        self.path = path if str(path) == MEMORY_PATH else Path(path)
        self._busy_timeout_ms = busy_timeout_ms
        self._open_retry_attempts = open_retry_attempts
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> None:
        async with self._lock:
            if self._connection is not None:
                return
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self._open_retry_attempts),
                    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
                    retry=retry_if_exception_type((sqlite3.Error, OSError)),
                    reraise=True,
                ):
                    with attempt:
                        self._connection = await self._connect()
            except (sqlite3.Error, OSError) as e:
                logger.error("store_open_failed", path=str(self.path), error=str(e))
                raise StorageUnavailableError(
                    f"Could not open database at {self.path}: {e}"
                ) from e

        logger.info("store_opened", backend="sqlite", path=str(self.path))

    async def _connect(self) -> aiosqlite.Connection:
        if isinstance(self.path, Path):
            self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(self.path)
        conn.row_factory = aiosqlite.Row
        try:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
            await conn.execute("PRAGMA foreign_keys=ON")
            await conn.executescript(SCHEMA_SQL)
            await self._seed_categories(conn)
            await conn.commit()
        except Exception:
            await conn.close()
            raise
        return conn

    async def _seed_categories(self, conn: aiosqlite.Connection) -> None:
        spec = get_table(CATEGORIES_TABLE)
        columns = ", ".join(spec.columns)
        placeholders = ", ".join("?" for _ in spec.columns)
        await conn.executemany(
            f"INSERT OR IGNORE INTO {spec.name} ({columns}) VALUES ({placeholders})",
            [tuple(row[c] for c in spec.columns) for row in DEFAULT_CATEGORIES],
        )

    async def close(self) -> None:
        async with self._lock:
            if self._connection is not None:
                await self._connection.close()
                self._connection = None
                logger.info("store_closed", backend="sqlite", path=str(self.path))

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StorageUnavailableError("Store is not open")
        return self._connection

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Transaction context manager with automatic rollback on error.

        Usage:
            async with store.transaction() as conn:
                await conn.execute("INSERT ...")
                await conn.execute("UPDATE ...")
        """
        conn = self._require_connection()
        try:
            yield conn
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise

    @contextmanager
    def _translate_errors(self, operation: str, table: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.IntegrityError as e:
            raise ConstraintViolationError(
                f"{operation} on {table} violates a constraint: {e}"
            ) from e
        except sqlite3.Error as e:
            logger.error("store_operation_failed", operation=operation, table=table, error=str(e))
            raise StorageUnavailableError(f"{operation} on {table} failed: {e}") from e

    # -------------------------------------------------------------------------
    # SQL building
    # -------------------------------------------------------------------------

    @staticmethod
    def _where_sql(
        spec: TableSpec,
        where: Optional[Mapping[str, Any]],
        query: Optional[RecordQuery] = None,
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        if where:
            check_columns(spec, where.keys())
            for column, value in where.items():
                # IS is a null-safe equality
                clauses.append(f"{column} IS ?")
                params.append(value)

        if query is not None and query.between is not None:
            check_columns(spec, [query.between.field])
            clauses.append(f"{query.between.field} >= ? AND {query.between.field} <= ?")
            params.extend([query.between.start, query.between.end])

        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def insert(self, table: str, row: Mapping[str, Any]) -> None:
        spec = get_table(table)
        check_columns(spec, row.keys())
        check_required(spec, row)

        columns = list(row.keys())
        sql = (
            f"INSERT INTO {spec.name} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        with self._translate_errors("insert", spec.name):
            async with self.transaction() as conn:
                await conn.execute(sql, tuple(row[c] for c in columns))

    async def query(
        self,
        table: str,
        query: Optional[RecordQuery] = None,
    ) -> list[Row]:
        spec = get_table(table)
        query = query or RecordQuery()
        where_sql, params = self._where_sql(spec, query.where, query)

        order_sql = " ORDER BY rowid ASC"
        if query.order_by is not None:
            check_columns(spec, [query.order_by.field])
            direction = "DESC" if query.order_by.descending else "ASC"
            order_sql = f" ORDER BY {query.order_by.field} {direction}, rowid ASC"

        limit_sql = ""
        if query.limit is not None:
            limit_sql = " LIMIT ?"
            params.append(query.limit)

        sql = f"SELECT * FROM {spec.name}{where_sql}{order_sql}{limit_sql}"
        with self._translate_errors("query", spec.name):
            conn = self._require_connection()
            cursor = await conn.execute(sql, params)
            rows = await cursor.fetchall()
            await cursor.close()
        return [dict(row) for row in rows]

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        where: Mapping[str, Any],
    ) -> int:
        spec = get_table(table)
        if not values:
            return 0
        check_columns(spec, values.keys())
        check_required(spec, values, partial=True)
        where_sql, where_params = self._where_sql(spec, where)

        set_sql = ", ".join(f"{column} = ?" for column in values)
        sql = f"UPDATE {spec.name} SET {set_sql}{where_sql}"
        with self._translate_errors("update", spec.name):
            async with self.transaction() as conn:
                cursor = await conn.execute(sql, [*values.values(), *where_params])
                return cursor.rowcount

    async def delete(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
    ) -> int:
        spec = get_table(table)
        where_sql, params = self._where_sql(spec, where)

        with self._translate_errors("delete", spec.name):
            async with self.transaction() as conn:
                cursor = await conn.execute(f"DELETE FROM {spec.name}{where_sql}", params)
                return cursor.rowcount

    async def aggregate(
        self,
        table: str,
        field: str,
        where: Optional[Mapping[str, Any]] = None,
    ) -> float:
        spec = get_table(table)
        check_columns(spec, [field])
        where_sql, params = self._where_sql(spec, where)

        sql = f"SELECT COALESCE(SUM({field}), 0) AS total FROM {spec.name}{where_sql}"
        with self._translate_errors("aggregate", spec.name):
            conn = self._require_connection()
            cursor = await conn.execute(sql, params)
            row = await cursor.fetchone()
            await cursor.close()
        return float(row["total"]) if row is not None else 0.0
