"""
Abstract Record Store Interface

The record store is durable, table-addressed row storage. Two backends
implement it: SQLite (native persistence) and an in-memory store for
environments without it. The backend is picked once at startup; the
repository above only ever sees this interface.

No SQL crosses the interface. Queries are expressed as a RecordQuery
(equality filters, one inclusive range, ordering, limit) so every
backend can implement every query fully.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


Row = dict[str, Any]


class OrderBy(BaseModel):
    """Sort on one column. Ties always keep insertion order."""
    model_config = ConfigDict(frozen=True)

    field: str
    descending: bool = False


class RangeFilter(BaseModel):
    """Inclusive range: start <= field <= end."""
    model_config = ConfigDict(frozen=True)

    field: str
    start: Any
    end: Any


class RecordQuery(BaseModel):
    """
    Structured query accepted by every record store.

    All where entries must match (equality). Without order_by rows come
    back in insertion order.
    """
    model_config = ConfigDict(frozen=True)

    where: dict[str, Any] = Field(default_factory=dict)
    between: Optional[RangeFilter] = None
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = Field(default=None, ge=1)


class RecordStore(ABC):
    """
    Abstract interface for row storage.

    Any storage implementation (SQLite, in-memory, ...) must implement
    these methods. Operations on a store that is not open raise
    StorageUnavailableError.
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True between a successful open() and close()."""

    @abstractmethod
    async def open(self) -> None:
        """
        Open the underlying medium and make sure the schema exists.

        Opening an already open store is a no-op.

        Raises:
            StorageUnavailableError: If the medium cannot be opened
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying medium. Closing twice is a no-op."""

    @abstractmethod
    async def insert(self, table: str, row: Mapping[str, Any]) -> None:
        """
        Insert one row. The caller fills every field.

        Args:
            table: Table name
            row: Column -> value mapping

        Raises:
            ConstraintViolationError: Duplicate primary key or missing required column
            UnsupportedOperationError: Unknown table or column
        """

    @abstractmethod
    async def query(
        self,
        table: str,
        query: Optional[RecordQuery] = None,
    ) -> list[Row]:
        """
        Fetch matching rows.

        Args:
            table: Table name
            query: Filters, ordering and limit (everything when None)

        Returns:
            Matching rows as plain dicts, ordered as requested
        """

    @abstractmethod
    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        where: Mapping[str, Any],
    ) -> int:
        """
        Merge values into every row matching where.

        Returns:
            Number of rows updated

        Raises:
            ConstraintViolationError: If the new values break a constraint
        """

    @abstractmethod
    async def delete(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """
        Remove matching rows, or every row when where is None.

        Returns:
            Number of rows removed
        """

    @abstractmethod
    async def aggregate(
        self,
        table: str,
        field: str,
        where: Optional[Mapping[str, Any]] = None,
    ) -> float:
        """
        Sum a numeric column over matching rows.

        Returns:
            The sum, 0 when no rows match (never None)
        """


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageUnavailableError(StorageError):
    """The storage medium cannot be opened or used."""
    pass


class ConstraintViolationError(StorageError):
    """A uniqueness or required-field constraint was violated."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class UnsupportedOperationError(StorageError):
    """The store cannot answer this request (unknown table or column)."""
    pass
