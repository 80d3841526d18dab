"""Store interfaces (repository pattern).

The marketplace data lives behind a row-level CRUD API. Stores expose exactly that:
single-row writes keyed by id and equality-filtered reads. No operation spans more
than one row, so callers that need several writes to succeed together must
sequence and compensate them themselves.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

Row = dict[str, Any]


class DataStoreError(Exception):
    """A data store call failed (transport, HTTP error, constraint violation)."""

    def __init__(self, message: str, table: str, operation: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.table = table
        self.operation = operation
        self.status_code = status_code

    def __str__(self) -> str:
        status = f" (HTTP {self.status_code})" if self.status_code else ""
        return f"{self.operation} {self.table} failed{status}: {self.args[0]}"


class DataStore(ABC):
    """Interface for row-level persistence operations."""

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """Insert one row and return it as stored (with id and defaults)."""
        ...

    @abstractmethod
    async def get(self, table: str, row_id: str) -> Optional[Row]:
        """Return a row by id, or None if it does not exist."""
        ...

    @abstractmethod
    async def select(self, table: str, order_by: Optional[str] = None, **filters: Any) -> list[Row]:
        """Return rows whose columns equal every filter value.

        A list value matches any of its members. `order_by` is a column name,
        prefixed with "-" for descending.
        """
        ...

    @abstractmethod
    async def update(self, table: str, row_id: str, values: Row) -> Row:
        """Update one row and return it. Raises DataStoreError if no row matched."""
        ...

    @abstractmethod
    async def delete(self, table: str, row_id: str) -> None:
        """Delete one row. Raises DataStoreError if no row matched."""
        ...
