"""
Backing Store Interface

Abstract contract shared by the PostgREST store and the in-memory store.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional


class Storage(ABC):
    """Abstract base class for the backing store.

    Rows are plain dicts. Writes are upserts keyed by a table's natural key,
    so replaying the same rows never creates duplicates.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        columns: str = "*",
        eq: Optional[dict[str, Any]] = None,
        in_: Optional[dict[str, list]] = None,
        not_null: Optional[list[str]] = None,
        gte: Optional[dict[str, Any]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict]:
        """Return rows matching every given filter.

        Args:
            table: Table name
            columns: Comma-separated column list, or "*"
            eq: column -> value equality filters
            in_: column -> allowed values
            not_null: columns that must be non-null
            gte: column -> lower bound (inclusive)
            order: "column" or "column.desc"
            limit: Maximum number of rows
            offset: Rows to skip before returning
        """
        pass

    @abstractmethod
    async def upsert(self, table: str, rows: list[dict], on_conflict: str) -> None:
        """Insert rows, merging into existing rows that share the conflict key.

        Raises:
            StorageWriteFailed: when the store rejects the write
        """
        pass

    @abstractmethod
    async def count_since(self, table: str, column: str, since: datetime) -> int:
        """Count rows whose column is >= since."""
        pass

    async def get_one(
        self,
        table: str,
        column: str,
        value: Any,
        columns: str = "*",
    ) -> Optional[dict]:
        """Point lookup: first row where column == value, or None."""
        rows = await self.select(table, columns=columns, eq={column: value}, limit=1)
        return rows[0] if rows else None

    async def last_value(self, table: str, column: str) -> Optional[Any]:
        """Largest value of column in table, or None when the table is empty."""
        rows = await self.select(table, columns=column, order=f"{column}.desc", limit=1)
        if not rows:
            return None
        return rows[0].get(column)

    async def aclose(self) -> None:
        """Release any underlying connections."""
        return None
