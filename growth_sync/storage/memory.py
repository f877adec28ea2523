"""
In-Memory Store

Same contract as the PostgREST store, kept in process. Used by tests and by
--dry-run. Enforces natural-key uniqueness with merge semantics.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from growth_sync.errors import StorageWriteFailed
from growth_sync.storage.base import Storage

logger = logging.getLogger(__name__)


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _gte(value: Any, bound: Any) -> bool:
    if value is None:
        return False
    if isinstance(bound, (datetime, date)) or isinstance(value, (datetime, date)):
        left, right = _as_datetime(value), _as_datetime(bound)
        if left is None or right is None:
            return False
        return left >= right
    return value >= bound


class MemoryStorage(Storage):
    """Dict-of-lists store.

    Tests may queue write failures per table with queue_error(); each upsert
    call consumes one queued entry (None means the call succeeds).
    """

    def __init__(self, tables: Optional[dict[str, list[dict]]] = None):
        self.tables: dict[str, list[dict]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.upsert_calls: list[tuple[str, int, str]] = []
        self._queued_errors: dict[str, list[Optional[Exception]]] = {}

    def rows(self, table: str) -> list[dict]:
        return self.tables.setdefault(table, [])

    def queue_error(self, table: str, error: Optional[Exception]) -> None:
        self._queued_errors.setdefault(table, []).append(error)

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
        result = []
        for row in self.rows(table):
            if eq and any(row.get(col) != val for col, val in eq.items()):
                continue
            if in_ and any(row.get(col) not in vals for col, vals in in_.items()):
                continue
            if not_null and any(row.get(col) is None for col in not_null):
                continue
            if gte and not all(_gte(row.get(col), bound) for col, bound in gte.items()):
                continue
            result.append(row)

        if order:
            col, _, direction = order.partition(".")
            present = [r for r in result if r.get(col) is not None]
            missing = [r for r in result if r.get(col) is None]
            present.sort(key=lambda r: r[col], reverse=direction == "desc")
            result = present + missing

        if offset:
            result = result[offset:]
        if limit is not None:
            result = result[:limit]

        if columns.strip() == "*":
            return [dict(r) for r in result]
        wanted = [c.strip() for c in columns.split(",")]
        return [{c: r.get(c) for c in wanted} for r in result]

    async def upsert(self, table: str, rows: list[dict], on_conflict: str) -> None:
        self.upsert_calls.append((table, len(rows), on_conflict))

        queued = self._queued_errors.get(table)
        if queued:
            error = queued.pop(0)
            if error is not None:
                raise error

        key_cols = [c.strip() for c in on_conflict.split(",") if c.strip()]
        if not key_cols:
            raise StorageWriteFailed(f"No conflict key given for {table}", status=400)

        stored = self.rows(table)
        index = {tuple(r.get(c) for c in key_cols): r for r in stored}
        for row in rows:
            key = tuple(row.get(c) for c in key_cols)
            existing = index.get(key)
            if existing is not None:
                existing.update(row)
            else:
                new_row = dict(row)
                stored.append(new_row)
                index[key] = new_row

        logger.debug(f"Upserted {len(rows)} rows into {table} (memory)")

    async def count_since(self, table: str, column: str, since: datetime) -> int:
        return len(await self.select(table, columns=column, gte={column: since}))
