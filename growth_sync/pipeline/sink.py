"""
Upsert Sink

Writes rows to one table keyed by its natural key. Tries a single batched
upsert first; on a conflict falls back to row-at-a-time writes.
"""

import logging
from typing import Optional, Union

from growth_sync.errors import StorageWriteFailed
from growth_sync.models.entities import TaskError, UpsertResult
from growth_sync.models.tables import TableSpec
from growth_sync.storage.base import Storage
from growth_sync.utils.clock import Clock
from growth_sync.utils.config import RateLimitConfig

logger = logging.getLogger(__name__)


# Postgres "ON CONFLICT DO UPDATE command cannot affect row a second time"
CARDINALITY_VIOLATION = "21000"


def _is_duplicate(error: StorageWriteFailed) -> bool:
    return error.conflict or "already exists" in str(error)


def _needs_row_fallback(error: StorageWriteFailed) -> bool:
    return _is_duplicate(error) or error.code == CARDINALITY_VIOLATION


def _row_label(row: dict, table: TableSpec) -> str:
    return str(row.get(table.conflict_key[0]) or "")


def _error_for(error: StorageWriteFailed, row: dict, table: TableSpec) -> TaskError:
    return TaskError(
        type=error.error_type,
        code=error.code,
        message=str(error),
        profile=_row_label(row, table),
    )


class UpsertSink:
    """Idempotent writer for one store."""

    def __init__(
        self,
        storage: Storage,
        config: RateLimitConfig,
        clock: Optional[Clock] = None,
    ):
        self.storage = storage
        self.config = config
        self.clock = clock or Clock()

    async def upsert_batch(
        self,
        rows: list[dict],
        table: TableSpec,
        conflict_key: Optional[Union[str, tuple[str, ...]]] = None,
    ) -> UpsertResult:
        """Upsert rows into table.

        inserted + skipped + len(errors) always equals len(rows).

        Raises:
            ValueError: if conflict_key is given and differs from the table's natural key
        """
        if conflict_key is not None:
            requested = (
                tuple(c.strip() for c in conflict_key.split(","))
                if isinstance(conflict_key, str) else tuple(conflict_key)
            )
            if requested != table.conflict_key:
                raise ValueError(
                    f"Conflict key {requested} does not match the natural key of "
                    f"{table.name} {table.conflict_key}"
                )

        result = UpsertResult()
        valid: list[dict] = []
        positions: dict[tuple, int] = {}
        for row in rows:
            missing = table.missing_columns(row)
            if missing:
                logger.debug(f"Skipping row for {table.name}: missing {', '.join(missing)}")
                result.skipped += 1
                continue

            # one write per natural key; later values win
            key = table.key_of(row)
            if key in positions:
                logger.debug(f"Merging repeated key {key} in batch for {table.name}")
                valid[positions[key]] = {**valid[positions[key]], **row}
                result.skipped += 1
                continue
            positions[key] = len(valid)
            valid.append(row)

        if not valid:
            return result

        logger.info(f"Upserting {len(valid)} rows into {table.name}")
        try:
            await self.storage.upsert(table.name, valid, table.on_conflict)
            result.inserted += len(valid)
            return result
        except StorageWriteFailed as e:
            if not _needs_row_fallback(e):
                logger.error(f"Batch upsert into {table.name} failed: {e}")
                result.errors.extend(_error_for(e, row, table) for row in valid)
                return result
            logger.warning(f"Conflict on batch upsert into {table.name}, writing rows one by one")

        result.used_fallback = True
        for i, row in enumerate(valid):
            try:
                await self.storage.upsert(table.name, [row], table.on_conflict)
                result.inserted += 1
            except StorageWriteFailed as e:
                if _is_duplicate(e):
                    result.skipped += 1
                else:
                    logger.error(f"Row upsert into {table.name} failed: {e}")
                    result.errors.append(_error_for(e, row, table))

            every = self.config.pause_every_n_inserts
            if every and (i + 1) % every == 0 and i < len(valid) - 1:
                await self.clock.sleep(self.config.pause_insert_batch)

        logger.info(
            f"{table.name}: {result.inserted} upserted, {result.skipped} skipped, "
            f"{len(result.errors)} errors"
        )
        return result
