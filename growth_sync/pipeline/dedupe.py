"""
Deduplication

Merges views of the same subject across pages, applies recency windows and
splits rows into new vs. already-stored.
"""

import logging
from typing import Any, Callable, Iterable, Union

from growth_sync.models.entities import NormalizedView

logger = logging.getLogger(__name__)

PROFILE_VIEW_WINDOW_HOURS = 24
STRATEGIC_SEARCH_WINDOW_HOURS = 72


def _more_recent(candidate: NormalizedView, current: NormalizedView) -> bool:
    if candidate.age_hours is None:
        return False
    if current.age_hours is None:
        return True
    return candidate.age_hours < current.age_hours


def dedupe_latest(views: Iterable[NormalizedView]) -> list[NormalizedView]:
    """Keep one view per subject_id: the one with the smallest age.

    Unknown age loses to any known age; ties keep the first seen. Output
    order follows first appearance.
    """
    kept: dict[str, NormalizedView] = {}
    for view in views:
        current = kept.get(view.subject_id)
        if current is None or _more_recent(view, current):
            kept[view.subject_id] = view
    return list(kept.values())


def filter_age_window(views: Iterable[NormalizedView], window_hours: float) -> list[NormalizedView]:
    """Keep views whose age is known and at most window_hours (inclusive)."""
    result = []
    for view in views:
        if view.age_hours is None:
            logger.debug(f"Excluded {view.subject_id}: unknown age")
            continue
        if view.age_hours > window_hours:
            continue
        result.append(view)
    return result


KeyFn = Callable[[Any], Any]


def split_new(
    rows: Iterable[Any],
    existing_keys: Iterable[Any],
    key: Union[str, KeyFn],
) -> tuple[list, list]:
    """Split rows into (new, duplicates) by membership of key in existing_keys."""
    key_fn: KeyFn = (lambda row: row[key]) if isinstance(key, str) else key
    existing = set(existing_keys)
    new, duplicates = [], []
    for row in rows:
        (duplicates if key_fn(row) in existing else new).append(row)
    return new, duplicates
