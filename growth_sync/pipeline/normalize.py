"""
Payload Normalization

Turns heterogeneous vendor payloads (Voyager GraphQL viewers, relations,
Sales Navigator search results) into NormalizedView records. Inbox payloads
(chats, messages, attendees) are filtered but kept as vendor dicts.
"""

import logging
from typing import Any, Callable, NamedTuple, Optional, Sequence

from growth_sync.errors import MalformedResponse
from growth_sync.models.entities import NormalizedView
from growth_sync.utils.clock import Clock
from growth_sync.utils.recency import (
    calculate_date,
    parse_viewed_ago,
    profile_slug,
    profile_url,
    timestamp_to_age_hours,
    timestamp_to_iso_date,
    timestamp_to_relative_time,
)

logger = logging.getLogger(__name__)

Extractor = Callable[[dict], Any]


def dig(obj: Any, *path: str) -> Any:
    """Follow nested dict keys, returning None on the first missing step."""
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def first_non_empty(obj: dict, extractors: Sequence[Extractor]) -> Any:
    """Return the first extractor result that is not None or empty."""
    for extract in extractors:
        value = extract(obj)
        if value not in (None, "", [], {}):
            return value
    return None


def _full_name(item: dict) -> Optional[str]:
    name = f"{item.get('first_name') or ''} {item.get('last_name') or ''}".strip()
    return name or None


def _slug_from_profile_url(item: dict) -> Optional[str]:
    url = item.get("public_profile_url")
    if not url or "/in/" not in url:
        return None
    return url.split("/in/", 1)[1].strip("/") or None


VIEWER_ELEMENTS: list[Extractor] = [
    lambda p: dig(p, "data", "data", "premiumDashAnalyticsObjectByAnalyticsEntity", "elements"),
    lambda p: dig(p, "data", "premiumDashAnalyticsObjectByAnalyticsEntity", "elements"),
]

RELATION_IDENTIFIERS: list[Extractor] = [
    lambda item: (item.get("public_profile_url") or "").rstrip("/"),
    lambda item: profile_url(item["public_identifier"]) if item.get("public_identifier") else None,
]

SEARCH_IDENTIFIERS: list[Extractor] = [
    lambda item: item.get("public_identifier"),
    _slug_from_profile_url,
]


class DroppedItem(NamedTuple):
    """An element removed during normalization."""
    reason: str
    label: str


class PayloadNormalizer:
    """Converts vendor payloads to NormalizedView lists.

    Elements without an identifier never reach the output; they are kept in
    `dropped` so callers can count or report them.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or Clock()
        self.dropped: list[DroppedItem] = []

    def _drop(self, reason: str, label: str) -> None:
        self.dropped.append(DroppedItem(reason, label))
        logger.debug(f"Dropped element ({reason}): {label}")

    def dropped_for(self, reason: str) -> list[DroppedItem]:
        return [d for d in self.dropped if d.reason == reason]

    def _items(self, payload: Any, key: str = "items") -> list:
        if not isinstance(payload, dict):
            raise MalformedResponse(f"Expected a JSON object, got {type(payload).__name__}")
        items = payload.get(key) or []
        if not isinstance(items, list):
            raise MalformedResponse(f"Expected '{key}' to be a list")
        return [item for item in items if isinstance(item, dict)]

    def viewers(self, payload: Any) -> list[NormalizedView]:
        """Profile viewers from the Voyager premium analytics GraphQL response."""
        if not isinstance(payload, dict):
            raise MalformedResponse(f"Expected a JSON object, got {type(payload).__name__}")

        elements = first_non_empty(payload, VIEWER_ELEMENTS)
        if not elements:
            return []

        now = self.clock.now()
        views = []
        for position, element in enumerate(elements):
            lockup = dig(element, "content", "analyticsEntityLockup", "entityLockup")
            if not isinstance(lockup, dict) or not lockup:
                # promo and upsell slots
                self._drop("no_lockup", f"index-{position}")
                continue

            navigation_url = lockup.get("navigationUrl")
            if not navigation_url:
                self._drop("no_url", f"index-{position}")
                continue
            if "/search/" in navigation_url:
                self._drop("anonymous", f"index-{position}")
                continue
            if "/in/" not in navigation_url:
                self._drop("not_a_profile", navigation_url)
                continue

            identifier = profile_slug(navigation_url)
            if not identifier:
                self._drop("missing_identifier", navigation_url)
                continue

            parsed = parse_viewed_ago(dig(lockup, "caption", "text") or "")
            age_hours, relative_text = parsed if parsed else (None, None)

            views.append(NormalizedView(
                subject_id=identifier,
                subject_url=profile_url(identifier),
                subject_name=dig(lockup, "title", "text") or "",
                subject_headline=dig(lockup, "subtitle", "text") or "",
                age_hours=age_hours,
                relative_text=relative_text,
                calculated_date=calculate_date(age_hours, now),
            ))

        return views

    def relations(self, payload: Any) -> list[NormalizedView]:
        """First-degree connections from /users/relations."""
        now = self.clock.now()
        views = []
        for position, item in enumerate(self._items(payload)):
            url = first_non_empty(item, RELATION_IDENTIFIERS)
            if not url:
                self._drop("missing_identifier", _full_name(item) or f"index-{position}")
                continue

            created_at = item.get("created_at")
            views.append(NormalizedView(
                subject_id=url,
                subject_url=url,
                subject_name=_full_name(item),
                subject_headline=item.get("headline"),
                observed_at=created_at,
                age_hours=timestamp_to_age_hours(created_at, now),
                relative_text=timestamp_to_relative_time(created_at, now) if created_at else None,
                calculated_date=timestamp_to_iso_date(created_at),
                extra={"member_id": item.get("member_id")},
            ))

        return views

    def search_results(self, payload: Any) -> list[NormalizedView]:
        """Profiles from a Sales Navigator saved search."""
        views = []
        for position, item in enumerate(self._items(payload)):
            identifier = first_non_empty(item, SEARCH_IDENTIFIERS)
            if not identifier:
                self._drop("missing_identifier", _full_name(item) or f"index-{position}")
                continue

            views.append(NormalizedView(
                subject_id=identifier,
                subject_url=item.get("public_profile_url") or profile_url(identifier),
                subject_name=_full_name(item),
                subject_headline=item.get("headline"),
                extra=item,
            ))

        return views


    def chats(self, payload: Any) -> list[dict]:
        """Inbox chats from /chats; a chat without provider_id has no thread id."""
        chats = []
        for position, item in enumerate(self._items(payload)):
            if not item.get("provider_id") or not item.get("id"):
                self._drop("missing_identifier", str(item.get("id") or f"index-{position}"))
                continue
            chats.append(item)
        return chats

    def messages(self, payload: Any) -> list[dict]:
        """Messages of one chat from /chats/{id}/messages."""
        messages = []
        for position, item in enumerate(self._items(payload)):
            if not item.get("provider_id"):
                self._drop("missing_identifier", str(item.get("id") or f"index-{position}"))
                continue
            messages.append(item)
        return messages

    def attendees(self, payload: Any) -> list[dict]:
        """Other participants of a chat; the inbox owner (is_self) is left out.

        The endpoint answers either a bare list or {"items": [...]}.
        """
        if isinstance(payload, list):
            items = [item for item in payload if isinstance(item, dict)]
        else:
            items = self._items(payload)
        return [item for item in items if not item.get("is_self") and item.get("provider_id")]
