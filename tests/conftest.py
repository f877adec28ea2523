"""
Pytest Configuration and Shared Fixtures
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx
import pytest

from growth_sync.errors import RateLimited
from growth_sync.jobs.base import JobServices
from growth_sync.models.entities import NotificationResult
from growth_sync.storage.memory import MemoryStorage
from growth_sync.utils.clock import FrozenClock
from growth_sync.utils.config import Config, PaginationConfig, RateLimitConfig

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)


def epoch_ms(dt: datetime) -> float:
    return dt.timestamp() * 1000


def viewer_element(
    navigation_url: Optional[str],
    name: str = "Jane Smith",
    headline: str = "CTO at Acme",
    caption: str = "Viewed 5h ago",
) -> dict:
    """One element of the Voyager premium analytics response."""
    lockup: dict[str, Any] = {
        "title": {"text": name},
        "subtitle": {"text": headline},
        "caption": {"text": caption},
    }
    if navigation_url is not None:
        lockup["navigationUrl"] = navigation_url
    return {"content": {"analyticsEntityLockup": {"entityLockup": lockup}}}


def viewers_payload(elements: list[dict]) -> dict:
    return {"data": {"data": {"premiumDashAnalyticsObjectByAnalyticsEntity": {"elements": elements}}}}


def relation_item(
    slug: Optional[str],
    created_at: Optional[datetime] = None,
    first_name: str = "John",
    last_name: str = "Doe",
    member_id: str = "ACoAAA111",
) -> dict:
    item: dict[str, Any] = {
        "first_name": first_name,
        "last_name": last_name,
        "headline": "Engineer",
        "member_id": member_id,
        "created_at": epoch_ms(created_at or NOW),
    }
    if slug is not None:
        item["public_profile_url"] = f"https://www.linkedin.com/in/{slug}/"
        item["public_identifier"] = slug
    return item


class FakeUnipile:
    """Scripted stand-in for UnipileClient.

    Each scripted list is consumed one entry per call; an entry may be a
    payload or an exception instance to raise.
    """

    def __init__(
        self,
        viewers: Optional[list] = None,
        relations: Optional[list] = None,
        searches: Optional[list] = None,
        users: Optional[dict[str, Any]] = None,
        chats: Optional[list] = None,
        messages: Optional[dict[str, list]] = None,
        attendees: Optional[dict[str, Any]] = None,
    ):
        self.viewers = list(viewers or [])
        self.relations = list(relations or [])
        self.searches = list(searches or [])
        self.users = users or {}
        self.chats = list(chats or [])
        self.messages = {chat_id: list(script) for chat_id, script in (messages or {}).items()}
        self.attendees = attendees or {}
        self.calls: list[tuple[str, Any]] = []

    @staticmethod
    def _next(script: list) -> Any:
        if not script:
            return {"items": []}
        entry = script.pop(0)
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def raw_route(self, account_id: str, request_url: str, encoding=None) -> Any:
        self.calls.append(("raw_route", request_url))
        return self._next(self.viewers)

    async def get_relations(self, account_id: str, limit=None, cursor=None) -> Any:
        self.calls.append(("get_relations", cursor))
        return self._next(self.relations)

    async def search(self, account_id: str, body: dict) -> Any:
        self.calls.append(("search", body))
        return self._next(self.searches)

    async def get_user(self, identifier: str, account_id: str) -> Any:
        self.calls.append(("get_user", identifier))
        entry = self.users.get(identifier, {})
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def get_chats(self, account_id: str, limit=None, after=None, cursor=None) -> Any:
        self.calls.append(("get_chats", after))
        return self._next(self.chats)

    async def get_chat_messages(self, chat_id: str, limit=None, cursor=None) -> Any:
        self.calls.append(("get_chat_messages", chat_id))
        return self._next(self.messages.setdefault(chat_id, []))

    async def get_chat_attendees(self, chat_id: str) -> Any:
        self.calls.append(("get_chat_attendees", chat_id))
        entry = self.attendees.get(chat_id, [])
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def aclose(self) -> None:
        return None


class FakeEnrich:
    """Stand-in for EnrichFunctionClient keyed by public identifier."""

    def __init__(self, data: Optional[dict[str, Any]] = None):
        self.data = data or {}
        self.calls: list[str] = []

    async def enrich(self, public_identifier: str) -> Any:
        self.calls.append(public_identifier)
        entry = self.data.get(public_identifier)
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def aclose(self) -> None:
        return None


class FakeNotifier:
    """Records every message instead of posting it."""

    def __init__(self):
        self.messages: list[str] = []

    async def send(self, text: str) -> NotificationResult:
        self.messages.append(text)
        return NotificationResult(sent=True, status=200)


def rate_limited(message: str = "429 Rate Limit") -> RateLimited:
    return RateLimited(message)


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock on Friday 2025-03-14 12:00 UTC."""
    return FrozenClock(NOW)


@pytest.fixture
def rate_limit() -> RateLimitConfig:
    """Pacing config that never waits."""
    return RateLimitConfig.no_wait()


@pytest.fixture
def config(rate_limit) -> Config:
    """Root config with zero pauses and small pages."""
    return Config(rate_limit=rate_limit, pagination=PaginationConfig(page_size=10))


@pytest.fixture
def storage() -> MemoryStorage:
    """Empty in-memory store."""
    return MemoryStorage()


@pytest.fixture
def team_storage() -> MemoryStorage:
    """Store holding two team members, one without a Unipile account."""
    return MemoryStorage({
        "workspace_team": [
            {
                "id": 1,
                "linkedin_url_owner_post": "https://www.linkedin.com/in/alice-owner",
                "linkedin_urn": "ACoAAAalice",
                "unipile_account_id": "acc-alice",
                "ghost_genius_account_id": "ghost-1",
            },
            {
                "id": 2,
                "linkedin_url_owner_post": "https://www.linkedin.com/in/bob-owner",
                "linkedin_urn": "ACoAAAbob",
                "unipile_account_id": None,
                "ghost_genius_account_id": "ghost-2",
            },
        ],
    })


@pytest.fixture
def make_services(config, clock) -> Callable[..., JobServices]:
    """Factory for JobServices wired to fakes."""

    def factory(storage: MemoryStorage, **kwargs) -> JobServices:
        kwargs.setdefault("config", config)
        return JobServices(storage=storage, clock=clock, **kwargs)

    return factory


@pytest.fixture
def json_transport() -> Callable[..., httpx.MockTransport]:
    """Build a MockTransport answering with a fixed status and JSON body.

    Every request is appended to the `requests` list of the returned transport.
    """

    def factory(status: int = 200, body: Any = None, headers: Optional[dict] = None, text: Optional[str] = None):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if text is not None:
                return httpx.Response(status, text=text, headers=headers)
            return httpx.Response(status, content=json.dumps(body).encode(), headers={
                "content-type": "application/json", **(headers or {}),
            })

        transport = httpx.MockTransport(handler)
        transport.requests = requests
        return transport

    return factory
