"""
Tests for the HTTP Clients: Unipile, Enrichment Function, Slack and Supabase
"""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from conftest import NOW
from growth_sync.clients.enrich import EnrichFunctionClient
from growth_sync.clients.slack import SlackNotifier, format_error_report, format_success_recap
from growth_sync.clients.unipile import UnipileClient, build_viewers_url
from growth_sync.errors import (
    ApiError,
    AuthExpired,
    ConfigurationError,
    EnrichmentFailed,
    MalformedResponse,
    NotFound,
    RateLimited,
    StorageWriteFailed,
)
from growth_sync.models.entities import AccountResult, RunStats, RunSummary, TaskError
from growth_sync.models.tables import TEAM_CONNECTIONS
from growth_sync.pipeline.sink import UpsertSink
from growth_sync.storage.supabase import SupabaseStorage
from growth_sync.utils.clock import FrozenClock
from growth_sync.utils.config import RateLimitConfig, SupabaseConfig, UnipileConfig

BASE_URL = "https://api.example.test/api/v1"


def run(coro):
    return asyncio.run(coro)


class TestUnipileClient:
    """Tests for UnipileClient status mapping and requests."""

    def test_raw_route_request(self, json_transport):
        """Test the proxied Voyager call body and auth header."""
        transport = json_transport(200, {"data": {}})
        client = UnipileClient(BASE_URL, "secret", transport=transport)

        result = run(client.raw_route("acc-1", build_viewers_url(0, 10), encoding=False))

        assert result == {"data": {}}
        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}/linkedin"
        assert request.headers["X-API-KEY"] == "secret"
        body = json.loads(request.content)
        assert body["account_id"] == "acc-1"
        assert body["method"] == "GET"
        assert body["encoding"] is False
        assert "start:0,count:10" in body["request_url"]

    def test_relations_params(self, json_transport):
        """Test limit and cursor are passed as query parameters."""
        transport = json_transport(200, {"items": [], "cursor": None})
        client = UnipileClient(BASE_URL, "secret", transport=transport)

        run(client.get_relations("acc-1", limit=10, cursor="abc"))

        params = transport.requests[0].url.params
        assert params["account_id"] == "acc-1"
        assert params["limit"] == "10"
        assert params["cursor"] == "abc"

    def test_chats_params(self, json_transport):
        """Test the activity window and paging of the chat list."""
        transport = json_transport(200, {"items": [], "cursor": None})
        client = UnipileClient(BASE_URL, "secret", transport=transport)

        run(client.get_chats("acc-1", limit=100, after="2025-03-13T12:00:00.000Z", cursor="next"))

        request = transport.requests[0]
        assert request.url.path.endswith("/chats")
        assert request.url.params["account_id"] == "acc-1"
        assert request.url.params["limit"] == "100"
        assert request.url.params["after"] == "2025-03-13T12:00:00.000Z"
        assert request.url.params["cursor"] == "next"

    def test_chat_messages_and_attendees_paths(self, json_transport):
        """Test the per-chat endpoints."""
        transport = json_transport(200, {"items": []})
        client = UnipileClient(BASE_URL, "secret", transport=transport)

        run(client.get_chat_messages("chat-1", limit=100))
        run(client.get_chat_attendees("chat-1"))

        assert transport.requests[0].url.path.endswith("/chats/chat-1/messages")
        assert transport.requests[0].url.params["limit"] == "100"
        assert "cursor" not in transport.requests[0].url.params
        assert transport.requests[1].url.path.endswith("/chats/chat-1/attendees")

    def test_get_user_quotes_identifier(self, json_transport):
        """Test that URLs used as identifiers are path-quoted."""
        transport = json_transport(200, {"public_identifier": "jane"})
        client = UnipileClient(BASE_URL, "secret", transport=transport)

        run(client.get_user("ACoAAA123", "acc-1"))

        assert transport.requests[0].url.path.endswith("/users/ACoAAA123")

    @pytest.mark.parametrize("status,error", [
        (429, RateLimited),
        (401, AuthExpired),
        (403, AuthExpired),
        (404, NotFound),
        (500, ApiError),
    ])
    def test_status_mapping(self, json_transport, status, error):
        """Test each HTTP failure maps to its error type."""
        client = UnipileClient(BASE_URL, "secret", transport=json_transport(status, {"error": "x"}))

        with pytest.raises(error):
            run(client.search("acc-1", {"url": "https://www.linkedin.com/sales/search/people"}))

    def test_api_error_carries_status(self, json_transport):
        """Test that generic failures keep their status as code."""
        client = UnipileClient(BASE_URL, "secret", transport=json_transport(502, {}))

        with pytest.raises(ApiError) as exc_info:
            run(client.get_relations("acc-1"))

        assert exc_info.value.code == 502

    def test_invalid_json(self, json_transport):
        """Test a non-JSON success body."""
        client = UnipileClient(BASE_URL, "secret", transport=json_transport(200, text="<html>"))

        with pytest.raises(MalformedResponse):
            run(client.get_relations("acc-1"))

    def test_from_config_requires_key(self, monkeypatch):
        """Test that a missing API key is a configuration error."""
        monkeypatch.delenv("UNIPILE_API_KEY", raising=False)

        with pytest.raises(ConfigurationError):
            UnipileClient.from_config(UnipileConfig())


class TestEnrichFunctionClient:
    """Tests for EnrichFunctionClient."""

    def test_enrich_request(self, json_transport):
        """Test payload, bearer token and returned data."""
        transport = json_transport(200, {"data": {"linkedin_private_id": "123"}})
        client = EnrichFunctionClient("https://fn.example.test/enrich", "tok", transport=transport)

        data = run(client.enrich("jane-smith"))

        assert data == {"linkedin_private_id": "123"}
        request = transport.requests[0]
        assert request.headers["Authorization"] == "Bearer tok"
        assert json.loads(request.content) == {
            "parameter": "all",
            "contact_linkedin_url": "http://linkedin.com/in/jane-smith",
        }

    def test_bearer_prefix_not_doubled(self, json_transport):
        """Test tokens given with their prefix."""
        transport = json_transport(200, {"data": {}})
        client = EnrichFunctionClient("https://fn.example.test/enrich", "Bearer tok", transport=transport)

        assert run(client.enrich("jane")) is None
        assert transport.requests[0].headers["Authorization"] == "Bearer tok"

    def test_rate_limited(self, json_transport):
        """Test 429 is surfaced for the retry policy."""
        client = EnrichFunctionClient("https://fn.example.test", "tok", transport=json_transport(429, {}))

        with pytest.raises(RateLimited):
            run(client.enrich("jane"))

    def test_failure(self, json_transport):
        """Test other failures raise EnrichmentFailed."""
        client = EnrichFunctionClient("https://fn.example.test", "tok", transport=json_transport(500, {}))

        with pytest.raises(EnrichmentFailed):
            run(client.enrich("jane"))


class TestSlack:
    """Tests for Slack formatting and delivery."""

    @pytest.fixture
    def summary(self):
        rate_limit = TaskError(type="Rate Limit", code=429, message="429 Rate Limit on POST /linkedin")
        alice = RunStats(inserted=3, duplicates=1, skipped=1)
        alice.record_error(rate_limit)
        alice.record_error(rate_limit)
        bob = RunStats(inserted=0)

        summary = RunSummary(job="Profile Views", started_at=NOW, finished_at=NOW)
        for label, stats in (("alice", alice), ("bob", bob)):
            summary.accounts.append(AccountResult(label=label, stats=stats))
            summary.totals.merge(stats)
        return summary

    def test_error_report(self, summary):
        """Test the error report layout with grouped errors."""
        text = format_error_report("Profile Views", summary, NOW)
        lines = text.splitlines()

        assert lines[0] == "[Profile Views] ⚠️ Erreurs — 2025-03-14 12:00"
        assert "📊 Résultats" in lines
        assert "• alice: 3 insérés | 2 doublons/ignorés" in lines
        assert "• bob: 0 insérés | 0 doublons/ignorés" in lines
        assert "❌ Erreurs (2)" in lines
        assert '• alice: 2x Rate Limit (429) — "429 Rate Limit on POST /linkedin"' in lines
        assert "Catégories: rate_limited 2" in lines
        assert text.endswith("\n")

    def test_success_recap(self):
        """Test the short recap."""
        text = format_success_recap("Team Connections", "3 membres traités", NOW)

        assert text == "[Team Connections] ✅ — 2025-03-14 12:00\n• 3 membres traités"

    def test_send(self, json_transport):
        """Test the webhook payload."""
        transport = json_transport(200, {"ok": True})
        notifier = SlackNotifier("https://hooks.example.test/x", transport=transport)

        result = run(notifier.send("hello"))

        assert result.sent
        assert json.loads(transport.requests[0].content) == {"text": "hello"}

    def test_send_without_webhook(self):
        """Test that a missing webhook is skipped."""
        result = run(SlackNotifier(None).send("hello"))

        assert result.skipped
        assert not result.sent

    def test_send_failure_is_reported(self, json_transport):
        """Test that webhook failures never raise."""
        notifier = SlackNotifier("https://hooks.example.test/x", transport=json_transport(500, text="no"))

        result = run(notifier.send("hello"))

        assert not result.sent
        assert result.status == 500

    def test_send_network_error(self):
        """Test that connection errors are returned, not raised."""

        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        notifier = SlackNotifier("https://hooks.example.test/x", transport=httpx.MockTransport(handler))

        result = run(notifier.send("hello"))

        assert not result.sent
        assert "unreachable" in result.error


class TestSupabaseStorage:
    """Tests for the PostgREST store."""

    def test_select_filters(self, json_transport):
        """Test filter encoding."""
        transport = json_transport(200, [{"url": "a"}])
        store = SupabaseStorage("https://db.example.test", "key", transport=transport)

        rows = run(store.select(
            "scrapped_connection",
            columns="url",
            eq={"owner": "o"},
            in_={"url": ["a", "b"]},
            not_null=["account"],
            gte={"created_at": datetime(2025, 3, 13, tzinfo=timezone.utc)},
            order="created_at.desc",
            limit=5,
        ))

        assert rows == [{"url": "a"}]
        request = transport.requests[0]
        assert request.url.path == "/rest/v1/scrapped_connection"
        params = request.url.params
        assert params["select"] == "url"
        assert params["owner"] == "eq.o"
        assert params["url"] == 'in.("a","b")'
        assert params["account"] == "not.is.null"
        assert params["created_at"] == "gte.2025-03-13T00:00:00+00:00"
        assert params["order"] == "created_at.desc"
        assert params["limit"] == "5"
        assert request.headers["apikey"] == "key"

    def test_empty_in_filter_short_circuits(self, json_transport):
        """Test that an empty membership list returns nothing without a request."""
        transport = json_transport(200, [])
        store = SupabaseStorage("https://db.example.test", "key", transport=transport)

        assert run(store.select("t", in_={"url": []})) == []
        assert transport.requests == []

    def test_upsert_headers(self, json_transport):
        """Test merge-duplicates upsert with on_conflict."""
        transport = json_transport(201, None)
        store = SupabaseStorage("https://db.example.test", "key", transport=transport)

        run(store.upsert("scrapped_visit", [{"a": 1}, {"a": 2}], "a,b"))

        request = transport.requests[0]
        assert request.url.params["on_conflict"] == "a,b"
        assert "resolution=merge-duplicates" in request.headers["Prefer"]
        assert json.loads(request.content) == [{"a": 1}, {"a": 2}]

    def test_upsert_conflict(self, json_transport):
        """Test 409 is flagged as a conflict with its database code."""
        transport = json_transport(409, {"code": "23505", "message": "duplicate key value"})
        store = SupabaseStorage("https://db.example.test", "key", transport=transport)

        with pytest.raises(StorageWriteFailed) as exc_info:
            run(store.upsert("t", [{"a": 1}], "a"))

        assert exc_info.value.conflict
        assert exc_info.value.code == "23505"

    def test_cardinality_violation_recovers_row_by_row(self):
        """Test a batch refused with 21000 is written one row at a time through the sink."""
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            bodies.append(body)
            if isinstance(body, list):
                return httpx.Response(400, json={
                    "code": "21000",
                    "message": "ON CONFLICT DO UPDATE command cannot affect row a second time",
                })
            return httpx.Response(201)

        store = SupabaseStorage("https://db.example.test", "key", transport=httpx.MockTransport(handler))
        sink = UpsertSink(store, RateLimitConfig.no_wait(), FrozenClock(NOW))
        rows = [
            {"profil_linkedin_url_connection": url, "linkedin_url_owner_post": "owner"}
            for url in ("https://www.linkedin.com/in/a", "https://www.linkedin.com/in/b")
        ]

        result = run(sink.upsert_batch(rows, TEAM_CONNECTIONS))

        assert result.used_fallback
        assert result.inserted == 2
        assert result.errors == []
        assert [type(body).__name__ for body in bodies] == ["list", "dict", "dict"]

    def test_count_since(self, json_transport):
        """Test the exact count is read from content-range."""
        transport = json_transport(206, [{"created_at": "x"}], headers={"content-range": "0-0/42"})
        store = SupabaseStorage("https://db.example.test", "key", transport=transport)

        count = run(store.count_since("scrapped_visit", "created_at", NOW))

        assert count == 42
        assert transport.requests[0].headers["Prefer"] == "count=exact"

    def test_read_failure(self, json_transport):
        """Test that read failures raise ApiError."""
        store = SupabaseStorage("https://db.example.test", "key", transport=json_transport(500, {}))

        with pytest.raises(ApiError):
            run(store.select("t"))

    def test_from_config_requires_url(self, monkeypatch):
        """Test missing credentials."""
        monkeypatch.setenv("SUPABASE_KEY", "key")

        with pytest.raises(ConfigurationError):
            SupabaseStorage.from_config(SupabaseConfig(url=None))
