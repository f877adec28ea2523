"""
Tests for Payload Normalization
"""

from datetime import timedelta

import pytest

from conftest import NOW, relation_item, viewer_element, viewers_payload
from growth_sync.errors import MalformedResponse
from growth_sync.pipeline.dedupe import dedupe_latest
from growth_sync.pipeline.normalize import PayloadNormalizer, dig, first_non_empty


class TestHelpers:
    """Tests for extraction helpers."""

    def test_dig(self):
        """Test nested lookups stop at the first missing key."""
        assert dig({"a": {"b": 1}}, "a", "b") == 1
        assert dig({"a": None}, "a", "b") is None
        assert dig("text", "a") is None

    def test_first_non_empty_skips_blanks(self):
        """Test that empty strings and lists fall through to the next extractor."""
        extractors = [lambda o: o.get("a"), lambda o: o.get("b"), lambda o: o.get("c")]
        assert first_non_empty({"a": "", "b": [], "c": "x"}, extractors) == "x"
        assert first_non_empty({}, extractors) is None


class TestViewers:
    """Tests for profile viewer normalization."""

    @pytest.fixture
    def normalizer(self, clock):
        return PayloadNormalizer(clock)

    def test_profile_viewer(self, normalizer):
        """Test a regular viewer becomes a view with age and date."""
        payload = viewers_payload([
            viewer_element("https://www.linkedin.com/in/jane-smith?miniProfileUrn=x", caption="Viewed 5h ago"),
        ])

        views = normalizer.viewers(payload)

        assert len(views) == 1
        view = views[0]
        assert view.subject_id == "jane-smith"
        assert view.subject_url == "https://www.linkedin.com/in/jane-smith"
        assert view.subject_name == "Jane Smith"
        assert view.subject_headline == "CTO at Acme"
        assert view.age_hours == 5
        assert view.relative_text == "5 hours"
        assert view.calculated_date == "2025-03-14"

    def test_skipped_elements(self, normalizer):
        """Test that promos, anonymous viewers and non-profiles are dropped."""
        payload = viewers_payload([
            {"content": {}},
            viewer_element(None),
            viewer_element("https://www.linkedin.com/search/results/people/?facet=x"),
            viewer_element("https://www.linkedin.com/company/acme"),
            viewer_element("https://www.linkedin.com/in/jane-smith"),
        ])

        views = normalizer.viewers(payload)

        assert [v.subject_id for v in views] == ["jane-smith"]
        assert [d.reason for d in normalizer.dropped] == [
            "no_lockup", "no_url", "anonymous", "not_a_profile",
        ]
        assert len(normalizer.dropped_for("anonymous")) == 1

    def test_opaque_viewer_kept(self, normalizer):
        """Test that member-URN URLs are kept for later enrichment."""
        payload = viewers_payload([viewer_element("https://www.linkedin.com/in/ACoAAA123")])

        views = normalizer.viewers(payload)

        assert views[0].subject_url == "https://www.linkedin.com/in/ACoAAA123"

    def test_unparseable_caption(self, normalizer):
        """Test that an unreadable caption leaves age unknown."""
        payload = viewers_payload([viewer_element("https://www.linkedin.com/in/jane", caption="Viewed")])

        view = normalizer.viewers(payload)[0]

        assert view.age_hours is None
        assert view.calculated_date is None

    def test_payload_without_outer_data(self, normalizer):
        """Test the alternate response nesting."""
        payload = {"data": {"premiumDashAnalyticsObjectByAnalyticsEntity": {
            "elements": [viewer_element("https://www.linkedin.com/in/jane")],
        }}}

        assert len(normalizer.viewers(payload)) == 1

    def test_no_elements(self, normalizer):
        """Test an empty response."""
        assert normalizer.viewers({"data": {}}) == []

    def test_non_object_payload(self, normalizer):
        """Test that a non-object payload is malformed."""
        with pytest.raises(MalformedResponse):
            normalizer.viewers(["unexpected"])

    def test_repeated_viewer_keeps_latest(self, normalizer):
        """Test a raw page with a repeat and an anonymous slot yields the most recent view only."""
        u1 = "https://www.linkedin.com/in/jane-smith"
        payload = viewers_payload([
            viewer_element(u1, caption="Viewed 3h ago"),
            viewer_element(None, caption="Viewed 1h ago"),
            viewer_element(u1, caption="Viewed 1h ago"),
        ])

        views = dedupe_latest(normalizer.viewers(payload))

        assert len(views) == 1
        assert views[0].subject_url == u1
        assert views[0].age_hours == 1
        assert views[0].relative_text == "1 hour"
        assert [d.reason for d in normalizer.dropped] == ["no_url"]


class TestRelations:
    """Tests for relation normalization."""

    def test_relation(self, clock):
        """Test URL cleanup, age and member id."""
        normalizer = PayloadNormalizer(clock)
        payload = {"items": [relation_item("john-doe", created_at=NOW - timedelta(hours=2))]}

        views = normalizer.relations(payload)

        view = views[0]
        assert view.subject_id == "https://www.linkedin.com/in/john-doe"
        assert view.subject_url == "https://www.linkedin.com/in/john-doe"
        assert view.subject_name == "John Doe"
        assert view.age_hours == pytest.approx(2)
        assert view.relative_text == "2 hours"
        assert view.calculated_date == "2025-03-14"
        assert view.extra == {"member_id": "ACoAAA111"}

    def test_identifier_fallback(self, clock):
        """Test that public_identifier builds the URL when no profile URL is given."""
        normalizer = PayloadNormalizer(clock)
        item = relation_item("john-doe")
        del item["public_profile_url"]

        views = normalizer.relations({"items": [item]})

        assert views[0].subject_url == "https://www.linkedin.com/in/john-doe"

    def test_missing_identifier_dropped(self, clock):
        """Test that relations without any URL are reported, not kept."""
        normalizer = PayloadNormalizer(clock)

        views = normalizer.relations({"items": [relation_item(None, first_name="Ann", last_name="Lee")]})

        assert views == []
        assert normalizer.dropped_for("missing_identifier")[0].label == "Ann Lee"

    def test_items_must_be_a_list(self, clock):
        """Test that a non-list items field is malformed."""
        with pytest.raises(MalformedResponse):
            PayloadNormalizer(clock).relations({"items": "nope"})


class TestSearchResults:
    """Tests for saved search normalization."""

    def test_identifier_sources(self, clock):
        """Test public_identifier first, then the profile URL slug."""
        normalizer = PayloadNormalizer(clock)
        payload = {"items": [
            {"public_identifier": "jane", "first_name": "Jane", "last_name": "Smith"},
            {"public_profile_url": "https://www.linkedin.com/in/paul-martin/"},
            {"first_name": "No", "last_name": "Id"},
        ]}

        views = normalizer.search_results(payload)

        assert [v.subject_id for v in views] == ["jane", "paul-martin"]
        assert views[0].subject_url == "https://www.linkedin.com/in/jane"
        assert views[0].extra["first_name"] == "Jane"
        assert normalizer.dropped_for("missing_identifier")[0].label == "No Id"


class TestInbox:
    """Tests for chat, message and attendee filtering."""

    def test_chats_without_provider_id_dropped(self, clock):
        """Test that a chat without a thread id is left out."""
        normalizer = PayloadNormalizer(clock)

        chats = normalizer.chats({"items": [
            {"id": "chat-1", "provider_id": "thread-1"},
            {"id": "chat-2"},
        ]})

        assert [c["provider_id"] for c in chats] == ["thread-1"]
        assert normalizer.dropped_for("missing_identifier")[0].label == "chat-2"

    def test_attendees_exclude_inbox_owner(self, clock):
        """Test both response shapes and the is_self filter."""
        normalizer = PayloadNormalizer(clock)
        people = [{"provider_id": "jane", "is_self": 0}, {"provider_id": "me", "is_self": 1}]

        assert [a["provider_id"] for a in normalizer.attendees(people)] == ["jane"]
        assert [a["provider_id"] for a in normalizer.attendees({"items": people})] == ["jane"]

    def test_messages_must_be_a_list(self, clock):
        """Test that a non-list items field is malformed."""
        with pytest.raises(MalformedResponse):
            PayloadNormalizer(clock).messages({"items": {"id": "m1"}})
