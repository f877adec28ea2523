"""
Profile URL Enrichment

Resolves opaque member URLs (/in/ACoAAA...) into canonical /in/<slug> URLs,
reading through the enriched_contacts table before calling Unipile.
"""

import logging
from typing import Any, Optional, Protocol

from growth_sync.errors import NotFound, SyncError
from growth_sync.models.entities import EnrichmentCacheEntry
from growth_sync.models.tables import ENRICHED_CONTACTS
from growth_sync.pipeline.normalize import Extractor, dig, first_non_empty
from growth_sync.storage.base import Storage
from growth_sync.utils.clock import Clock
from growth_sync.utils.config import RateLimitConfig
from growth_sync.utils.ratelimit import RetryPolicy
from growth_sync.utils.recency import is_opaque_member_url, profile_slug, profile_url

logger = logging.getLogger(__name__)


class ProfileResolver(Protocol):
    async def get_user(self, identifier: str, account_id: str) -> Any: ...


CANONICAL_URL: list[Extractor] = [
    lambda user: profile_url(user["public_identifier"]) if user.get("public_identifier") else None,
    lambda user: user.get("public_profile_url"),
    lambda user: dig(user, "data", "url"),
    lambda user: user.get("url"),
]


class EnrichmentCache:
    """Read-through cache from opaque profile URLs to canonical ones.

    resolve() never raises: on any failure the original URL is returned.
    The resolver is called at most once per URL per run.
    """

    def __init__(
        self,
        storage: Storage,
        resolver: ProfileResolver,
        config: RateLimitConfig,
        clock: Optional[Clock] = None,
    ):
        self.storage = storage
        self.resolver = resolver
        self.config = config
        self.clock = clock or Clock()
        self.policy = RetryPolicy(config, self.clock)
        self._memo: dict[str, str] = {}

        self.hits = 0
        self.misses = 0
        self.resolved = 0
        self.failures = 0

    async def _lookup(self, original_url: str) -> Optional[str]:
        try:
            cached = await self.storage.get_one(
                ENRICHED_CONTACTS.name, "original_url", original_url, columns="enriched_url"
            )
        except SyncError as e:
            logger.warning(f"Enrichment cache lookup failed for {original_url}: {e}")
            return None
        return cached.get("enriched_url") if cached else None

    async def _store(self, original_url: str, enriched_url: str, user: Any) -> None:
        entry = EnrichmentCacheEntry(
            original_url=original_url,
            enriched_url=enriched_url,
            profile_data=user if isinstance(user, dict) else {},
            updated_at=self.clock.now(),
        )
        try:
            await self.storage.upsert(
                ENRICHED_CONTACTS.name, [entry.to_row()], ENRICHED_CONTACTS.on_conflict
            )
        except SyncError as e:
            logger.warning(f"Could not cache enrichment for {original_url}: {e}")

    async def resolve(self, original_url: str, account_id: str) -> str:
        """Return the canonical URL for original_url, or original_url itself."""
        if not is_opaque_member_url(original_url):
            return original_url
        if original_url in self._memo:
            return self._memo[original_url]

        cached = await self._lookup(original_url)
        if cached:
            self.hits += 1
            logger.debug(f"Cache hit: {original_url} -> {cached}")
            self._memo[original_url] = cached
            return cached

        self.misses += 1
        identifier = profile_slug(original_url) or original_url
        result = original_url
        try:
            user = await self.policy.call(
                lambda: self.resolver.get_user(identifier, account_id),
                description=f"resolve {identifier}",
            )
            enriched = first_non_empty(user, CANONICAL_URL) if isinstance(user, dict) else None
            if enriched and enriched != original_url:
                await self._store(original_url, enriched, user)
                self.resolved += 1
                result = enriched
            else:
                self.failures += 1
                logger.debug(f"No canonical URL for {original_url}")
        except NotFound:
            self.failures += 1
            logger.info(f"Profile not found while enriching {original_url}")
        except SyncError as e:
            self.failures += 1
            logger.warning(f"Enrichment failed for {original_url}: {e}")
        finally:
            await self.clock.sleep(self.config.pause_after_enrichment)

        self._memo[original_url] = result
        return result
