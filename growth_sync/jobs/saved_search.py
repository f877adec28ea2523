"""
Saved Search Jobs

Shared flow for Sales Navigator saved searches: resolve the Unipile account,
page through profiles viewed since the last 72 hours, enrich each profile
through the edge function and upsert one row per profile.
"""

import logging
from datetime import timedelta
from typing import Any, Optional

from growth_sync.errors import ConfigurationError, RateLimited, SyncError
from growth_sync.jobs.base import Job, resolve_unipile_account
from growth_sync.models.entities import AccountState, NormalizedView, Page, RawPage, RunSummary
from growth_sync.models.tables import TableSpec
from growth_sync.pipeline.dedupe import STRATEGIC_SEARCH_WINDOW_HOURS, dedupe_latest
from growth_sync.pipeline.normalize import PayloadNormalizer
from growth_sync.pipeline.orchestrator import AccountContext
from growth_sync.pipeline.paginator import Paginator, collect_pages
from growth_sync.utils.config import SavedSearchConfig, StrategicJobConfig
from growth_sync.utils.ratelimit import RetryPolicy

logger = logging.getLogger(__name__)


class RowRejected(Exception):
    """Raised by build_row when a profile cannot be stored."""

    def __init__(self, code: str, message: str, profile: str):
        super().__init__(message)
        self.code = code
        self.profile = profile


class SavedSearchJob(Job):
    """Base for jobs driven by a list of saved searches."""

    table: TableSpec

    def __init__(self, services):
        super().__init__(services)
        self.unipile = services.require_unipile()
        self.enrich = services.require_enrich()
        self._account_ids: dict[str, str] = {}

    @property
    def job_config(self) -> StrategicJobConfig:
        raise NotImplementedError

    def label(self, search: SavedSearchConfig) -> str:
        return search.name

    def build_row(
        self,
        search: SavedSearchConfig,
        view: NormalizedView,
        data: dict,
        scraping_date: str,
    ) -> dict:
        raise NotImplementedError

    async def run(self) -> RunSummary:
        searches = self.job_config.searches
        if not searches:
            logger.warning(f"{self.name}: no saved search configured")
        return await self.orchestrator().run(
            searches,
            self.process_search,
            label=self.label,
            recap=lambda summary: (
                f"{len(searches)} recherches traitées, {summary.totals.inserted} profils insérés"
            ),
        )

    async def account_for(self, search: SavedSearchConfig) -> str:
        ghost_id = search.ghost_genius_account_id or self.job_config.ghost_genius_account_id
        if not ghost_id:
            raise ConfigurationError(f"No ghost_genius_account_id configured for {search.key}")
        if ghost_id not in self._account_ids:
            self._account_ids[ghost_id] = await resolve_unipile_account(self.storage, ghost_id)
            logger.info(f"Account ID resolved: {self._account_ids[ghost_id]}")
        return self._account_ids[ghost_id]

    def search_url(self, search: SavedSearchConfig) -> str:
        """Saved search URL restricted to profiles viewed in the search window."""
        since = self.clock.now() - timedelta(hours=STRATEGIC_SEARCH_WINDOW_HOURS)
        return f"{search.saved_search_url}&lastViewedAt={int(since.timestamp() * 1000)}"

    async def fetch_profiles(
        self,
        account_id: str,
        search: SavedSearchConfig,
        ctx: AccountContext,
    ) -> list[NormalizedView]:
        policy = RetryPolicy(self.config.rate_limit, self.clock)
        paginator = Paginator(
            self.config.rate_limit,
            max_pages=self.config.pagination.max_pages_search,
            clock=self.clock,
            policy=policy,
            name=f"search {search.key}",
        )
        normalizer = PayloadNormalizer(self.clock)
        url = self.search_url(search)

        async def fetch(cursor) -> RawPage:
            body: dict[str, Any] = {"url": url}
            if cursor:
                body["cursor"] = cursor
            payload = await self.unipile.search(account_id, body)
            next_cursor = payload.get("cursor") if isinstance(payload, dict) else None
            return RawPage(payload=payload, next_token=next_cursor or None)

        pages: list[Page]
        try:
            pages = await collect_pages(paginator, fetch, normalizer.search_results)
        except RateLimited as e:
            logger.warning(f"{search.key}: rate limited, continuing with {len(e.partial)} pages")
            ctx.error(e.error_type, e.code, str(e), profile=search.name)
            pages = e.partial
        finally:
            ctx.stats.rate_limited += policy.rate_limited_count

        if paginator.last_error is not None:
            err = paginator.last_error
            ctx.error(err.error_type, err.code, str(err), profile=search.name)

        for dropped in normalizer.dropped_for("missing_identifier"):
            ctx.error(
                "Extraction ID", "missing", "No public_identifier or extractable slug",
                profile=dropped.label,
            )

        views = [view for page in pages for view in page.items]
        ctx.stats.fetched += len(views) + len(normalizer.dropped)
        ctx.stats.normalized += len(views)
        return views

    async def _enrich(self, identifier: str) -> Optional[dict]:
        policy = RetryPolicy(self.config.rate_limit, self.clock)
        return await policy.call(lambda: self.enrich.enrich(identifier), description=f"enrich {identifier}")

    async def process_search(self, search: SavedSearchConfig, ctx: AccountContext) -> None:
        ctx.advance(AccountState.FETCHING)
        account_id = await self.account_for(search)
        views = await self.fetch_profiles(account_id, search, ctx)

        ctx.advance(AccountState.DEDUPLICATING)
        profiles = dedupe_latest(views)
        ctx.stats.deduplicated += len(views) - len(profiles)
        logger.info(f"{len(profiles)} new profiles found for {search.name}")

        scraping_date = self.clock.now().date().isoformat()
        for j, view in enumerate(profiles):
            ctx.advance(AccountState.ENRICHING)
            await self._process_profile(search, view, scraping_date, ctx)
            if j < len(profiles) - 1:
                await self.clock.sleep(self.config.rate_limit.pause_between_items)

        logger.info(
            f"{search.key} done: {ctx.stats.inserted} inserted, {ctx.stats.skipped} skipped, "
            f"{len(ctx.stats.errors)} errors"
        )

    async def _process_profile(
        self,
        search: SavedSearchConfig,
        view: NormalizedView,
        scraping_date: str,
        ctx: AccountContext,
    ) -> None:
        identifier = view.subject_id
        try:
            data = await self._enrich(identifier)
        except SyncError as e:
            logger.warning(f"Error processing {identifier}: {e}")
            ctx.error("Enrichissement", "exception", str(e), profile=identifier)
            return

        if not data:
            logger.warning(f"No enrich data for {identifier}")
            ctx.error("Enrichissement", "empty", "No data returned from enrich", profile=identifier)
            return
        ctx.stats.enriched += 1

        try:
            row = self.build_row(search, view, data, scraping_date)
        except RowRejected as e:
            logger.warning(f"Skipping {e.profile}: {e}")
            ctx.error("Enrichissement", e.code, str(e), profile=e.profile)
            return

        ctx.advance(AccountState.PERSISTING)
        result = await self.sink.upsert_batch([row], self.table)
        ctx.stats.inserted += result.inserted
        ctx.stats.skipped += result.skipped
        for error in result.errors:
            ctx.stats.record_error(error)
