"""
Profile Views Job

For each team account: page through "who viewed my profile", keep the latest
view per viewer from the last 24 hours, resolve opaque member URLs and upsert
into scrapped_visit keyed by (viewer URL, visited profile, calculated date).
"""

import logging

from growth_sync.clients.unipile import build_viewers_url
from growth_sync.errors import FATAL_ACCOUNT_ERRORS, RateLimited, SyncError
from growth_sync.jobs.base import Job, load_team_accounts
from growth_sync.models.entities import (
    AccountState,
    ExternalAccount,
    NormalizedView,
    RawPage,
    RunSummary,
)
from growth_sync.models.tables import PROFILE_VISITS
from growth_sync.pipeline.dedupe import PROFILE_VIEW_WINDOW_HOURS, dedupe_latest, filter_age_window
from growth_sync.pipeline.enrich import EnrichmentCache
from growth_sync.pipeline.normalize import PayloadNormalizer
from growth_sync.pipeline.orchestrator import AccountContext
from growth_sync.pipeline.paginator import Paginator, no_item_within
from growth_sync.utils.ratelimit import RetryPolicy
from growth_sync.utils.recency import is_opaque_member_url

logger = logging.getLogger(__name__)


def visit_row(view: NormalizedView, visited_url: str) -> dict:
    return {
        "type_reaction": "visit_profil",
        "profil_linkedin_url_reaction": view.storage_url or "",
        "profil_fullname": view.subject_name or "",
        "headline": view.subject_headline or "",
        "linkedin_url_profil_visited": visited_url,
        "date_scrapped": view.relative_text or "",
        "date_scrapped_calculated": view.calculated_date,
    }


class ProfileViewsJob(Job):
    """Daily sync of profile viewers into scrapped_visit."""

    name = "Profile Views"

    def __init__(self, services):
        super().__init__(services)
        self.unipile = services.require_unipile()
        self.cache = EnrichmentCache(self.storage, self.unipile, self.config.rate_limit, self.clock)
        self._account_count = 0

    async def run(self) -> RunSummary:
        accounts = await load_team_accounts(self.storage, linkedin_only=True)
        if not accounts:
            logger.warning("No team account with a Unipile account id")
        self._account_count = len(accounts)

        return await self.orchestrator().run(
            accounts,
            self.process_account,
            label=lambda account: account.short_name,
            recap=self.recap,
        )

    def recap(self, summary: RunSummary) -> str:
        return (
            f"{self._account_count} profils traités, {summary.totals.inserted} visites insérées, "
            f"{summary.totals.enriched} enrichies"
        )

    async def process_account(self, account: ExternalAccount, ctx: AccountContext) -> None:
        pagination = self.config.pagination
        page_size = pagination.page_size
        policy = RetryPolicy(self.config.rate_limit, self.clock)
        paginator = Paginator(
            self.config.rate_limit,
            max_pages=pagination.max_pages_profile_views,
            clock=self.clock,
            policy=policy,
            first_token=0,
            name=f"viewers {account.short_name}",
        )
        normalizer = PayloadNormalizer(self.clock)

        async def fetch(start) -> RawPage:
            payload = await self.unipile.raw_route(
                account.account_id, build_viewers_url(start, page_size), encoding=False
            )
            return RawPage(payload=payload, next_token=start + page_size)

        ctx.advance(AccountState.FETCHING)
        views: list[NormalizedView] = []
        try:
            async for page in paginator.paginate(
                fetch,
                normalizer.viewers,
                stop_when=[no_item_within(PROFILE_VIEW_WINDOW_HOURS)],
            ):
                views.extend(page.items)
        except RateLimited as e:
            logger.warning(f"{account.short_name}: rate limited, continuing with {len(views)} views")
            ctx.error(e.error_type, e.code, str(e), profile=account.owner_url)
        except SyncError as e:
            if isinstance(e, FATAL_ACCOUNT_ERRORS):
                raise
            logger.warning(
                f"{account.short_name}: {e.error_type} on page {paginator.pages_fetched + 1}, "
                f"continuing with {len(views)} views"
            )
            ctx.error(e.error_type, e.code, str(e), profile=account.owner_url)
        finally:
            ctx.stats.rate_limited += policy.rate_limited_count

        if paginator.last_error is not None:
            err = paginator.last_error
            ctx.error(err.error_type, err.code, str(err), profile=account.owner_url)

        ctx.advance(AccountState.NORMALIZING)
        ctx.stats.fetched += len(views) + len(normalizer.dropped)
        ctx.stats.normalized += len(views)

        ctx.advance(AccountState.DEDUPLICATING)
        latest = dedupe_latest(views)
        recent = filter_age_window(latest, PROFILE_VIEW_WINDOW_HOURS)
        ctx.stats.deduplicated += len(views) - len(latest)
        logger.info(
            f"{len(views)} viewers fetched, {len(recent)} kept (< {PROFILE_VIEW_WINDOW_HOURS}h, non anonymous)"
        )

        ctx.advance(AccountState.ENRICHING)
        for view in recent:
            if not is_opaque_member_url(view.subject_url):
                continue
            resolved = await self.cache.resolve(view.subject_url, account.account_id)
            if resolved != view.subject_url:
                view.resolved_url = resolved
                ctx.stats.enriched += 1

        ctx.advance(AccountState.PERSISTING)
        rows = [visit_row(view, account.owner_url) for view in recent]
        result = await self.sink.upsert_batch(rows, PROFILE_VISITS)
        ctx.stats.inserted += result.inserted
        ctx.stats.skipped += result.skipped
        for error in result.errors:
            ctx.stats.record_error(error)

        logger.info(
            f"{account.short_name}: {len(recent)} views, {ctx.stats.enriched} enriched, "
            f"{result.inserted} upserted"
        )
