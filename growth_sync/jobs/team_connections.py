"""
Team Connections Job

For each team account: page through first-degree relations (newest first),
check which ones are already stored for that owner, upsert every row and stop
as soon as a page brings nothing new.
"""

import logging

from growth_sync.errors import RateLimited
from growth_sync.jobs.base import Job, load_team_accounts
from growth_sync.models.entities import (
    AccountState,
    ExternalAccount,
    NormalizedView,
    Page,
    RawPage,
    RunSummary,
)
from growth_sync.models.tables import TEAM_CONNECTIONS
from growth_sync.pipeline.dedupe import dedupe_latest, split_new
from growth_sync.pipeline.normalize import PayloadNormalizer
from growth_sync.pipeline.orchestrator import AccountContext
from growth_sync.pipeline.paginator import Paginator, all_items_known
from growth_sync.utils.ratelimit import RetryPolicy

logger = logging.getLogger(__name__)

URL_COLUMN = "profil_linkedin_url_connection"
OWNER_COLUMN = "linkedin_url_owner_post"


def connection_row(view: NormalizedView, owner_url: str, scraping_date: str) -> dict:
    return {
        "type_reaction": "connection",
        URL_COLUMN: view.subject_url,
        "profil_fullname": view.subject_name,
        OWNER_COLUMN: owner_url,
        "headline": view.subject_headline,
        "created_at": scraping_date,
        "connected_at": view.calculated_date,
        "contact_urn": view.extra.get("member_id"),
    }


class TeamConnectionsJob(Job):
    """Sync of each team member's new LinkedIn connections into scrapped_connection."""

    name = "Team Connections"

    def __init__(self, services):
        super().__init__(services)
        self.unipile = services.require_unipile()

    async def run(self) -> RunSummary:
        accounts = await load_team_accounts(self.storage)
        return await self.orchestrator().run(
            accounts,
            self.process_account,
            label=lambda account: account.short_name,
            recap=lambda summary: (
                f"{len(accounts)} membres traités, {summary.totals.inserted} nouvelles connexions, "
                f"{summary.totals.duplicates} doublons"
            ),
        )

    async def _existing_urls(self, owner_url: str, urls: list[str]) -> set[str]:
        rows = await self.storage.select(
            TEAM_CONNECTIONS.name,
            columns=URL_COLUMN,
            eq={OWNER_COLUMN: owner_url},
            in_={URL_COLUMN: urls},
        )
        return {row[URL_COLUMN] for row in rows}

    async def _persist_page(
        self,
        page: Page,
        account: ExternalAccount,
        scraping_date: str,
        ctx: AccountContext,
    ) -> None:
        views = dedupe_latest(page.items)
        ctx.stats.deduplicated += len(page.items) - len(views)
        rows = [connection_row(view, account.owner_url, scraping_date) for view in views]
        existing = await self._existing_urls(account.owner_url, [row[URL_COLUMN] for row in rows])
        new, duplicates = split_new(rows, existing, key=URL_COLUMN)
        page.new_items = len(new)

        result = await self.sink.upsert_batch(rows, TEAM_CONNECTIONS)
        failed = {error.profile for error in result.errors}
        ctx.stats.inserted += sum(1 for row in new if row[URL_COLUMN] not in failed)
        ctx.stats.duplicates += len(duplicates)
        ctx.stats.skipped += result.skipped
        for error in result.errors:
            ctx.stats.record_error(error)

        logger.info(
            f"Page {page.index}: {len(rows)} relations, {len(new)} new, {len(duplicates)} duplicates"
        )

    async def process_account(self, account: ExternalAccount, ctx: AccountContext) -> None:
        pagination = self.config.pagination
        policy = RetryPolicy(self.config.rate_limit, self.clock)
        paginator = Paginator(
            self.config.rate_limit,
            max_pages=pagination.max_pages_connections,
            clock=self.clock,
            policy=policy,
            name=f"relations {account.short_name}",
        )
        normalizer = PayloadNormalizer(self.clock)
        scraping_date = self.clock.now().date().isoformat()

        async def fetch(cursor) -> RawPage:
            payload = await self.unipile.get_relations(account.account_id, pagination.page_size, cursor)
            next_cursor = payload.get("cursor") if isinstance(payload, dict) else None
            return RawPage(payload=payload, next_token=next_cursor or None)

        ctx.advance(AccountState.FETCHING)
        try:
            async for page in paginator.paginate(fetch, normalizer.relations, stop_when=[all_items_known]):
                ctx.stats.fetched += len(page.items)
                ctx.stats.normalized += len(page.items)
                ctx.advance(AccountState.PERSISTING)
                await self._persist_page(page, account, scraping_date, ctx)
                ctx.advance(AccountState.FETCHING)
        except RateLimited as e:
            ctx.error(e.error_type, e.code, str(e), profile=account.owner_url)
        finally:
            ctx.stats.rate_limited += policy.rate_limited_count

        if paginator.last_error is not None:
            err = paginator.last_error
            ctx.error(err.error_type, err.code, str(err), profile=account.owner_url)

        for dropped in normalizer.dropped_for("missing_identifier"):
            ctx.error("Missing URL", "missing", "No public_profile_url", profile=dropped.label)
        ctx.stats.fetched += len(normalizer.dropped)

        logger.info(
            f"{account.short_name} done: {ctx.stats.inserted} inserted, "
            f"{ctx.stats.duplicates} duplicates, {len(ctx.stats.errors)} errors"
        )
