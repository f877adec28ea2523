"""
Job Wiring

Shared services handed to every job, and the lookups against workspace_team.
"""

import logging
from typing import Optional

from growth_sync.clients.enrich import EnrichFunctionClient
from growth_sync.clients.slack import SlackNotifier
from growth_sync.clients.unipile import UnipileClient
from growth_sync.errors import ConfigurationError
from growth_sync.llm.base import LLMProvider
from growth_sync.models.entities import ExternalAccount, MessagingAccount, RunSummary
from growth_sync.models.tables import WORKSPACE_TEAM
from growth_sync.pipeline.orchestrator import PipelineOrchestrator
from growth_sync.pipeline.sink import UpsertSink
from growth_sync.storage.base import Storage
from growth_sync.utils.clock import Clock
from growth_sync.utils.config import Config

logger = logging.getLogger(__name__)


class JobServices:
    """Clients, store, clock and notifiers a job needs.

    Vendor clients are optional so each job only requires what it calls.
    """

    def __init__(
        self,
        config: Config,
        storage: Storage,
        clock: Optional[Clock] = None,
        unipile: Optional[UnipileClient] = None,
        enrich: Optional[EnrichFunctionClient] = None,
        llm: Optional[LLMProvider] = None,
        error_notifier: Optional[SlackNotifier] = None,
        success_notifier: Optional[SlackNotifier] = None,
    ):
        self.config = config
        self.storage = storage
        self.clock = clock or Clock()
        self.unipile = unipile
        self.enrich = enrich
        self.llm = llm
        self.error_notifier = error_notifier
        self.success_notifier = success_notifier

    def require_unipile(self) -> UnipileClient:
        if self.unipile is None:
            raise ConfigurationError("Unipile client is not configured")
        return self.unipile

    def require_enrich(self) -> EnrichFunctionClient:
        if self.enrich is None:
            raise ConfigurationError("Enrichment function client is not configured")
        return self.enrich

    async def aclose(self) -> None:
        for client in (self.unipile, self.enrich, self.storage):
            if client is not None:
                await client.aclose()


class Job:
    """Base class for scheduled jobs."""

    name = "Job"

    def __init__(self, services: JobServices):
        self.services = services
        self.config = services.config
        self.storage = services.storage
        self.clock = services.clock
        self.sink = UpsertSink(self.storage, self.config.rate_limit, self.clock)

    def orchestrator(self) -> PipelineOrchestrator:
        return PipelineOrchestrator(
            self.name,
            self.config.rate_limit,
            clock=self.clock,
            error_notifier=self.services.error_notifier,
            success_notifier=self.services.success_notifier,
        )

    async def run(self) -> RunSummary:
        raise NotImplementedError


async def load_team_accounts(storage: Storage, linkedin_only: bool = False) -> list[ExternalAccount]:
    """Team members with a connected Unipile account."""
    rows = await storage.select(
        WORKSPACE_TEAM,
        columns="id,linkedin_url_owner_post,unipile_account_id",
        not_null=["unipile_account_id"],
    )

    accounts = []
    for row in rows:
        owner_url = row.get("linkedin_url_owner_post")
        account_id = row.get("unipile_account_id")
        if not owner_url or not account_id:
            continue
        if linkedin_only and "linkedin.com" not in owner_url:
            continue
        accounts.append(ExternalAccount(id=str(row.get("id")), account_id=account_id, owner_url=owner_url))

    logger.info(f"{len(accounts)} team accounts with a Unipile account")
    return accounts


async def load_inbox_accounts(storage: Storage) -> list[MessagingAccount]:
    """Team members whose LinkedIn inbox is reachable: a member URN and a Unipile account."""
    rows = await storage.select(
        WORKSPACE_TEAM,
        columns="id,linkedin_urn,unipile_account_id",
        not_null=["unipile_account_id", "linkedin_urn"],
    )

    accounts = [
        MessagingAccount(
            id=str(row.get("id")),
            account_id=row["unipile_account_id"],
            linkedin_urn=row["linkedin_urn"],
        )
        for row in rows
        if row.get("linkedin_urn") and row.get("unipile_account_id")
    ]
    logger.info(f"{len(accounts)} team inboxes to import")
    return accounts


async def resolve_unipile_account(storage: Storage, ghost_genius_account_id: str) -> str:
    """Map a legacy ghost_genius_account_id to its Unipile account id.

    Raises:
        ConfigurationError: when no team member carries that id
    """
    row = await storage.get_one(
        WORKSPACE_TEAM,
        "ghost_genius_account_id",
        ghost_genius_account_id,
        columns="unipile_account_id",
    )
    account_id = row.get("unipile_account_id") if row else None
    if not account_id:
        raise ConfigurationError(
            f"No unipile_account_id found for ghost_genius_account_id={ghost_genius_account_id}"
        )
    return account_id
