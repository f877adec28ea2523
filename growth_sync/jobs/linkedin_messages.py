"""
LinkedIn Messages Job

For each team inbox: list the chats active during the lookback window, rebuild
each chat's participants from its attendees plus the inbox owner, then store
threads and messages not seen before in scrapped_linkedin_threads and
scrapped_linkedin_messages. Stored rows are never rewritten.
"""

import json
import logging
from datetime import timedelta
from typing import Optional

from growth_sync.errors import FATAL_ACCOUNT_ERRORS, RateLimited, SyncError
from growth_sync.jobs.base import Job, load_inbox_accounts
from growth_sync.models.entities import (
    AccountState,
    MessagingAccount,
    Page,
    RawPage,
    RunSummary,
    UpsertResult,
)
from growth_sync.models.tables import LINKEDIN_MESSAGES, LINKEDIN_THREADS, TableSpec
from growth_sync.pipeline.dedupe import split_new
from growth_sync.pipeline.normalize import PayloadNormalizer
from growth_sync.pipeline.orchestrator import AccountContext
from growth_sync.pipeline.paginator import Paginator, collect_pages
from growth_sync.utils.ratelimit import RetryPolicy

logger = logging.getLogger(__name__)


def participant(
    provider_id: str,
    full_name: Optional[str],
    url: Optional[str],
    picture_url: Optional[str] = None,
) -> dict:
    """Participant entry in the legacy Ghost Genius shape the tables still hold."""
    return {
        "id": provider_id,
        "type": "person",
        "full_name": full_name or "",
        "url": url or "",
        "profile_picture": [picture_url] if picture_url else [],
    }


def message_id(owner_urn: str, provider_id: str) -> str:
    return f"urn:li:msg_message:(urn:li:fsd_profile:{owner_urn},{provider_id})"


class ChatContext:
    """What every message row of one chat repeats."""

    def __init__(self, thread_id: str, owner_urn: str, attendees: list[dict], owner: dict):
        self.thread_id = thread_id
        self.owner_urn = owner_urn
        self.attendee_ids = [a["provider_id"] for a in attendees]
        self.participants = [
            participant(a["provider_id"], a.get("name"), a.get("profile_url"), a.get("picture_url"))
            for a in attendees
        ]
        self.participants.append(owner)
        self.by_id = {p["id"]: p for p in self.participants}

    @property
    def count(self) -> int:
        return len(self.participants)

    @property
    def main_participant_id(self) -> Optional[str]:
        # only 1:1 conversations have a main participant
        if self.count == 2 and self.attendee_ids:
            return self.attendee_ids[0]
        return None

    def thread_row(self, chat: dict) -> dict:
        return {
            "id": self.thread_id,
            "last_activity_at": chat.get("timestamp"),
            "is_read": chat.get("unread_count") == 0,
            "participants": json.dumps(self.participants),
            "participant_owner_id": self.owner_urn,
            "participants_ids": [*self.attendee_ids, self.owner_urn],
            "participants_numbers": self.count,
            "main_participant_id": self.main_participant_id,
        }

    def message_row(self, message: dict) -> dict:
        sender = self.by_id.get(message.get("sender_id"))
        return {
            "id": message_id(self.owner_urn, message["provider_id"]),
            "thread_id": self.thread_id,
            "message_date": message.get("timestamp"),
            "is_read": (message.get("seen") or 0) > 0,
            "text": message.get("text") or "",
            "sender_id": message.get("sender_id"),
            "sender_data": json.dumps(sender) if sender else None,
            "participant_owner_id": self.owner_urn,
            "participants_numbers": self.count,
            "main_participant_id": self.main_participant_id,
        }


class LinkedinMessagesJob(Job):
    """Import of recent LinkedIn conversations of every team inbox."""

    name = "LinkedIn Messages"

    def __init__(self, services):
        super().__init__(services)
        self.unipile = services.require_unipile()
        self.new_threads = 0

    async def run(self) -> RunSummary:
        accounts = await load_inbox_accounts(self.storage)
        if not accounts:
            logger.warning("No team inbox with a LinkedIn URN and a Unipile account id")
        self.new_threads = 0
        return await self.orchestrator().run(
            accounts,
            self.process_account,
            label=lambda account: account.short_name,
            recap=lambda summary: (
                f"{len(accounts)} comptes traités, {self.new_threads} nouveaux fils, "
                f"{summary.totals.inserted} nouveaux messages"
            ),
        )

    def since(self) -> str:
        """Start of the lookback window as an ISO timestamp in UTC."""
        hours = self.config.jobs.linkedin_messages.lookback_hours
        since = self.clock.now() - timedelta(hours=hours)
        return since.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    async def _existing_ids(self, table: TableSpec, ids: list[str]) -> set[str]:
        if not ids:
            return set()
        rows = await self.storage.select(table.name, columns="id", in_={"id": ids})
        return {row["id"] for row in rows}

    def _record(self, result: UpsertResult, ctx: AccountContext) -> None:
        ctx.stats.skipped += result.skipped
        for error in result.errors:
            ctx.stats.record_error(error)

    async def owner_participant(self, account: MessagingAccount, policy: RetryPolicy) -> dict:
        """The inbox owner as a participant; an unknown owner when the profile lookup fails."""
        try:
            user = await policy.call(
                lambda: self.unipile.get_user(account.linkedin_urn, account.account_id),
                description=f"owner {account.short_name}",
            )
        except SyncError as e:
            if isinstance(e, FATAL_ACCOUNT_ERRORS):
                raise
            logger.warning(f"Could not fetch owner profile for {account.linkedin_urn}: {e}")
            user = {}

        if not isinstance(user, dict):
            user = {}
        name = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
        return participant(
            account.linkedin_urn,
            name or "Unknown",
            user.get("public_profile_url"),
            user.get("profile_picture_url"),
        )

    async def fetch_chats(
        self,
        account: MessagingAccount,
        policy: RetryPolicy,
        ctx: AccountContext,
    ) -> list[dict]:
        pagination = self.config.pagination
        paginator = Paginator(
            self.config.rate_limit,
            max_pages=pagination.max_pages_chats,
            clock=self.clock,
            policy=policy,
            name=f"chats {account.short_name}",
        )
        normalizer = PayloadNormalizer(self.clock)
        after = self.since()
        logger.info(f"Scanning chats of {account.short_name} since {after}")

        async def fetch(cursor) -> RawPage:
            payload = await self.unipile.get_chats(account.account_id, pagination.chat_page_size, after, cursor)
            next_cursor = payload.get("cursor") if isinstance(payload, dict) else None
            return RawPage(payload=payload, next_token=next_cursor or None)

        pages: list[Page]
        try:
            pages = await collect_pages(paginator, fetch, normalizer.chats)
        except RateLimited as e:
            logger.warning(f"{account.short_name}: rate limited, continuing with {len(e.partial)} chat pages")
            ctx.error(e.error_type, e.code, str(e), profile=account.linkedin_urn)
            pages = e.partial

        if paginator.last_error is not None:
            err = paginator.last_error
            ctx.error(err.error_type, err.code, str(err), profile=account.linkedin_urn)
        if normalizer.dropped:
            logger.warning(f"{len(normalizer.dropped)} chats without a provider id ignored")

        return [chat for page in pages for chat in page.items]

    async def _persist_thread(self, chat: dict, chat_ctx: ChatContext, ctx: AccountContext) -> None:
        existing = await self._existing_ids(LINKEDIN_THREADS, [chat_ctx.thread_id])
        new, _ = split_new([chat_ctx.thread_row(chat)], existing, key="id")
        if not new:
            return
        result = await self.sink.upsert_batch(new, LINKEDIN_THREADS)
        self.new_threads += result.inserted
        self._record(result, ctx)
        if result.inserted:
            logger.debug(f"Inserted thread {chat_ctx.thread_id}")

    async def _persist_messages(self, page: Page, chat_ctx: ChatContext, ctx: AccountContext) -> None:
        rows = [chat_ctx.message_row(message) for message in page.items]
        existing = await self._existing_ids(LINKEDIN_MESSAGES, [row["id"] for row in rows])
        new, duplicates = split_new(rows, existing, key="id")
        page.new_items = len(new)
        ctx.stats.duplicates += len(duplicates)
        if not new:
            return

        result = await self.sink.upsert_batch(new, LINKEDIN_MESSAGES)
        ctx.stats.inserted += result.inserted
        self._record(result, ctx)

    async def process_chat(
        self,
        account: MessagingAccount,
        chat: dict,
        owner: dict,
        policy: RetryPolicy,
        ctx: AccountContext,
    ) -> None:
        thread_id = chat["provider_id"]
        normalizer = PayloadNormalizer(self.clock)

        payload = await policy.call(
            lambda: self.unipile.get_chat_attendees(chat["id"]),
            description=f"attendees {thread_id}",
        )
        chat_ctx = ChatContext(thread_id, account.linkedin_urn, normalizer.attendees(payload), owner)

        ctx.advance(AccountState.PERSISTING)
        await self._persist_thread(chat, chat_ctx, ctx)

        pagination = self.config.pagination
        paginator = Paginator(
            self.config.rate_limit,
            max_pages=pagination.max_pages_messages,
            clock=self.clock,
            policy=policy,
            name=f"messages {thread_id}",
        )

        async def fetch(cursor) -> RawPage:
            payload = await self.unipile.get_chat_messages(chat["id"], pagination.chat_page_size, cursor)
            next_cursor = payload.get("cursor") if isinstance(payload, dict) else None
            return RawPage(payload=payload, next_token=next_cursor or None)

        ctx.advance(AccountState.FETCHING)
        async for page in paginator.paginate(fetch, normalizer.messages):
            ctx.stats.fetched += len(page.items)
            ctx.stats.normalized += len(page.items)
            ctx.advance(AccountState.PERSISTING)
            await self._persist_messages(page, chat_ctx, ctx)
            ctx.advance(AccountState.FETCHING)

        if paginator.last_error is not None:
            err = paginator.last_error
            ctx.error(err.error_type, err.code, str(err), profile=thread_id)
        ctx.stats.fetched += len(normalizer.dropped_for("missing_identifier"))

    async def process_account(self, account: MessagingAccount, ctx: AccountContext) -> None:
        policy = RetryPolicy(self.config.rate_limit, self.clock)
        try:
            ctx.advance(AccountState.FETCHING)
            owner = await self.owner_participant(account, policy)
            chats = await self.fetch_chats(account, policy, ctx)
            logger.info(f"{len(chats)} chats with recent activity for {account.short_name}")

            for j, chat in enumerate(chats):
                try:
                    await self.process_chat(account, chat, owner, policy, ctx)
                except SyncError as e:
                    if isinstance(e, FATAL_ACCOUNT_ERRORS):
                        raise
                    logger.error(f"Error processing chat {chat['provider_id']}: {e}")
                    ctx.error(e.error_type, e.code, str(e), profile=chat["provider_id"])
                if j < len(chats) - 1:
                    await self.clock.sleep(self.config.rate_limit.pause_between_items)
        finally:
            ctx.stats.rate_limited += policy.rate_limited_count

        logger.info(
            f"{account.short_name} done: {ctx.stats.inserted} new messages, "
            f"{ctx.stats.duplicates} already stored, {len(ctx.stats.errors)} errors"
        )
