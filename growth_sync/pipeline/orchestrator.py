"""
Pipeline Orchestration

Runs one job over its accounts strictly in sequence, isolates per-account
failures, aggregates statistics and sends the error report or success recap.
"""

import logging
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from growth_sync.clients.slack import SlackNotifier, format_error_report, format_success_recap
from growth_sync.errors import FATAL_ACCOUNT_ERRORS, RateLimited, SyncError, classify
from growth_sync.models.entities import (
    AccountResult,
    AccountState,
    RunStats,
    RunSummary,
    TaskError,
)
from growth_sync.utils.clock import Clock
from growth_sync.utils.config import RateLimitConfig

logger = logging.getLogger(__name__)

A = TypeVar("A")


class AccountContext:
    """Mutable per-account state handed to a job's process function."""

    def __init__(self, label: str):
        self.label = label
        self.state = AccountState.IDLE
        self.stats = RunStats()

    def advance(self, state: AccountState) -> None:
        logger.debug(f"{self.label}: {self.state.value} -> {state.value}")
        self.state = state

    def error(self, type: str, code, message: str, profile: str = "") -> None:
        self.stats.record_error(TaskError(type=type, code=code, message=message, profile=profile))


ProcessFn = Callable[[A, AccountContext], Awaitable[None]]


class PipelineOrchestrator(Generic[A]):
    """Sequential account loop with fault isolation and notification."""

    def __init__(
        self,
        job_name: str,
        config: RateLimitConfig,
        clock: Optional[Clock] = None,
        error_notifier: Optional[SlackNotifier] = None,
        success_notifier: Optional[SlackNotifier] = None,
    ):
        self.job_name = job_name
        self.config = config
        self.clock = clock or Clock()
        self.error_notifier = error_notifier
        self.success_notifier = success_notifier

    async def _run_account(self, account: A, label: str, process: ProcessFn) -> AccountResult:
        ctx = AccountContext(label)
        failure: Optional[str] = None
        try:
            await process(account, ctx)
            ctx.advance(AccountState.DONE)
        except RateLimited as e:
            # pages persisted before the limit stay persisted
            error_type, code = classify(e)
            ctx.stats.rate_limited += 1
            ctx.error(error_type, code, str(e), profile=label)
            logger.warning(f"{label}: rate limited after {e.pages_fetched} pages, keeping partial results")
            ctx.advance(AccountState.DONE)
        except SyncError as e:
            error_type, code = classify(e)
            ctx.error(error_type, code, str(e), profile=label)
            failure = str(e)
            if isinstance(e, FATAL_ACCOUNT_ERRORS):
                logger.error(f"{label}: {error_type}, aborting account - {e}")
            else:
                logger.error(f"{label}: {error_type} - {e}")
            ctx.advance(AccountState.FAILED)
        except Exception as e:
            ctx.error("Fatal", "exception", str(e), profile=label)
            failure = str(e)
            logger.exception(f"Fatal error for {label}: {e}")
            ctx.advance(AccountState.FAILED)

        return AccountResult(label=label, state=ctx.state, stats=ctx.stats, failure=failure)

    async def run(
        self,
        accounts: Sequence[A],
        process: ProcessFn,
        label: Callable[[A], str] = str,
        recap: Optional[Callable[[RunSummary], str]] = None,
    ) -> RunSummary:
        """Process every account and always return a summary.

        Args:
            accounts: Units of work (team accounts, saved searches, tables)
            process: Coroutine doing the work for one account
            label: Display name of an account in logs and reports
            recap: Builds the success recap line; no recap is sent without it
        """
        summary = RunSummary(job=self.job_name, started_at=self.clock.now())
        logger.info(f"=== START {self.job_name}: {len(accounts)} to process ===")

        for i, account in enumerate(accounts):
            name = label(account)
            logger.info(f"{i + 1}/{len(accounts)}: {name}")

            result = await self._run_account(account, name, process)
            summary.accounts.append(result)
            summary.totals.merge(result.stats)

            if i < len(accounts) - 1:
                await self.clock.sleep(self.config.pause_between_accounts)

        summary.finished_at = self.clock.now()
        logger.info(
            f"=== SUMMARY {self.job_name}: {summary.succeeded} done, {summary.failed} failed, "
            f"{summary.totals.inserted} inserted, {len(summary.totals.errors)} errors ==="
        )

        await self.notify(summary, recap)
        return summary

    async def notify(
        self,
        summary: RunSummary,
        recap: Optional[Callable[[RunSummary], str]] = None,
    ) -> None:
        """Send the error report when errors exist, else the success recap."""
        now = summary.finished_at or self.clock.now()
        if summary.has_errors:
            if self.error_notifier is not None:
                summary.notification = await self.error_notifier.send(
                    format_error_report(self.job_name, summary, now)
                )
            return

        logger.info("No errors, skipping error report")
        if recap is not None and self.success_notifier is not None:
            summary.notification = await self.success_notifier.send(
                format_success_recap(self.job_name, recap(summary), now)
            )
