"""
Tests for Pipeline Orchestration
"""

import asyncio

from conftest import FakeNotifier
from growth_sync.errors import ApiError, AuthExpired, RateLimited
from growth_sync.models.entities import AccountState
from growth_sync.pipeline.orchestrator import PipelineOrchestrator
from growth_sync.utils.config import RateLimitConfig


def make_process(failures):
    """Process function inserting one row per account unless told to fail."""
    seen = []

    async def process(account, ctx):
        seen.append(account)
        ctx.advance(AccountState.FETCHING)
        ctx.stats.inserted += 1
        if account in failures:
            raise failures[account]

    return process, seen


class TestAccountIsolation:
    """Tests for per-account fault isolation."""

    def test_failure_does_not_stop_run(self, rate_limit, clock):
        """Test that one failing account leaves the others untouched."""
        process, seen = make_process({"b": ApiError("Unipile failed: 500", status=500)})
        orchestrator = PipelineOrchestrator("Team Connections", rate_limit, clock=clock)

        summary = asyncio.run(orchestrator.run(["a", "b", "c"], process))

        assert seen == ["a", "b", "c"]
        assert [a.state for a in summary.accounts] == [
            AccountState.DONE, AccountState.FAILED, AccountState.DONE,
        ]
        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.totals.inserted == 3
        error = summary.totals.errors[0]
        assert (error.type, error.code, error.profile) == ("API", 500, "b")

    def test_auth_expired_fails_account(self, rate_limit, clock):
        """Test that an expired session aborts only that account."""
        process, _ = make_process({"a": AuthExpired("401")})
        orchestrator = PipelineOrchestrator("Profile Views", rate_limit, clock=clock)

        summary = asyncio.run(orchestrator.run(["a", "b"], process))

        assert summary.accounts[0].state == AccountState.FAILED
        assert summary.accounts[0].failure == "401"
        assert summary.accounts[1].state == AccountState.DONE
        assert summary.totals.errors[0].type == "Auth Expired"

    def test_unexpected_exception(self, rate_limit, clock):
        """Test that programming errors are reported as fatal."""
        process, _ = make_process({"a": KeyError("missing")})
        orchestrator = PipelineOrchestrator("Profile Views", rate_limit, clock=clock)

        summary = asyncio.run(orchestrator.run(["a"], process))

        error = summary.totals.errors[0]
        assert (error.type, error.code) == ("Fatal", "exception")
        assert summary.accounts[0].state == AccountState.FAILED

    def test_rate_limit_keeps_partial_results(self, rate_limit, clock):
        """Test that an uncaught 429 ends the account as done with an error."""
        process, _ = make_process({"a": RateLimited("429 Rate Limit", attempts=3)})
        orchestrator = PipelineOrchestrator("Profile Views", rate_limit, clock=clock)

        summary = asyncio.run(orchestrator.run(["a"], process))

        account = summary.accounts[0]
        assert account.state == AccountState.DONE
        assert account.stats.inserted == 1
        assert account.stats.rate_limited == 1
        assert account.stats.errors[0].type == "Rate Limit"

    def test_pause_between_accounts(self, clock):
        """Test that accounts are spaced and the last one is not followed by a pause."""
        config = RateLimitConfig.no_wait(pause_between_accounts=3.0)
        process, _ = make_process({})
        orchestrator = PipelineOrchestrator("Profile Views", config, clock=clock)

        asyncio.run(orchestrator.run(["a", "b", "c"], process))

        assert clock.sleeps == [3.0, 3.0]

    def test_label_function(self, rate_limit, clock):
        """Test custom account labels in results."""
        process, _ = make_process({})
        orchestrator = PipelineOrchestrator("Profile Views", rate_limit, clock=clock)

        summary = asyncio.run(orchestrator.run([("alice", 1)], process, label=lambda a: a[0]))

        assert summary.accounts[0].label == "alice"


class TestNotifications:
    """Tests for the end-of-run notification."""

    def test_error_report_sent(self, rate_limit, clock):
        """Test that errors go to the error webhook only."""
        errors, success = FakeNotifier(), FakeNotifier()
        process, _ = make_process({"b": ApiError("boom", status=500)})
        orchestrator = PipelineOrchestrator(
            "Team Connections", rate_limit, clock=clock, error_notifier=errors, success_notifier=success,
        )

        summary = asyncio.run(orchestrator.run(["a", "b"], process, recap=lambda s: "recap"))

        assert len(errors.messages) == 1
        assert errors.messages[0].startswith("[Team Connections] ⚠️ Erreurs — 2025-03-14 12:00")
        assert success.messages == []
        assert summary.notification.sent

    def test_success_recap_sent(self, rate_limit, clock):
        """Test that a clean run sends the recap to the success webhook."""
        errors, success = FakeNotifier(), FakeNotifier()
        process, _ = make_process({})
        orchestrator = PipelineOrchestrator(
            "Team Connections", rate_limit, clock=clock, error_notifier=errors, success_notifier=success,
        )

        asyncio.run(orchestrator.run(
            ["a", "b"], process, recap=lambda s: f"{s.totals.inserted} nouvelles connexions",
        ))

        assert errors.messages == []
        assert success.messages == ["[Team Connections] ✅ — 2025-03-14 12:00\n• 2 nouvelles connexions"]

    def test_no_recap_without_builder(self, rate_limit, clock):
        """Test that clean runs without a recap stay silent."""
        success = FakeNotifier()
        process, _ = make_process({})
        orchestrator = PipelineOrchestrator("Team Connections", rate_limit, clock=clock, success_notifier=success)

        summary = asyncio.run(orchestrator.run(["a"], process))

        assert success.messages == []
        assert summary.notification is None
