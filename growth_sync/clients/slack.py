"""
Slack Notifications

Incoming-webhook poster plus the error-report and success-recap formatters.
Posting is fire-and-forget: failures are logged and reported in the returned
NotificationResult, never raised.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Optional

import httpx

from growth_sync.models.entities import NotificationResult, RunSummary

logger = logging.getLogger(__name__)


class SlackNotifier:
    """Posts `{"text": ...}` to one incoming webhook."""

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.transport = transport

    async def send(self, text: str) -> NotificationResult:
        if not self.webhook_url:
            logger.warning("Slack webhook not configured, skipping notification")
            return NotificationResult(skipped=True)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.webhook_url, json={"text": text})
        except httpx.HTTPError as e:
            logger.error(f"Failed to send Slack notification: {e}")
            return NotificationResult(error=str(e))

        if response.status_code >= 400:
            logger.error(f"Slack webhook answered {response.status_code}: {response.text[:200]}")
            return NotificationResult(status=response.status_code, error=response.text[:200])

        logger.info("Slack notification sent")
        return NotificationResult(sent=True, status=response.status_code)


def _stamp(now: datetime) -> str:
    return now.strftime("%Y-%m-%d %H:%M")


def format_error_report(job: str, summary: RunSummary, now: Optional[datetime] = None) -> str:
    """Render the error alert: per-account results, grouped errors, category counts.

    Identical errors are collapsed into "Nx Type (code) — "message"". Stack
    traces are never included.
    """
    now = now or summary.finished_at or summary.started_at
    lines = [f"[{job}] ⚠️ Erreurs — {_stamp(now)}", "", "📊 Résultats"]

    for account in summary.accounts:
        stats = account.stats
        ignored = stats.duplicates + stats.skipped
        lines.append(f"• {account.label}: {stats.inserted} insérés | {ignored} doublons/ignorés")

    lines.append("")
    lines.append(f"❌ Erreurs ({len(summary.totals.errors)})")
    for account in summary.accounts:
        if not account.stats.errors:
            continue
        grouped = Counter(err.group_key for err in account.stats.errors)
        parts = [f"{count}x {key}" for key, count in grouped.items()]
        lines.append(f"• {account.label}: {', '.join(parts)}")

    categories = summary.error_counts_by_category()
    if categories:
        lines.append("")
        lines.append("Catégories: " + ", ".join(f"{cat} {n}" for cat, n in sorted(categories.items())))

    return "\n".join(lines) + "\n"


def format_success_recap(
    job: str,
    detail: str,
    now: datetime,
) -> str:
    """Render the short success recap, e.g. "[Profile Views] ✅ — 2025-03-14 07:00"."""
    return f"[{job}] ✅ — {_stamp(now)}\n• {detail}"
