"""
Data Freshness Check

Counts the rows each monitored table received over the checked period
(yesterday, or the last 7 days on Mondays), asks the LLM whether the counts
look normal against 30 days of daily history and posts the verdict to Slack.
"""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel

from growth_sync.errors import SyncError
from growth_sync.jobs.base import Job
from growth_sync.models.entities import AccountResult, AccountState, RunStats, RunSummary, TaskError
from growth_sync.utils.config import FreshnessTableConfig

logger = logging.getLogger(__name__)

Status = Literal["ok", "warning", "anomaly"]

HISTORY_PAGE_SIZE = 1000
AI_UNAVAILABLE = "évaluation IA indisponible"


class TableFreshness(BaseModel):
    """Verdict for one monitored table."""
    table: str
    label: str
    count: int
    status: Status = "ok"
    comment: str = ""

    @property
    def flagged(self) -> bool:
        return self.status != "ok"


class PendingTable(BaseModel):
    """A table with rows in the checked period, awaiting evaluation."""
    table: str
    label: str
    count: int
    history: dict[str, int]


def check_window(now: datetime) -> tuple[datetime, str, bool]:
    """Start of the checked period, its display label and whether it is the weekly check.

    Mondays look back 7 days, other days only at yesterday. The start is
    truncated to midnight UTC.
    """
    is_monday = now.weekday() == 0
    lookback = 7 if is_monday else 1
    since = (now - timedelta(days=lookback)).replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday = (now - timedelta(days=1)).date().isoformat()
    if is_monday:
        label = f"7 derniers jours ({since.date().isoformat()} → {yesterday})"
    else:
        label = yesterday
    return since, label, is_monday


def build_freshness_message(
    job: str,
    results: list[TableFreshness],
    period_label: str,
    now: datetime,
) -> str:
    """Light recap when every table is ok, detailed sections otherwise."""
    stamp = now.strftime("%Y-%m-%d %H:%M")
    flagged = [r for r in results if r.flagged]

    if not flagged:
        counts = " | ".join(f"{r.label}: {r.count}" for r in results)
        return f"[{job}] ✅ — {stamp}\nPériode vérifiée : {period_label}\n• {counts}"

    lines = [f"[{job}] ⚠️ Anomalies — {stamp}", f"Période vérifiée : {period_label}", ""]
    lines.append("❌ Anomalies")
    for r in flagged:
        emoji = "🔴" if r.status == "anomaly" else "🟡"
        lines.append(f"{emoji} {r.label}: {r.count} enregistrements — {r.comment}")

    ok = [r for r in results if not r.flagged]
    if ok:
        lines.append("")
        lines.append("✅ OK")
        for r in ok:
            lines.append(f"• {r.label}: {r.count} enregistrements")

    return "\n".join(lines) + "\n"


class DataFreshnessJob(Job):
    """Daily volume check over the scraped tables."""

    name = "Data Freshness Check"

    def __init__(self, services, prompts_dir: Optional[Path] = None):
        super().__init__(services)
        self.llm = services.llm
        self.freshness = self.config.jobs.freshness
        self.prompts_dir = prompts_dir or Path(__file__).parent.parent.parent / "prompts"
        self.results: list[TableFreshness] = []
        self.message: Optional[str] = None

    def _load_prompt(self, name: str) -> str:
        prompt_file = self.prompts_dir / f"{name}.txt"
        if not prompt_file.exists():
            raise FileNotFoundError(f"Prompt template not found: {prompt_file}")
        return prompt_file.read_text()

    async def daily_counts(self, table: FreshnessTableConfig, days: int) -> dict[str, int]:
        """Rows per UTC day over the last `days` days, zero-filled."""
        since = (self.clock.now() - timedelta(days=days)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        counts = {(since + timedelta(days=d)).date().isoformat(): 0 for d in range(days)}

        offset = 0
        while True:
            rows = await self.storage.select(
                table.name,
                columns=table.date_column,
                gte={table.date_column: since},
                order=f"{table.date_column}.desc",
                limit=HISTORY_PAGE_SIZE,
                offset=offset,
            )
            for row in rows:
                value = row.get(table.date_column)
                if isinstance(value, datetime):
                    value = value.isoformat()
                if isinstance(value, str) and value[:10] in counts:
                    counts[value[:10]] += 1
            if len(rows) < HISTORY_PAGE_SIZE:
                break
            offset += HISTORY_PAGE_SIZE

        return counts

    async def _last_record_date(self, table: FreshnessTableConfig) -> Optional[str]:
        try:
            value = await self.storage.last_value(table.name, table.date_column)
        except SyncError as e:
            logger.warning(f"Could not read last {table.date_column} of {table.name}: {e}")
            return None
        if isinstance(value, datetime):
            value = value.isoformat()
        return value[:10] if isinstance(value, str) else None

    async def evaluate(
        self,
        pending: list[PendingTable],
        period_label: str,
        is_monday: bool,
    ) -> list[TableFreshness]:
        """Ask the LLM for a status per table.

        Tables the model does not mention default to "ok".

        Raises:
            ValueError: when the answer is not a JSON array
        """
        if is_monday:
            instructions = (
                "Aujourd'hui c'est lundi, on vérifie les 7 derniers jours "
                "(le total doit correspondre à environ une semaine complète)."
            )
        else:
            instructions = "On vérifie J-1 uniquement."

        table_data = [
            {
                "table": t.table,
                "current_count": t.count,
                "period": period_label,
                "is_monday_7day_check": is_monday,
                f"daily_counts_last_{self.freshness.history_days}_days": t.history,
            }
            for t in pending
        ]
        prompt = self._load_prompt("data_freshness").format(
            history_days=self.freshness.history_days,
            period_instructions=instructions,
            table_data=json.dumps(table_data, indent=2, ensure_ascii=False),
        )

        verdicts = await self.llm.complete_json(prompt, temperature=0.0, max_tokens=500)
        if not isinstance(verdicts, list):
            raise ValueError(f"Expected a JSON array, got {type(verdicts).__name__}")

        by_table = {v.get("table"): v for v in verdicts if isinstance(v, dict)}
        results = []
        for t in pending:
            verdict = by_table.get(t.table, {})
            status = verdict.get("status")
            results.append(TableFreshness(
                table=t.table,
                label=t.label,
                count=t.count,
                status=status if status in ("ok", "warning", "anomaly") else "ok",
                comment=verdict.get("comment") or "",
            ))
        return results

    async def run(self) -> RunSummary:
        now = self.clock.now()
        since, period_label, is_monday = check_window(now)
        logger.info(f"=== START {self.name}: period {period_label} ===")

        summary = RunSummary(job=self.name, started_at=now)
        stats = RunStats()
        results: list[TableFreshness] = []
        pending: list[PendingTable] = []

        for table in self.freshness.tables:
            label = table.label or table.name
            try:
                count = await self.storage.count_since(table.name, table.date_column, since)
                logger.info(f"{table.name}: {count} records since {since.isoformat()}")
                if count == 0:
                    last_date = await self._last_record_date(table)
                    results.append(TableFreshness(
                        table=table.name,
                        label=label,
                        count=0,
                        status="anomaly",
                        comment=f"aucune donnée depuis le {last_date}" if last_date else "table vide",
                    ))
                else:
                    history = await self.daily_counts(table, self.freshness.history_days)
                    pending.append(PendingTable(table=table.name, label=label, count=count, history=history))
            except SyncError as e:
                logger.error(f"Error checking {table.name}: {e}")
                stats.record_error(TaskError(
                    type="Table Check", code="exception", message=str(e), profile=table.name,
                ))
                results.append(TableFreshness(
                    table=table.name,
                    label=label,
                    count=-1,
                    status="anomaly",
                    comment=f"erreur: {str(e)[:100]}",
                ))

        if pending:
            results.extend(await self._evaluate_or_fallback(pending, period_label, is_monday, stats))

        self.results = results
        self.message = build_freshness_message(self.name, results, period_label, now)
        if self.services.error_notifier is not None:
            await self.services.error_notifier.send(self.message)
        else:
            logger.warning("No Slack webhook configured, skipping freshness recap")

        stats.inserted = sum(1 for r in results if not r.flagged)
        summary.accounts.append(AccountResult(label="Tables", state=AccountState.DONE, stats=stats))
        summary.totals.merge(stats)
        summary.finished_at = self.clock.now()

        flagged = sum(1 for r in results if r.flagged)
        logger.info(f"=== SUMMARY {self.name}: {len(results)} tables, {flagged} flagged ===")

        await self.orchestrator().notify(summary)
        return summary

    async def _evaluate_or_fallback(
        self,
        pending: list[PendingTable],
        period_label: str,
        is_monday: bool,
        stats: RunStats,
    ) -> list[TableFreshness]:
        if self.llm is None:
            logger.warning("No LLM provider configured, marking non-empty tables ok")
            return [self._unevaluated(t) for t in pending]

        try:
            return await self.evaluate(pending, period_label, is_monday)
        except Exception as e:
            logger.error(f"AI evaluation failed: {e}")
            stats.record_error(TaskError(type="AI Evaluation", code="exception", message=str(e)))
            return [self._unevaluated(t) for t in pending]

    @staticmethod
    def _unevaluated(t: PendingTable) -> TableFreshness:
        return TableFreshness(table=t.table, label=t.label, count=t.count, status="ok", comment=AI_UNAVAILABLE)
