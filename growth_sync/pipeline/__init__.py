"""
Sync Pipeline

Pagination, normalization, deduplication, enrichment, persistence and
orchestration shared by every job.
"""

from growth_sync.pipeline.dedupe import dedupe_latest, filter_age_window, split_new
from growth_sync.pipeline.enrich import EnrichmentCache
from growth_sync.pipeline.normalize import PayloadNormalizer, first_non_empty
from growth_sync.pipeline.orchestrator import AccountContext, PipelineOrchestrator
from growth_sync.pipeline.paginator import Paginator, collect_pages
from growth_sync.pipeline.sink import UpsertSink

__all__ = [
    "dedupe_latest",
    "filter_age_window",
    "split_new",
    "EnrichmentCache",
    "PayloadNormalizer",
    "first_non_empty",
    "AccountContext",
    "PipelineOrchestrator",
    "Paginator",
    "collect_pages",
    "UpsertSink",
]
