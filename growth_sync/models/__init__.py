"""
Data Models

Pydantic models for accounts, views, run statistics and target tables.
"""

from growth_sync.models.entities import (
    AccountResult,
    AccountState,
    EnrichmentCacheEntry,
    ErrorCategory,
    ExternalAccount,
    NormalizedView,
    NotificationResult,
    Page,
    RawPage,
    RunStats,
    RunSummary,
    TaskError,
    UpsertResult,
)
from growth_sync.models.tables import TableSpec

__all__ = [
    "AccountResult",
    "AccountState",
    "EnrichmentCacheEntry",
    "ErrorCategory",
    "ExternalAccount",
    "NormalizedView",
    "NotificationResult",
    "Page",
    "RawPage",
    "RunStats",
    "RunSummary",
    "TaskError",
    "UpsertResult",
    "TableSpec",
]
