"""
Core Data Models

Pydantic models for accounts, vendor pages, normalized views and run statistics.
"""

from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from growth_sync.errors import (
    ApiError,
    AuthExpired,
    ConfigurationError,
    MalformedResponse,
    RateLimited,
    StorageWriteFailed,
)


class ExternalAccount(BaseModel):
    """A team member's LinkedIn account reachable through Unipile."""
    id: str
    account_id: str = Field(description="Unipile account id")
    owner_url: str = Field(description="LinkedIn URL of the account owner")

    @property
    def short_name(self) -> str:
        """Slug after /in/ for compact reporting."""
        if "/in/" in self.owner_url:
            return self.owner_url.split("/in/", 1)[1].strip("/")
        return self.owner_url


class MessagingAccount(BaseModel):
    """A team member's LinkedIn inbox, identified by the member URN."""
    id: str
    account_id: str = Field(description="Unipile account id")
    linkedin_urn: str = Field(description="fsd_profile id of the inbox owner")

    @property
    def short_name(self) -> str:
        return self.linkedin_urn


Token = Union[str, int, None]


class RawPage(BaseModel):
    """One fetched page of vendor data."""
    payload: Any = None
    next_token: Token = None
    index: int = 1


class Page(BaseModel):
    """A raw page with its decoded items, as yielded by the paginator."""
    raw: RawPage
    items: list[Any] = Field(default_factory=list)
    new_items: Optional[int] = Field(
        default=None,
        description="Set by the consumer after checking storage; drives smart stop",
    )

    @property
    def index(self) -> int:
        return self.raw.index


class NormalizedView(BaseModel):
    """One event observed on an external account: a profile view, connection or contact."""
    subject_id: str = Field(description="Natural key of the other party")
    subject_url: Optional[str] = None
    subject_name: Optional[str] = None
    subject_headline: Optional[str] = None
    age_hours: Optional[float] = None
    observed_at: Optional[float] = Field(default=None, description="Epoch milliseconds")
    relative_text: Optional[str] = None
    calculated_date: Optional[str] = None
    resolved_url: Optional[str] = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @property
    def storage_url(self) -> Optional[str]:
        """URL persisted for this view; enrichment supersedes the raw URL."""
        return self.resolved_url or self.subject_url


class EnrichmentCacheEntry(BaseModel):
    """Mapping from an opaque profile URL to its canonical URL."""
    original_url: str
    enriched_url: str
    profile_data: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_row(self) -> dict[str, Any]:
        return {
            "original_url": self.original_url,
            "enriched_url": self.enriched_url,
            "profile_data": self.profile_data,
            "updated_at": self.updated_at.isoformat(),
        }


class ErrorCategory(str, Enum):
    """Error taxonomy used in alerts."""
    RATE_LIMITED = "rate_limited"
    AUTH_EXPIRED = "auth_expired"
    MALFORMED_RESPONSE = "malformed_response"
    STORAGE_WRITE_FAILED = "storage_write_failed"
    ENRICHMENT_FAILED = "enrichment_failed"
    MISSING_DATA = "missing_data"
    OTHER = "other"


_CATEGORY_BY_TYPE = {
    RateLimited.error_type: ErrorCategory.RATE_LIMITED,
    AuthExpired.error_type: ErrorCategory.AUTH_EXPIRED,
    MalformedResponse.error_type: ErrorCategory.MALFORMED_RESPONSE,
    StorageWriteFailed.error_type: ErrorCategory.STORAGE_WRITE_FAILED,
    "Enrichissement": ErrorCategory.ENRICHMENT_FAILED,
    "Extraction ID": ErrorCategory.MISSING_DATA,
    "Missing URL": ErrorCategory.MISSING_DATA,
    ConfigurationError.error_type: ErrorCategory.MISSING_DATA,
    ApiError.error_type: ErrorCategory.OTHER,
}


class TaskError(BaseModel):
    """A recorded, human-readable error."""
    type: str
    code: Union[str, int] = "unknown"
    message: str = ""
    profile: str = ""

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORY_BY_TYPE.get(self.type, ErrorCategory.OTHER)

    @property
    def group_key(self) -> str:
        """Key used to collapse identical errors in reports."""
        return f'{self.type} ({self.code}) — "{self.message[:100]}"'


class RunStats(BaseModel):
    """Counters for one account or one whole run. Never persisted."""
    fetched: int = 0
    normalized: int = 0
    deduplicated: int = 0
    enriched: int = 0
    inserted: int = 0
    duplicates: int = 0
    skipped: int = 0
    rate_limited: int = 0
    errored: int = 0
    errors: list[TaskError] = Field(default_factory=list)

    def record_error(self, error: TaskError) -> None:
        self.errors.append(error)
        self.errored += 1

    def merge(self, other: "RunStats") -> None:
        """Fold another stats object into this one."""
        for field in (
            "fetched", "normalized", "deduplicated", "enriched", "inserted",
            "duplicates", "skipped", "rate_limited", "errored",
        ):
            setattr(self, field, getattr(self, field) + getattr(other, field))
        self.errors.extend(other.errors)


class UpsertResult(BaseModel):
    """Outcome of one sink write."""
    inserted: int = 0
    skipped: int = 0
    errors: list[TaskError] = Field(default_factory=list)
    used_fallback: bool = False

    @property
    def total(self) -> int:
        return self.inserted + self.skipped + len(self.errors)


class AccountState(str, Enum):
    """Per-account processing state."""
    IDLE = "idle"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    DEDUPLICATING = "deduplicating"
    ENRICHING = "enriching"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class AccountResult(BaseModel):
    """Final state and counters of one account in a run."""
    label: str
    state: AccountState = AccountState.IDLE
    stats: RunStats = Field(default_factory=RunStats)
    failure: Optional[str] = None


class NotificationResult(BaseModel):
    """Outcome of a fire-and-forget webhook post."""
    sent: bool = False
    skipped: bool = False
    status: Optional[int] = None
    error: Optional[str] = None


class RunSummary(BaseModel):
    """Summary of one job run, always produced."""
    job: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    accounts: list[AccountResult] = Field(default_factory=list)
    totals: RunStats = Field(default_factory=RunStats)
    notification: Optional[NotificationResult] = None

    @property
    def has_errors(self) -> bool:
        return len(self.totals.errors) > 0

    @property
    def succeeded(self) -> int:
        return sum(1 for a in self.accounts if a.state == AccountState.DONE)

    @property
    def failed(self) -> int:
        return sum(1 for a in self.accounts if a.state == AccountState.FAILED)

    def error_counts_by_category(self) -> dict[str, int]:
        counts = Counter(e.category.value for e in self.totals.errors)
        return dict(counts)
