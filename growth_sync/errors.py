"""
Error Taxonomy

Exceptions raised by clients and pipeline stages, and their mapping to the
(type, code) pairs reported in run summaries.
"""

from typing import Any, Optional


class SyncError(Exception):
    """Base error for all sync failures."""

    error_type = "Sync"
    code: Any = "error"


class RateLimited(SyncError):
    """Raised when a vendor answers HTTP 429 and retries are exhausted."""

    error_type = "Rate Limit"
    code = 429

    def __init__(
        self,
        message: str,
        attempts: int = 1,
        pages_fetched: int = 0,
        partial: Optional[list] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.pages_fetched = pages_fetched
        self.partial = partial or []


class AuthExpired(SyncError):
    """Raised on 401/403: the LinkedIn session behind the account must be reconnected."""

    error_type = "Auth Expired"
    code = 401


class MalformedResponse(SyncError):
    """Raised when a response body cannot be decoded or has an unexpected shape."""

    error_type = "Malformed Response"
    code = "malformed"


class NotFound(SyncError):
    """Raised when the vendor reports the requested entity does not exist."""

    error_type = "Not Found"
    code = 404


class ApiError(SyncError):
    """Raised for any other non-success HTTP status."""

    error_type = "API"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.code = status if status is not None else "unknown"


class StorageWriteFailed(SyncError):
    """Raised when the backing store rejects a write."""

    error_type = "Supabase Upsert"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        conflict: bool = False,
        db_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.conflict = conflict
        self.code = db_code or status or "unknown"


class EnrichmentFailed(SyncError):
    """Raised inside enrichment; callers degrade to the original identifier."""

    error_type = "Enrichissement"
    code = "exception"


class ConfigurationError(SyncError):
    """Raised when a credential or account mapping is missing."""

    error_type = "Configuration"
    code = "missing"


# Errors that abort the remaining work of one account.
FATAL_ACCOUNT_ERRORS = (AuthExpired, ConfigurationError, StorageWriteFailed)


def classify(exc: BaseException) -> tuple[str, Any]:
    """Map an exception to the (type, code) pair used in error reports."""
    if isinstance(exc, SyncError):
        return exc.error_type, exc.code
    return "Fatal", "exception"
