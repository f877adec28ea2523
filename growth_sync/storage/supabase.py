"""
Supabase Store

Speaks PostgREST over httpx. Upserts use `Prefer: resolution=merge-duplicates`
with an explicit on_conflict column list.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

import httpx

from growth_sync.errors import ApiError, ConfigurationError, StorageWriteFailed
from growth_sync.storage.base import Storage
from growth_sync.utils.config import SupabaseConfig

logger = logging.getLogger(__name__)

_CONTENT_RANGE_TOTAL = re.compile(r"/(\d+)")


def _format_value(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote(value: Any) -> str:
    text = _format_value(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


class SupabaseStorage(Storage):
    """PostgREST-backed store."""

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the store.

        Args:
            url: Project URL (https://<ref>.supabase.co)
            key: Service or anon key, sent as apikey and bearer token
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
        )

    @classmethod
    def from_config(cls, config: SupabaseConfig) -> "SupabaseStorage":
        key = config.get_key()
        if not config.url or not key:
            raise ConfigurationError(
                f"Supabase URL or key missing. Set supabase.url and the {config.key_env} "
                "environment variable."
            )
        return cls(config.url, key, timeout=config.timeout_seconds)

    def _filter_params(
        self,
        eq: Optional[dict[str, Any]] = None,
        in_: Optional[dict[str, list]] = None,
        not_null: Optional[list[str]] = None,
        gte: Optional[dict[str, Any]] = None,
    ) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = []
        for col, val in (eq or {}).items():
            params.append((col, f"eq.{_format_value(val)}"))
        for col, vals in (in_ or {}).items():
            params.append((col, f"in.({','.join(_quote(v) for v in vals)})"))
        for col in not_null or []:
            params.append((col, "not.is.null"))
        for col, bound in (gte or {}).items():
            params.append((col, f"gte.{_format_value(bound)}"))
        return params

    async def select(
        self,
        table: str,
        columns: str = "*",
        eq: Optional[dict[str, Any]] = None,
        in_: Optional[dict[str, list]] = None,
        not_null: Optional[list[str]] = None,
        gte: Optional[dict[str, Any]] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[dict]:
        if in_ and any(len(vals) == 0 for vals in in_.values()):
            return []

        params = [("select", columns)]
        params.extend(self._filter_params(eq=eq, in_=in_, not_null=not_null, gte=gte))
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(limit)))
        if offset:
            params.append(("offset", str(offset)))

        try:
            response = await self.client.get(f"{self.base_url}/{table}", params=params)
        except httpx.HTTPError as e:
            raise ApiError(f"Supabase {table}: {e}") from e

        if response.status_code >= 400:
            raise ApiError(
                f"Supabase {table}: HTTP {response.status_code} - {response.text[:200]}",
                status=response.status_code,
            )
        data = response.json()
        return data if isinstance(data, list) else []

    async def upsert(self, table: str, rows: list[dict], on_conflict: str) -> None:
        if not rows:
            return
        payload: Any = rows[0] if len(rows) == 1 else rows

        try:
            response = await self.client.post(
                f"{self.base_url}/{table}",
                params={"on_conflict": on_conflict},
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
                json=payload,
            )
        except httpx.HTTPError as e:
            raise StorageWriteFailed(f"Supabase upsert {table}: {e}") from e

        if 200 <= response.status_code < 300:
            logger.debug(f"Upserted {len(rows)} rows into {table}")
            return

        db_code = None
        message = response.text[:300]
        try:
            body = response.json()
            if isinstance(body, dict):
                db_code = body.get("code")
                message = body.get("message") or message
        except ValueError:
            pass

        raise StorageWriteFailed(
            message,
            status=response.status_code,
            conflict=response.status_code == 409,
            db_code=db_code,
        )

    async def count_since(self, table: str, column: str, since: datetime) -> int:
        params = [("select", column), ("limit", "1")]
        params.extend(self._filter_params(gte={column: since}))

        try:
            response = await self.client.get(
                f"{self.base_url}/{table}",
                params=params,
                headers={"Prefer": "count=exact"},
            )
        except httpx.HTTPError as e:
            raise ApiError(f"Supabase {table}: {e}") from e

        if response.status_code >= 400:
            raise ApiError(f"Supabase {table}: HTTP {response.status_code}", status=response.status_code)

        content_range = response.headers.get("content-range", "")
        match = _CONTENT_RANGE_TOTAL.search(content_range)
        if match:
            return int(match.group(1))

        data = response.json()
        return len(data) if isinstance(data, list) else 0

    async def aclose(self) -> None:
        await self.client.aclose()
