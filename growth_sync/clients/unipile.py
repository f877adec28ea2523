"""
Unipile API Client

Thin async wrapper over the Unipile LinkedIn proxy. Maps HTTP statuses to the
sync error taxonomy; retry and pacing live in RetryPolicy, not here.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from growth_sync.errors import (
    ApiError,
    AuthExpired,
    ConfigurationError,
    MalformedResponse,
    NotFound,
    RateLimited,
)
from growth_sync.utils.config import UnipileConfig

logger = logging.getLogger(__name__)

VOYAGER_VIEWERS_QUERY_ID = "voyagerPremiumDashAnalyticsObject.c31102e906e7098910f44e0cecaa5b5c"


def build_viewers_url(start: int, count: int) -> str:
    """GraphQL Voyager URL for one page of own-profile viewers."""
    return (
        "https://www.linkedin.com/voyager/api/graphql?includeWebMetadata=true"
        f"&variables=(start:{start},count:{count},query:(),"
        "analyticsEntityUrn:(activityUrn:urn%3Ali%3Adummy%3A-1),surfaceType:WVMP)"
        f"&queryId={VOYAGER_VIEWERS_QUERY_ID}"
    )


class UnipileClient:
    """Unipile REST client."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "X-API-KEY": api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    @classmethod
    def from_config(cls, config: UnipileConfig) -> "UnipileClient":
        api_key = config.get_api_key()
        if not api_key:
            raise ConfigurationError(
                f"Unipile API key not found. Set {config.api_key_env} environment variable."
            )
        return cls(config.base_url, api_key, timeout=config.timeout_seconds)

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        body: Optional[dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        description = f"{method} {path}"

        try:
            response = await self.client.request(method, url, params=params, json=body)
        except httpx.HTTPError as e:
            raise ApiError(f"Unipile {description} failed: {e}") from e

        status = response.status_code
        if status == 429:
            logger.warning(f"Rate limit 429 on {description}")
            raise RateLimited(f"429 Rate Limit on {description}")
        if status in (401, 403):
            raise AuthExpired(f"Unipile {description} unauthorized: {status} - {response.text[:200]}")
        if status == 404:
            raise NotFound(f"Unipile {description} not found")
        if not 200 <= status < 300:
            raise ApiError(
                f"Unipile {description} failed: {status} - {response.text[:200]}",
                status=status,
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(f"Unipile {description} returned invalid JSON: {e}") from e

    async def raw_route(
        self,
        account_id: str,
        request_url: str,
        encoding: Optional[bool] = None,
    ) -> Any:
        """Proxy a GET to LinkedIn's internal Voyager API."""
        body: dict[str, Any] = {
            "account_id": account_id,
            "request_url": request_url,
            "method": "GET",
        }
        if encoding is not None:
            body["encoding"] = encoding
        return await self._request("POST", "/linkedin", body=body)

    async def get_user(self, identifier: str, account_id: str) -> Any:
        """Fetch a profile by LinkedIn URL, slug or member id."""
        return await self._request(
            "GET",
            f"/users/{quote(identifier, safe='')}",
            params={"account_id": account_id},
        )

    async def search(self, account_id: str, body: dict[str, Any]) -> Any:
        """Run a LinkedIn search, e.g. a Sales Navigator saved search URL."""
        return await self._request(
            "POST",
            "/linkedin/search",
            params={"account_id": account_id},
            body=body,
        )

    async def get_relations(
        self,
        account_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> Any:
        """First-degree connections, newest first."""
        params: dict[str, Any] = {"account_id": account_id}
        if limit:
            params["limit"] = limit
        if cursor:
            params["cursor"] = cursor
        return await self._request("GET", "/users/relations", params=params)

    async def get_chats(
        self,
        account_id: str,
        limit: Optional[int] = None,
        after: Optional[str] = None,
        cursor: Optional[str] = None,
    ) -> Any:
        """Chats with activity after an ISO timestamp, most recent first."""
        params: dict[str, Any] = {"account_id": account_id}
        if limit:
            params["limit"] = limit
        if after:
            params["after"] = after
        if cursor:
            params["cursor"] = cursor
        return await self._request("GET", "/chats", params=params)

    async def get_chat_messages(
        self,
        chat_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> Any:
        params: dict[str, Any] = {}
        if limit:
            params["limit"] = limit
        if cursor:
            params["cursor"] = cursor
        return await self._request("GET", f"/chats/{quote(chat_id, safe='')}/messages", params=params or None)

    async def get_chat_attendees(self, chat_id: str) -> Any:
        return await self._request("GET", f"/chats/{quote(chat_id, safe='')}/attendees")

    async def aclose(self) -> None:
        await self.client.aclose()
