"""
Profile Enrichment Function Client
"""

import logging
from typing import Any, Optional

import httpx

from growth_sync.errors import ConfigurationError, EnrichmentFailed, RateLimited
from growth_sync.utils.config import EnrichConfig

logger = logging.getLogger(__name__)


class EnrichFunctionClient:
    """Calls the profile-enrichment edge function for one LinkedIn identifier."""

    def __init__(
        self,
        url: str,
        token: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        authorization = token if token.startswith("Bearer ") else f"Bearer {token}"
        self.client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Authorization": authorization, "Content-Type": "application/json"},
        )

    @classmethod
    def from_config(cls, config: EnrichConfig) -> "EnrichFunctionClient":
        token = config.get_token()
        if not config.url or not token:
            raise ConfigurationError(
                f"Enrichment function URL or token missing. Set enrich.url and the "
                f"{config.token_env} environment variable."
            )
        return cls(config.url, token, timeout=config.timeout_seconds)

    async def enrich(self, public_identifier: str) -> Optional[dict[str, Any]]:
        """Return the function's `data` object, or None when it has none.

        Raises:
            RateLimited: on HTTP 429
            EnrichmentFailed: on any other failure
        """
        payload = {
            "parameter": "all",
            "contact_linkedin_url": f"http://linkedin.com/in/{public_identifier}",
        }
        try:
            response = await self.client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise EnrichmentFailed(f"Enrich request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimited(f"429 Rate Limit on enrich {public_identifier}")
        if not 200 <= response.status_code < 300:
            raise EnrichmentFailed(
                f"Enrich failed: {response.status_code} - {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise EnrichmentFailed(f"Enrich returned invalid JSON: {e}") from e

        data = body.get("data") if isinstance(body, dict) else None
        return data or None

    async def aclose(self) -> None:
        await self.client.aclose()
