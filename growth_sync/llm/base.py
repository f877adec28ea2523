"""
LLM Provider Abstraction Layer

Unified interface for the completion backend used by the data freshness
evaluator. Only Anthropic (Claude) is wired.

Usage:
    from growth_sync.llm import get_provider

    provider = get_provider("anthropic", model="claude-sonnet-4-20250514")
    response = await provider.complete("Your prompt here")
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class LLMResponse(BaseModel):
    """Standardized response from any LLM provider."""
    content: str
    model: str
    provider: str
    usage: Optional[dict] = None  # Token counts if available


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(self, model: str, **kwargs):
        self.model = model
        self.config = kwargs

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'anthropic')."""
        pass

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024
    ) -> LLMResponse:
        """Generate a completion for the given prompt.

        Args:
            prompt: The user prompt to complete
            system: Optional system prompt for context
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with generated content
        """
        pass

    async def complete_json(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 1024,
    ) -> Any:
        """Complete and parse the answer as JSON (object or array).

        Raises:
            ValueError: if the answer is not valid JSON
        """
        response = await self.complete(
            prompt=prompt,
            system=system,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return parse_json_content(response.content)


def parse_json_content(content: str) -> Any:
    """Parse JSON from a completion, tolerating markdown code fences."""
    content = content.strip()

    if content.startswith("```json"):
        content = content[7:]
    if content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]

    try:
        return json.loads(content.strip())
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON response: {e}")
        logger.debug(f"Response content: {content}")
        raise ValueError(f"Invalid JSON in response: {e}")


def get_provider(
    provider_name: str,
    model: Optional[str] = None,
    **kwargs
) -> LLMProvider:
    """Factory function to get the appropriate LLM provider.

    Raises:
        ValueError: If provider_name is not recognized
    """
    providers = {
        'anthropic': 'growth_sync.llm.anthropic.AnthropicProvider',
    }

    if provider_name not in providers:
        raise ValueError(
            f"Unknown provider: {provider_name}. "
            f"Available: {list(providers.keys())}"
        )

    # Dynamic import to avoid loading unused providers
    module_path, class_name = providers[provider_name].rsplit('.', 1)
    import importlib
    module = importlib.import_module(module_path)
    provider_class = getattr(module, class_name)

    return provider_class(model=model, **kwargs)
