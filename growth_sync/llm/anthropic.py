"""
Anthropic (Claude) LLM Provider Implementation
"""

import logging
import os
from typing import Optional

import anthropic

from growth_sync.llm.base import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """Anthropic Claude API provider."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        api_key_env: str = "ANTHROPIC_API_KEY",
        timeout: float = 30.0,
        **kwargs
    ):
        """Initialize Anthropic provider.

        Args:
            model: Model name (default: claude-sonnet-4-20250514)
            api_key: API key (default: from environment)
            api_key_env: Environment variable name for API key
            timeout: Request timeout in seconds
        """
        super().__init__(model=model or self.DEFAULT_MODEL, **kwargs)

        self.api_key = api_key or os.environ.get(api_key_env)
        if not self.api_key:
            raise ValueError(
                f"Anthropic API key not found. Set {api_key_env} environment variable "
                "or pass api_key argument."
            )

        self.client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=timeout)

    @property
    def provider_name(self) -> str:
        return "anthropic"

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024
    ) -> LLMResponse:
        """Generate completion using Claude API."""
        request = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system

        try:
            message = await self.client.messages.create(**request)
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise

        content = ""
        for block in message.content:
            if hasattr(block, "text"):
                content += block.text

        return LLMResponse(
            content=content,
            model=self.model,
            provider=self.provider_name,
            usage={
                "input_tokens": message.usage.input_tokens,
                "output_tokens": message.usage.output_tokens,
            }
        )
