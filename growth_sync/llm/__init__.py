"""
LLM Provider Abstraction Layer

Provides a unified interface for the completion backend (Anthropic Claude).
"""

from growth_sync.llm.base import LLMProvider, LLMResponse, get_provider, parse_json_content

__all__ = ["LLMProvider", "LLMResponse", "get_provider", "parse_json_content"]
