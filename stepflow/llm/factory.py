"""Factory for LLM clients built from configuration."""

from __future__ import annotations

from typing import Any

from ..errors import NotFoundError
from .adapter import LLMClient

PROVIDERS = ("openai", "litellm")


def create_llm_client(provider: str = "openai", **config: Any) -> LLMClient:
    """Create an LLM client for a provider.

    Args:
        provider: "openai" or "litellm".
        **config: Passed to the adapter, e.g. ``model``, ``api_key``, ``base_url``.

    Example:
        client = create_llm_client("openai", model="gpt-4o", api_key="...")
        client = create_llm_client("litellm", model="ollama/llama3")
    """
    if provider == "openai":
        from .openai import OpenAIAdapter

        return OpenAIAdapter(**config)
    if provider == "litellm":
        from .litellm import LiteLLMAdapter

        return LiteLLMAdapter(**config)
    raise NotFoundError("client type", provider)
